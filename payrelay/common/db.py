"""Database bootstrap helpers for the structured record store."""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def make_session_factory(dsn: str, **engine_kwargs) -> sessionmaker:
    """Build one engine per process and return its session factory."""

    engine = create_engine(dsn, pool_pre_ping=True, **engine_kwargs)
    # `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
