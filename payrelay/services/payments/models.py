"""Records this service writes to the tenant's record store."""

from dataclasses import dataclass, field
from typing import Any

from payrelay.services.record_store.backends import SERVER_TIMESTAMP


@dataclass(frozen=True)
class Order:
    """A gateway order; stored under `orders/{external_order_id}`."""

    external_order_id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"
    linked_record_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "externalOrderId": self.external_order_id,
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "status": self.status,
            "linkedRecordId": self.linked_record_id,
            "metadata": self.metadata,
            "createdAt": SERVER_TIMESTAMP,
        }


@dataclass(frozen=True)
class PaymentAttempt:
    """Append-only audit entry for one verification attempt."""

    external_payment_id: str
    external_order_id: str | None
    signature: str | None
    amount: int | None
    status: str
    verified: bool
    linked_record_id: str | None = None
    test_mode: bool = False
    source: str = "checkout"

    def to_record(self) -> dict[str, Any]:
        return {
            "externalPaymentId": self.external_payment_id,
            "externalOrderId": self.external_order_id,
            "signature": self.signature,
            "amount": self.amount,
            "status": self.status,
            "verified": self.verified,
            "linkedRecordId": self.linked_record_id,
            "testMode": self.test_mode,
            "source": self.source,
            "createdAt": SERVER_TIMESTAMP,
        }
