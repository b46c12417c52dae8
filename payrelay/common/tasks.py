"""Fire-and-forget execution of best-effort side effects.

Side effects (attempt records, linked-record updates, notifications) are
submitted here so HTTP handlers can respond without waiting on them. Failures
never propagate to the submitter; they go to a failure hook instead.
"""

import asyncio
from typing import Awaitable, Callable

from payrelay.common.config import settings
from payrelay.common.logging import logger
from payrelay.common.metrics import side_effect_failures_total


FailureHook = Callable[[str, BaseException], None]


def log_failure(effect: str, exc: BaseException) -> None:
    """Default failure hook: structured log line plus a counter."""

    logger.error("side_effect_failed effect=%s error=%s", effect, exc)
    side_effect_failures_total.labels(service=settings.service_name, effect=effect).inc()


class BackgroundRunner:
    """Owns in-flight side-effect tasks for the lifetime of the process."""

    def __init__(self, on_failure: FailureHook | None = None) -> None:
        self.on_failure = on_failure or log_failure
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, effect: str, coro: Awaitable) -> asyncio.Task:
        """Schedule `coro` on the running loop and return immediately."""

        task = asyncio.create_task(self._guard(effect, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, effect: str, coro: Awaitable) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.on_failure(effect, exc)

    async def drain(self) -> None:
        """Wait for every submitted task, including ones submitted meanwhile."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
