"""Transient, self-dismissing notices raised by automatic selection clears.

A notice is the only observable signal that the reconciler dropped a
selection because the entity vanished or moved. Notices expire on their own
after a TTL (3 seconds by default) and can also be dismissed early.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

ITEM_DELETED_MESSAGE = "This item was deleted or moved."


@dataclass(frozen=True)
class TransientNotice:
    message: str
    raised_at: float
    ttl_seconds: float

    def is_active(self, now: float) -> bool:
        return now < self.raised_at + self.ttl_seconds


class NoticeBoard:
    """Holds at most one transient notice per session.

    Raising a new notice replaces the current one and restarts the TTL.

    Args:
        ttl_seconds: Lifetime of a notice before it self-dismisses.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._notice: TransientNotice | None = None
        self.raised_count = 0

    def raise_notice(self, message: str = ITEM_DELETED_MESSAGE) -> TransientNotice:
        notice = TransientNotice(message=message, raised_at=self._clock(), ttl_seconds=self._ttl)
        self._notice = notice
        self.raised_count += 1
        logger.info("notice.raised", message=message, ttl_seconds=self._ttl)
        return notice

    @property
    def current(self) -> TransientNotice | None:
        """The active notice, or None once it has expired or been dismissed."""
        if self._notice is not None and not self._notice.is_active(self._clock()):
            self._notice = None
        return self._notice

    def dismiss(self) -> None:
        self._notice = None
