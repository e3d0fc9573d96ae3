"""
Query context passed to every store operation.

Carries an optional deadline, a cancel flag and log tags. The storage binding
checks it before starting a transaction and again before committing, so a
cancelled operation either fully commits or fully rolls back.
"""

import time
from dataclasses import dataclass, field
from threading import Event
from typing import Any, Dict, Optional

from chatstore.core.exceptions import OperationCancelledError


@dataclass
class QueryContext:
    """Deadline / cancellation carrier for one logical operation."""

    # time.monotonic() value after which the context is expired
    deadline: Optional[float] = None
    tags: Dict[str, Any] = field(default_factory=dict)
    _cancelled: Event = field(default_factory=Event, init=False, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float, **tags: Any) -> "QueryContext":
        """
        Build a context expiring ``seconds`` from now.

        Args:
            seconds: Seconds until the context expires
            **tags: Log tags attached to messages emitted for this context

        Returns:
            New QueryContext
        """
        return cls(deadline=time.monotonic() + seconds, tags=dict(tags))

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def done(self) -> bool:
        return self.cancelled or self.expired

    def raise_if_done(self) -> None:
        """Raise OperationCancelledError if cancelled or past the deadline."""
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled by caller")
        if self.expired:
            raise OperationCancelledError("Operation deadline exceeded")

    def log_prefix(self) -> str:
        """Render tags as a ``[k=v ...]`` prefix for log messages."""
        if not self.tags:
            return ""
        rendered = " ".join(f"{k}={v}" for k, v in sorted(self.tags.items()))
        return f"[{rendered}] "


def ensure_context(ctx: Optional[QueryContext]) -> QueryContext:
    """Return ``ctx`` or a fresh context without deadline."""
    return ctx if ctx is not None else QueryContext()
