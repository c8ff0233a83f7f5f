"""
Nexus Kernel — Cooperative Deadlines

Long walks call ``deadline.check(operation)`` inside their loops. A
deadline built with ``timeout_s=None`` never expires.
"""

from __future__ import annotations

import time
from typing import Optional

from .errors import DeadlineExceededError


class Deadline:
    """Monotonic-clock deadline checked cooperatively by kernel loops."""

    def __init__(self, timeout_s: Optional[float] = None) -> None:
        if timeout_s is not None and timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive, got {timeout_s!r}")
        self.timeout_s = timeout_s
        self._expires_at = (
            None if timeout_s is None else time.monotonic() + timeout_s
        )

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)

    def check(self, operation: str) -> None:
        if self.expired:
            raise DeadlineExceededError(operation, self.timeout_s or 0.0)


def ensure_deadline(deadline: Optional[Deadline]) -> Deadline:
    return deadline if deadline is not None else Deadline.never()
