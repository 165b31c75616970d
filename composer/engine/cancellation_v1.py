from __future__ import annotations

import threading
import time
from typing import Callable

from composer.engine.constants import CompositionCancelledError

VERSION = "cancellation_v1"


class CancellationToken:
    """Scopes one pipeline run: explicit cancel() and/or a monotonic deadline.

    The token is shared read-only between the run and whoever may cancel it, so
    the cancel flag is a threading.Event.
    """

    def __init__(self, deadline_s: float | None = None, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._event = threading.Event()
        self._reason = ""
        self._deadline_at: float | None = None
        if isinstance(deadline_s, (int, float)) and not isinstance(deadline_s, bool):
            self._deadline_at = self._clock() + max(float(deadline_s), 0.0)

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._reason = str(reason or "cancelled by caller")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline_at is not None and self._clock() >= self._deadline_at:
            return True
        return False

    def remaining_s(self) -> float | None:
        if self._deadline_at is None:
            return None
        return max(self._deadline_at - self._clock(), 0.0)

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise CompositionCancelledError(self._reason, stage=stage)
        if self._deadline_at is not None and self._clock() >= self._deadline_at:
            raise CompositionCancelledError("deadline elapsed", stage=stage)


def effective_timeout_s(token: CancellationToken, per_call_timeout_s: float) -> float:
    remaining = token.remaining_s()
    if remaining is None:
        return float(per_call_timeout_s)
    return max(min(float(per_call_timeout_s), remaining), 0.0)
