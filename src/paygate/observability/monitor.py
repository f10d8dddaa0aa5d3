import threading
import time
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class WebhookOutcome:
    gateway: str
    accepted: bool
    reason: str | None
    at: float


class RejectionMonitor:
    """Rolling-window counts of accepted and rejected webhooks per gateway.

    A burst of rejections usually means a rotated secret or a misconfigured
    proxy in front of the webhook endpoint.
    """

    def __init__(self, window_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self._window_seconds = window_seconds
        self._clock = clock
        self._outcomes: deque[WebhookOutcome] = deque()
        self._lock = threading.Lock()

    def record_accepted(self, gateway: str) -> None:
        self._record(gateway, True, None)

    def record_rejected(self, gateway: str, reason: str) -> None:
        self._record(gateway, False, reason)

    def _record(self, gateway: str, accepted: bool, reason: str | None) -> None:
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._outcomes.append(WebhookOutcome(gateway, accepted, reason, now))

    def _prune(self, now: float) -> None:
        # Outcomes are appended in clock order, so expired ones sit at the left.
        cutoff = now - self._window_seconds
        while self._outcomes and self._outcomes[0].at < cutoff:
            self._outcomes.popleft()

    def _in_window(self, gateway: str | None) -> list[WebhookOutcome]:
        self._prune(self._clock())
        if gateway is None:
            return list(self._outcomes)
        return [o for o in self._outcomes if o.gateway == gateway]

    def rejection_rate(self, gateway: str | None = None) -> float:
        """Rejected share of webhooks in the current window (0.0 to 1.0)."""
        with self._lock:
            outcomes = self._in_window(gateway)
            if not outcomes:
                return 0.0
            return sum(1 for o in outcomes if not o.accepted) / len(outcomes)

    def total_in_window(self, gateway: str | None = None) -> int:
        with self._lock:
            return len(self._in_window(gateway))

    def rejected_count_in_window(self, gateway: str | None = None) -> int:
        with self._lock:
            return sum(1 for o in self._in_window(gateway) if not o.accepted)

    def accepted_count_in_window(self, gateway: str | None = None) -> int:
        with self._lock:
            return sum(1 for o in self._in_window(gateway) if o.accepted)

    def rejection_reasons(self, gateway: str | None = None) -> dict[str, int]:
        with self._lock:
            return dict(Counter(o.reason for o in self._in_window(gateway) if not o.accepted))

    def retained_count(self) -> int:
        """Outcomes currently held in memory, without pruning first."""
        with self._lock:
            return len(self._outcomes)

    def reset(self) -> None:
        with self._lock:
            self._outcomes.clear()
