import threading

from paygate.models.call import ProviderCall


class CallLog:
    """Thread-safe record of outbound provider calls."""

    def __init__(self, max_entries: int | None = 1000):
        self._calls: list[ProviderCall] = []
        self._max_entries = max_entries
        self._lock = threading.Lock()

    def log(self, call: ProviderCall) -> None:
        with self._lock:
            self._calls.append(call)
            if self._max_entries is not None and len(self._calls) > self._max_entries:
                del self._calls[: len(self._calls) - self._max_entries]

    def get_calls(self, gateway: str | None = None) -> list[ProviderCall]:
        with self._lock:
            if gateway is None:
                return list(self._calls)
            return [c for c in self._calls if c.gateway == gateway]

    def get_failed_calls(self) -> list[ProviderCall]:
        with self._lock:
            return [c for c in self._calls if not c.succeeded]

    def clear(self) -> None:
        with self._lock:
            self._calls.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._calls)
