import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from paygate.errors import ReplayError
from paygate.models.config import DEFAULT_REPLAY_WINDOW

logger = logging.getLogger(__name__)

# Epoch values above this are taken as milliseconds (year 2286 in seconds).
_EPOCH_MILLIS_THRESHOLD = 10_000_000_000

DEFAULT_MAX_SEEN = 100_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """Parse a provider timestamp into an aware UTC datetime.

    Accepts epoch seconds, epoch milliseconds (int, float or numeric string)
    and ISO-8601 strings, with or without offset (naive values are UTC).
    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = _from_epoch(float(value))
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        try:
            parsed = _from_epoch(float(text))
        except (OverflowError, OSError):
            return None
        except ValueError:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch(number: float) -> datetime:
    if number > _EPOCH_MILLIS_THRESHOLD:
        number /= 1000.0
    return datetime.fromtimestamp(number, tz=timezone.utc)


@dataclass(frozen=True)
class ReplayCheck:
    """Outcome of an accepted delivery.

    ``duplicate`` is True when the event id was first seen less than one
    window ago: the provider redelivered an event that was already accepted.
    """

    timestamp: datetime | None
    duplicate: bool = False


class ReplayGuard:
    """Rejects stale, future-dated and replayed webhook deliveries.

    One guard per gateway instance. Event ids are remembered for the life
    of the guard, up to ``max_seen`` ids (oldest evicted first), so a
    delivery with no signed timestamp can still be refused once its first
    sighting is older than the window. Inside the window a repeated id is
    a redelivery, not an attack, and is reported as a duplicate.
    """

    def __init__(
        self,
        window: timedelta = DEFAULT_REPLAY_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
        gateway: str | None = None,
        max_seen: int = DEFAULT_MAX_SEEN,
    ):
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        if max_seen < 1:
            raise ValueError("max_seen must be at least 1")
        self.window = window
        self.gateway = gateway
        self.max_seen = max_seen
        self._clock = clock
        self._seen: OrderedDict[str, datetime] = OrderedDict()
        self._lock = threading.Lock()

    def check(self, timestamp=None, event_id: str | None = None) -> ReplayCheck:
        """Validate a delivery, raising ReplayError when it must be refused.

        A missing timestamp skips the age check; a missing event id skips
        the duplicate check.
        """
        now = self._clock()
        sent_at = parse_timestamp(timestamp)
        if timestamp not in (None, "") and sent_at is None:
            raise ReplayError(
                f"Unparseable webhook timestamp {timestamp!r}",
                gateway=self.gateway,
                data={"timestamp": str(timestamp)},
            )

        if sent_at is not None:
            age = now - sent_at
            if age > self.window:
                raise ReplayError(
                    f"Webhook is {int(age.total_seconds())}s old, window is "
                    f"{int(self.window.total_seconds())}s",
                    gateway=self.gateway,
                    data={"timestamp": sent_at.isoformat(), "age_seconds": age.total_seconds()},
                )
            if -age > self.window:
                raise ReplayError(
                    "Webhook timestamp is too far in the future",
                    gateway=self.gateway,
                    data={"timestamp": sent_at.isoformat()},
                )

        if not event_id:
            return ReplayCheck(sent_at)

        with self._lock:
            first_seen = self._seen.get(event_id)
            if first_seen is None:
                self._seen[event_id] = now
                while len(self._seen) > self.max_seen:
                    self._seen.popitem(last=False)
                return ReplayCheck(sent_at)

        since = now - first_seen
        if since > self.window:
            raise ReplayError(
                f"Webhook event {event_id} was first accepted {int(since.total_seconds())}s ago, "
                f"window is {int(self.window.total_seconds())}s",
                gateway=self.gateway,
                data={"event_id": event_id, "first_seen": first_seen.isoformat()},
            )
        logger.info("Webhook event redelivered", extra={"gateway": self.gateway, "event_id": event_id})
        return ReplayCheck(sent_at, duplicate=True)

    def forget(self, event_id: str) -> None:
        """Drop ``event_id`` so a later redelivery is treated as new."""
        with self._lock:
            self._seen.pop(event_id, None)

    def seen_count(self) -> int:
        with self._lock:
            return len(self._seen)
