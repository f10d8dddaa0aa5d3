"""Canonical payment status and per-gateway status tables.

Providers do not share a status vocabulary, so every adapter owns a static
``StatusMap``. The map can only produce ``CanonicalStatus`` members and
falls back to ``UNKNOWN`` for anything it has not been told about.
"""

import logging
from collections.abc import Mapping
from enum import Enum

logger = logging.getLogger(__name__)


class CanonicalStatus(Enum):
    CREATED = "created"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    UNKNOWN = "unknown"


_TRANSITIONS: dict[CanonicalStatus, frozenset[CanonicalStatus]] = {
    CanonicalStatus.CREATED: frozenset({
        CanonicalStatus.PENDING,
        CanonicalStatus.PROCESSING,
        CanonicalStatus.COMPLETED,
        CanonicalStatus.FAILED,
        CanonicalStatus.CANCELLED,
    }),
    CanonicalStatus.PENDING: frozenset({
        CanonicalStatus.PROCESSING,
        CanonicalStatus.COMPLETED,
        CanonicalStatus.FAILED,
        CanonicalStatus.CANCELLED,
    }),
    CanonicalStatus.PROCESSING: frozenset({
        CanonicalStatus.PENDING,
        CanonicalStatus.COMPLETED,
        CanonicalStatus.FAILED,
        CanonicalStatus.CANCELLED,
    }),
    CanonicalStatus.COMPLETED: frozenset({
        CanonicalStatus.REFUNDED,
        CanonicalStatus.DISPUTED,
    }),
    # A dispute is either won (back to completed) or lost (funds returned).
    CanonicalStatus.DISPUTED: frozenset({
        CanonicalStatus.COMPLETED,
        CanonicalStatus.REFUNDED,
    }),
    CanonicalStatus.FAILED: frozenset(),
    CanonicalStatus.CANCELLED: frozenset(),
    CanonicalStatus.REFUNDED: frozenset(),
    CanonicalStatus.UNKNOWN: frozenset(),
}

# Lifecycle depth, used to order out-of-order deliveries.
_RANK = {
    CanonicalStatus.CREATED: 0,
    CanonicalStatus.PENDING: 1,
    CanonicalStatus.PROCESSING: 2,
    CanonicalStatus.COMPLETED: 3,
    CanonicalStatus.FAILED: 3,
    CanonicalStatus.CANCELLED: 3,
    CanonicalStatus.DISPUTED: 4,
    CanonicalStatus.REFUNDED: 5,
}


def can_transition(current: CanonicalStatus, new: CanonicalStatus) -> bool:
    """Whether ``new`` is directly reachable from ``current``."""
    if current == new:
        return True
    return new in _TRANSITIONS[current]


def is_terminal(status: CanonicalStatus) -> bool:
    return status != CanonicalStatus.UNKNOWN and not _TRANSITIONS[status]


def is_refundable(status: CanonicalStatus) -> bool:
    return status == CanonicalStatus.COMPLETED


def _reachable(start: CanonicalStatus, target: CanonicalStatus) -> bool:
    seen = set()
    stack = [start]
    while stack:
        status = stack.pop()
        if status == target:
            return True
        if status in seen:
            continue
        seen.add(status)
        stack.extend(_TRANSITIONS[status])
    return False


def reconcile(current: CanonicalStatus | None, incoming: CanonicalStatus) -> CanonicalStatus:
    """Pick the status that should stand after ``incoming`` arrives.

    ``pay`` responses, polls and webhooks for one transaction can arrive in
    any order. A stale status never rolls a record back, and ``UNKNOWN``
    never replaces something known.

    Args:
        current: Last status recorded for the transaction, if any.
        incoming: Status just observed.

    Returns:
        The status the record should hold.
    """
    if current is None or current == CanonicalStatus.UNKNOWN:
        return incoming
    if incoming == CanonicalStatus.UNKNOWN:
        return current
    if _reachable(current, incoming):
        return incoming
    if _reachable(incoming, current):
        return current
    # Two terminal branches (e.g. failed vs completed): the deeper state wins.
    return incoming if _RANK[incoming] > _RANK[current] else current


class StatusMap:
    """Static raw-status -> canonical-status table for one gateway.

    Some providers send both a numeric response code and a textual status.
    The code table takes precedence when the code is mapped, the textual
    value is only a fallback.
    """

    def __init__(
        self,
        gateway: str,
        statuses: Mapping[str, CanonicalStatus],
        codes: Mapping[str, CanonicalStatus] | None = None,
    ):
        self.gateway = gateway
        self._statuses = self._build(statuses)
        self._codes = self._build(codes or {})

    @staticmethod
    def _build(table: Mapping[str, CanonicalStatus]) -> dict[str, CanonicalStatus]:
        built = {}
        for raw, status in table.items():
            if not isinstance(status, CanonicalStatus):
                raise TypeError(f"{raw!r} maps to {status!r}, not a CanonicalStatus")
            built[str(raw).strip().lower()] = status
        return built

    def normalize(self, raw_status=None, code=None) -> CanonicalStatus:
        if code is not None:
            mapped = self._codes.get(str(code).strip().lower())
            if mapped is not None:
                return mapped
        if raw_status is not None:
            mapped = self._statuses.get(str(raw_status).strip().lower())
            if mapped is not None:
                return mapped
        logger.debug(
            "Unmapped provider status",
            extra={"gateway": self.gateway, "raw_status": raw_status, "code": code},
        )
        return CanonicalStatus.UNKNOWN

    def __call__(self, raw_status=None, code=None) -> CanonicalStatus:
        return self.normalize(raw_status, code)

    @property
    def raw_statuses(self) -> list[str]:
        return list(self._statuses)

    @property
    def raw_codes(self) -> list[str]:
        return list(self._codes)

    def __contains__(self, raw_status) -> bool:
        return str(raw_status).strip().lower() in self._statuses
