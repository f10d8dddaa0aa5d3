import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl

from requests.structures import CaseInsensitiveDict


@dataclass(frozen=True)
class WebhookRequest:
    """Raw inbound webhook call as the host application received it."""

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    remote_addr: str | None = None

    def __post_init__(self):
        body = self.body.encode("utf-8") if isinstance(self.body, str) else bytes(self.body)
        object.__setattr__(self, "body", body)
        object.__setattr__(self, "headers", CaseInsensitiveDict(self.headers))

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name, default)

    @property
    def content_type(self) -> str:
        return (self.header("Content-Type") or "").split(";")[0].strip().lower()

    def json(self) -> Any:
        """Decode the body as JSON. Raises ValueError on malformed input."""
        return json.loads(self.body.decode("utf-8"))

    def form(self) -> dict[str, str]:
        """Decode a form-encoded body, keeping the last value of repeated keys."""
        return dict(parse_qsl(self.body.decode("utf-8"), keep_blank_values=True))


@dataclass
class WebhookEvent:
    event_type: str
    raw_payload: Mapping[str, Any]
    event_id: str | None = None
    transaction_id: str | None = None
    timestamp: datetime | None = None  # provider-asserted send time, if any
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    signature_valid: bool = False
