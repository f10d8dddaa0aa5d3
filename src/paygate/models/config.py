from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any

from paygate.errors import ConfigurationError

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_REPLAY_WINDOW = timedelta(minutes=5)

_SECRET_MARKERS = ("secret", "key", "password", "passphrase", "token", "salt")


class Mode(Enum):
    SANDBOX = "sandbox"
    LIVE = "live"


def _as_timedelta(value) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=float(value))


def _mask(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    return value[:4] + "..." if len(value) > 8 else "***"


@dataclass(frozen=True)
class GatewayConfig:
    """Credential bundle for one gateway in one mode.

    Built once by the host application and handed to exactly one gateway
    instance. ``credentials`` holds only the active mode's section.
    """

    name: str
    mode: Mode = Mode.SANDBOX
    credentials: Mapping[str, Any] = field(default_factory=dict)
    webhook_secret: str | None = None
    return_url: str | None = None
    webhook_url: str | None = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    replay_window: timedelta = DEFAULT_REPLAY_WINDOW
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        mode = self.mode
        if not isinstance(mode, Mode):
            try:
                mode = Mode(str(mode).lower())
            except ValueError:
                raise ConfigurationError(
                    f"Unknown mode {self.mode!r}, expected 'sandbox' or 'live'",
                    gateway=self.name,
                ) from None
        if float(self.timeout) <= 0:
            raise ConfigurationError("timeout must be positive", gateway=self.name)
        window = _as_timedelta(self.replay_window)
        if window <= timedelta(0):
            raise ConfigurationError("replay_window must be positive", gateway=self.name)

        object.__setattr__(self, "name", self.name.strip().lower())
        object.__setattr__(self, "mode", mode)
        object.__setattr__(self, "timeout", float(self.timeout))
        object.__setattr__(self, "replay_window", window)
        object.__setattr__(self, "credentials", MappingProxyType(dict(self.credentials)))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "GatewayConfig":
        """Build a config from the host's per-gateway settings block.

        Expected shape::

            {
                "mode": "sandbox",
                "sandbox": {"secret_key": "..."},
                "live": {"secret_key": "..."},
                "webhook_secret": "...",
                "return_url": "https://shop.example/return",
                "webhook_url": "https://shop.example/hooks/paystack",
                "timeout": 15,
                "replay_window": 300,
            }

        Any other top-level key ends up in ``options``.
        """
        data = dict(data)
        mode = str(data.pop("mode", Mode.SANDBOX.value)).lower()
        sections = {m.value: data.pop(m.value, None) for m in Mode}
        credentials = sections.get(mode)
        if credentials is None:
            raise ConfigurationError(
                f"No '{mode}' credentials configured for {name}", gateway=name,
            )
        if not isinstance(credentials, Mapping):
            raise ConfigurationError(
                f"'{mode}' credentials for {name} must be a mapping", gateway=name,
            )

        kwargs: dict[str, Any] = {}
        for key in ("webhook_secret", "return_url", "webhook_url", "timeout", "replay_window"):
            if data.get(key) is not None:
                kwargs[key] = data.pop(key)
            else:
                data.pop(key, None)

        return cls(name=name, mode=mode, credentials=credentials, options=data, **kwargs)

    @property
    def is_sandbox(self) -> bool:
        return self.mode == Mode.SANDBOX

    def credential(self, key: str) -> Any:
        """Return a required credential, raising ConfigurationError when unset."""
        value = self.credentials.get(key)
        if value in (None, ""):
            raise ConfigurationError(
                f"Missing '{key}' credential for {self.name} ({self.mode.value})",
                gateway=self.name,
            )
        return value

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def redacted(self) -> dict[str, Any]:
        """Loggable view of the config with secret-looking values masked."""
        credentials = {
            key: _mask(value) if any(m in key.lower() for m in _SECRET_MARKERS) else value
            for key, value in self.credentials.items()
        }
        return {
            "name": self.name,
            "mode": self.mode.value,
            "credentials": credentials,
            "webhook_secret": _mask(self.webhook_secret),
            "return_url": self.return_url,
            "webhook_url": self.webhook_url,
            "timeout": self.timeout,
            "replay_window": self.replay_window.total_seconds(),
        }


def load_gateway_configs(settings: Mapping[str, Mapping[str, Any]]) -> dict[str, GatewayConfig]:
    """Build ``{name: GatewayConfig}`` from a ``{gateway_name: {...}}`` block."""
    return {
        name.strip().lower(): GatewayConfig.from_mapping(name, section)
        for name, section in settings.items()
    }
