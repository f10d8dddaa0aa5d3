"""Webhook authenticity strategies.

Every strategy answers one question: did this request come from the
provider? ``verify`` never raises on bad input, it returns False. Which
strategy a gateway uses is part of the adapter, not of the caller.
"""

import ipaddress
import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from urllib.parse import parse_qsl

from requests.structures import CaseInsensitiveDict

from paygate.utils.crypto import (
    canonical_query,
    constant_time_equals,
    generate_signature,
    hash_digest,
    verify_signature,
)

logger = logging.getLogger(__name__)


class SignatureStrategy:
    """Base strategy. Subclasses override ``verify``."""

    name = "base"
    # True when authenticity rests on something other than a body signature.
    out_of_band = False

    def verify(
        self,
        body: bytes,
        headers: Mapping[str, str],
        secret: bytes | None,
        remote_addr: str | None = None,
    ) -> bool:
        raise NotImplementedError

    def timestamp(self, body: bytes, headers: Mapping[str, str]) -> str | None:
        """Raw timestamp value covered by the signature, if the scheme has one."""
        return None

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name!r})>"


class HmacBodySignature(SignatureStrategy):
    """HMAC over the raw request body, hex or base64 encoded in a header.

    With ``timestamp_header`` set the signed message is
    ``timestamp + separator + body``, so the timestamp is covered by the
    signature and can be trusted for replay checks.
    """

    name = "hmac-body"

    def __init__(
        self,
        header: str = "X-Signature",
        algorithm: str = "sha256",
        encoding: str = "hex",
        prefix: str = "",
        timestamp_header: str | None = None,
        timestamp_separator: str = "",
    ):
        self.header = header
        self.algorithm = algorithm
        self.encoding = encoding
        self.prefix = prefix
        self.timestamp_header = timestamp_header
        self.timestamp_separator = timestamp_separator

    def _message(self, body: bytes, timestamp: str | None) -> bytes:
        if self.timestamp_header is None:
            return body
        return (timestamp + self.timestamp_separator).encode("utf-8") + body

    def verify(self, body, headers, secret, remote_addr=None) -> bool:
        headers = CaseInsensitiveDict(headers)
        signature = headers.get(self.header)
        if not signature or not isinstance(signature, str) or not secret:
            return False
        timestamp = None
        if self.timestamp_header is not None:
            timestamp = headers.get(self.timestamp_header)
            if not timestamp or not isinstance(timestamp, str):
                return False
        if self.prefix:
            if not signature.startswith(self.prefix):
                return False
            signature = signature[len(self.prefix):]
        return verify_signature(
            self._message(body, timestamp), secret, signature, self.algorithm, self.encoding,
        )

    def sign(self, body: bytes, secret: bytes | str, timestamp: str | None = None) -> dict[str, str]:
        """Headers a provider would send with ``body``."""
        if self.timestamp_header is not None and timestamp is None:
            timestamp = str(int(time.time()))
        signature = generate_signature(
            self._message(body, timestamp), secret, self.algorithm, self.encoding,
        )
        headers = {self.header: self.prefix + signature}
        if self.timestamp_header is not None:
            headers[self.timestamp_header] = timestamp
        return headers

    def timestamp(self, body, headers) -> str | None:
        if self.timestamp_header is None:
            return None
        return CaseInsensitiveDict(headers).get(self.timestamp_header)


class StripeStyleSignature(SignatureStrategy):
    """``t=<unix>,v1=<hex>`` header over ``"<t>.<body>"`` with HMAC-SHA256."""

    name = "hmac-timestamped"

    def __init__(self, header: str = "Stripe-Signature", scheme: str = "v1"):
        self.header = header
        self.scheme = scheme

    def _parse(self, value: str) -> tuple[str | None, list[str]]:
        timestamp = None
        signatures = []
        for element in value.split(","):
            key, _, item = element.strip().partition("=")
            if key == "t":
                timestamp = item
            elif key == self.scheme:
                signatures.append(item)
        return timestamp, signatures

    def verify(self, body, headers, secret, remote_addr=None) -> bool:
        value = CaseInsensitiveDict(headers).get(self.header)
        if not value or not isinstance(value, str) or not secret:
            return False
        timestamp, signatures = self._parse(value)
        if timestamp is None or not signatures:
            return False
        message = timestamp.encode("utf-8") + b"." + body
        return any(verify_signature(message, secret, sig) for sig in signatures)

    def sign(self, body: bytes, secret: bytes | str, timestamp: str | None = None) -> dict[str, str]:
        timestamp = timestamp or str(int(time.time()))
        signature = generate_signature(timestamp.encode("utf-8") + b"." + body, secret)
        return {self.header: f"t={timestamp},{self.scheme}={signature}"}

    def timestamp(self, body, headers) -> str | None:
        value = CaseInsensitiveDict(headers).get(self.header)
        if not value:
            return None
        return self._parse(value)[0]


class CanonicalFieldSignature(SignatureStrategy):
    """Digest over a canonical ``k=v&...`` rendering of form fields.

    Used by providers that sign structured fields instead of the raw body.
    Keys are sorted ascending, values URL-encoded, empty values dropped and
    the signature field itself excluded. When ``keyed`` is False the secret
    is appended as ``&passphrase=...`` and the string is hashed plainly;
    when True the string is HMAC'd with the secret.
    """

    name = "canonical-fields"

    def __init__(
        self,
        algorithm: str = "md5",
        field: str = "signature",
        header: str | None = None,
        keyed: bool = False,
        sort: bool = True,
    ):
        self.algorithm = algorithm
        self.field = field
        self.header = header
        self.keyed = keyed
        self.sort = sort

    def canonicalize(self, fields: Mapping[str, object], secret=None) -> str:
        query = canonical_query(fields, exclude=(self.field,), sort=self.sort)
        if secret and not self.keyed:
            passphrase = secret.decode("utf-8") if isinstance(secret, bytes) else secret
            query = f"{query}&{canonical_query({'passphrase': passphrase}, exclude=())}"
        return query

    def sign_fields(self, fields: Mapping[str, object], secret=None) -> str:
        canonical = self.canonicalize(fields, secret)
        if self.keyed:
            return generate_signature(canonical, secret, self.algorithm)
        return hash_digest(canonical, self.algorithm)

    @staticmethod
    def parse_fields(body: bytes) -> dict[str, str]:
        text = body.decode("utf-8")
        if text.lstrip().startswith("{"):
            data = json.loads(text)
            return {key: value for key, value in data.items() if not isinstance(value, (dict, list))}
        return dict(parse_qsl(text, keep_blank_values=True))

    def verify(self, body, headers, secret, remote_addr=None) -> bool:
        try:
            fields = self.parse_fields(body)
        except (UnicodeDecodeError, ValueError, AttributeError):
            return False
        if self.header:
            signature = CaseInsensitiveDict(headers).get(self.header)
        else:
            signature = fields.get(self.field)
        if not signature or not isinstance(signature, str):
            return False
        if self.keyed and not secret:
            return False
        return constant_time_equals(self.sign_fields(fields, secret), signature.strip().lower())


class AllowListTrust(SignatureStrategy):
    """Trust requests whose source address falls in the provider's networks.

    No body-level signature is involved; gateways relying on this alone log
    a warning on every webhook.
    """

    name = "ip-allow-list"
    out_of_band = True

    def __init__(self, networks: Iterable[str]):
        self.networks = [ipaddress.ip_network(n, strict=False) for n in networks]

    def verify(self, body, headers, secret, remote_addr=None) -> bool:
        if not remote_addr:
            return False
        try:
            address = ipaddress.ip_address(remote_addr.strip())
        except ValueError:
            return False
        return any(address in network for network in self.networks)


class BearerIntrospection(SignatureStrategy):
    """Ask the provider whether it sent the message.

    ``introspect(body, headers)`` performs the provider call (typically with a
    short-lived OAuth bearer token) and returns True when the provider
    vouches for the message.
    """

    name = "bearer-introspection"
    out_of_band = True

    def __init__(self, introspect: Callable[[bytes, Mapping[str, str]], bool], timestamp_header: str | None = None):
        self.introspect = introspect
        self.timestamp_header = timestamp_header

    def verify(self, body, headers, secret, remote_addr=None) -> bool:
        return bool(self.introspect(body, CaseInsensitiveDict(headers)))

    def timestamp(self, body, headers) -> str | None:
        if self.timestamp_header is None:
            return None
        return CaseInsensitiveDict(headers).get(self.timestamp_header)


class AllOf(SignatureStrategy):
    """Every member strategy must pass."""

    name = "all-of"

    def __init__(self, *strategies: SignatureStrategy):
        if not strategies:
            raise ValueError("AllOf needs at least one strategy")
        self.strategies = strategies
        self.out_of_band = all(s.out_of_band for s in strategies)

    def verify(self, body, headers, secret, remote_addr=None) -> bool:
        for strategy in self.strategies:
            if not strategy.verify(body, headers, secret, remote_addr=remote_addr):
                logger.debug("Webhook check failed", extra={"strategy": strategy.name})
                return False
        return True

    def timestamp(self, body, headers) -> str | None:
        for strategy in self.strategies:
            value = strategy.timestamp(body, headers)
            if value is not None:
                return value
        return None
