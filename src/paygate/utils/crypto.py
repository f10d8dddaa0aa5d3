import base64
import hashlib
import hmac
from collections.abc import Mapping
from urllib.parse import quote_plus

SUPPORTED_ALGORITHMS = ("md5", "sha1", "sha256", "sha512")


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _encode(digest: bytes, encoding: str) -> str:
    if encoding == "hex":
        return digest.hex()
    if encoding == "base64":
        return base64.b64encode(digest).decode("ascii")
    raise ValueError(f"Unsupported signature encoding: {encoding}")


def _check_algorithm(algorithm: str) -> str:
    algorithm = algorithm.lower()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported digest algorithm: {algorithm}")
    return algorithm


def generate_signature(
    message: bytes | str,
    secret: bytes | str,
    algorithm: str = "sha256",
    encoding: str = "hex",
) -> str:
    """HMAC ``message`` with ``secret``."""
    digest = hmac.new(
        _to_bytes(secret),
        _to_bytes(message),
        getattr(hashlib, _check_algorithm(algorithm)),
    ).digest()
    return _encode(digest, encoding)


def constant_time_equals(expected: str, signature) -> bool:
    """Compare a computed signature with an untrusted one in constant time.

    Anything that is not a string compares unequal. Both sides are compared
    as UTF-8 bytes, so non-ASCII input is just a mismatch.
    """
    if not isinstance(signature, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8", "surrogatepass"))


def verify_signature(
    message: bytes | str,
    secret: bytes | str,
    signature: str,
    algorithm: str = "sha256",
    encoding: str = "hex",
) -> bool:
    """Constant-time check of an HMAC signature."""
    if not signature or not isinstance(signature, str):
        return False
    expected = generate_signature(message, secret, algorithm, encoding)
    signature = signature.strip()
    if encoding == "hex":
        signature = signature.lower()
    return constant_time_equals(expected, signature)


def hash_digest(message: bytes | str, algorithm: str = "md5", encoding: str = "hex") -> str:
    """Plain (unkeyed) digest, for providers that hash secret-suffixed strings."""
    digest = hashlib.new(_check_algorithm(algorithm), _to_bytes(message)).digest()
    return _encode(digest, encoding)


def canonical_query(
    fields: Mapping[str, object],
    exclude: tuple[str, ...] = ("signature",),
    sort: bool = True,
) -> str:
    """``key=value&...`` over the non-empty fields, values URL-encoded.

    Keys are ordered ascending when ``sort`` is set, otherwise insertion
    order is kept. Signer and verifier must agree on every detail here or
    both legitimate and forged traffic fail alike.
    """
    items = [
        (key, value)
        for key, value in fields.items()
        if key not in exclude and value is not None and str(value) != ""
    ]
    if sort:
        items.sort(key=lambda item: item[0])
    return "&".join(f"{key}={quote_plus(str(value).strip())}" for key, value in items)
