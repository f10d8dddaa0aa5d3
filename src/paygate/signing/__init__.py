from .strategies import (
    AllOf,
    AllowListTrust,
    BearerIntrospection,
    CanonicalFieldSignature,
    HmacBodySignature,
    SignatureStrategy,
    StripeStyleSignature,
)

__all__ = [
    "SignatureStrategy", "HmacBodySignature", "StripeStyleSignature",
    "CanonicalFieldSignature", "AllowListTrust", "BearerIntrospection", "AllOf",
]
