from .crypto import canonical_query, constant_time_equals, generate_signature, hash_digest, verify_signature

__all__ = ["generate_signature", "verify_signature", "constant_time_equals", "hash_digest", "canonical_query"]
