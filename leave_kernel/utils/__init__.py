"""Utility modules for the leave kernel."""

from leave_kernel.utils.hashing import canonicalize_json, hash_payload
from leave_kernel.utils.idempotency import (
    parse_idempotency_key,
    transition_idempotency_key,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "parse_idempotency_key",
    "transition_idempotency_key",
]
