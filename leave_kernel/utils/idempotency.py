"""
Idempotency keys for workflow transitions.

A client retrying a transition after a timeout sends the same nonce; the
resulting key matches the stored log entry and the retry is answered
from it instead of appending a second entry.
"""

from uuid import UUID


def transition_idempotency_key(
    request_id: UUID | str,
    action: str,
    nonce: str,
) -> str:
    """
    Format: request_id:action:nonce

    The key is stored on the workflow log entry under a unique constraint.

    Example:
        >>> transition_idempotency_key(uuid, "manager_approval", "c0ffee")
        "550e8400-e29b-41d4-a716-446655440000:manager_approval:c0ffee"
    """
    if not nonce:
        raise ValueError("nonce must be a non-empty string")
    return f"{request_id}:{action}:{nonce}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split a key into (request_id, action, nonce).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
