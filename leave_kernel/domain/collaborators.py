"""
Narrow interfaces to collaborators outside the kernel.

Both are structural ``Protocol`` types: any object with the right method
satisfies them, so the hosting application plugs in its own identity
backend and messaging channel without subclassing.
"""

from __future__ import annotations

from typing import Protocol

from leave_kernel.domain.leave import Actor, Role
from leave_kernel.exceptions import AuthorizationError


class IdentityProvider(Protocol):
    """Resolves a session token into the acting user."""

    def resolve(self, token: str) -> Actor | None:
        """Return the actor for ``token``, or None when unknown."""
        ...


class NotificationDispatcher(Protocol):
    """Fire-and-forget message delivery."""

    def send(self, user_id: str, message: str) -> None:
        ...


# Mailbox addresses for role groups. Individual users are addressed by id.

def manager_mailbox(department: str) -> str:
    return f"role:{Role.MANAGER.value}:{department}"


def role_mailbox(role: Role) -> str:
    return f"role:{role.value}"


def resolve_actor(provider: IdentityProvider, token: str) -> Actor:
    """Resolve ``token`` or fail with AuthorizationError."""
    actor = provider.resolve(token)
    if actor is None:
        raise AuthorizationError(
            actor_id="anonymous",
            actor_role="unknown",
            action="resolve_identity",
            reason="session token is not recognised",
        )
    return actor
