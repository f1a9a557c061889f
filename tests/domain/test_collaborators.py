"""Tests for collaborator interfaces, mailboxes, clocks and idempotency keys."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from leave_kernel.domain.clock import DeterministicClock, SystemClock
from leave_kernel.domain.collaborators import manager_mailbox, resolve_actor, role_mailbox
from leave_kernel.domain.leave import QUOTA_OVERRIDE_PRIVILEGE, Actor, Role
from leave_kernel.exceptions import AuthorizationError
from leave_kernel.utils.idempotency import parse_idempotency_key, transition_idempotency_key


class StaticIdentityProvider:
    def __init__(self, actors):
        self._actors = actors

    def resolve(self, token):
        return self._actors.get(token)


class TestIdentity:

    def test_known_token(self, manager):
        provider = StaticIdentityProvider({"tok-1": manager})
        assert resolve_actor(provider, "tok-1") is manager

    def test_unknown_token(self):
        with pytest.raises(AuthorizationError, match="not recognised"):
            resolve_actor(StaticIdentityProvider({}), "expired")

    def test_privileges(self, privileged_dgpec, dgpec):
        assert privileged_dgpec.has_privilege(QUOTA_OVERRIDE_PRIVILEGE)
        assert not dgpec.has_privilege(QUOTA_OVERRIDE_PRIVILEGE)


def test_mailboxes():
    assert manager_mailbox("finance") == "role:manager:finance"
    assert role_mailbox(Role.DGPEC) == "role:dgpec"
    assert role_mailbox(Role.DG) == "role:dg"


class TestClocks:

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc

    def test_deterministic_clock(self):
        start = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        clock = DeterministicClock(start)

        assert clock.now() == clock.now() == start
        assert clock.tick() == start + timedelta(seconds=1)
        clock.advance(59)
        assert clock.now() == start + timedelta(minutes=1)
        assert clock.today() == start.date()

    def test_auto_tick(self):
        clock = DeterministicClock(auto_tick=True)
        first, second = clock.now(), clock.now()
        assert second - first == timedelta(seconds=1)


class TestIdempotencyKeys:

    def test_format_and_parse(self):
        request_id = UUID("550e8400-e29b-41d4-a716-446655440000")
        key = transition_idempotency_key(request_id, "manager_approval", "c0ffee")

        assert key == "550e8400-e29b-41d4-a716-446655440000:manager_approval:c0ffee"
        assert parse_idempotency_key(key) == (str(request_id), "manager_approval", "c0ffee")

    def test_nonce_may_contain_separator(self):
        assert parse_idempotency_key("r:a:n:1") == ("r", "a", "n:1")

    def test_empty_nonce(self):
        with pytest.raises(ValueError):
            transition_idempotency_key("r", "a", "")

    @pytest.mark.parametrize("key", ["", "r:a", "r::n"])
    def test_malformed(self, key):
        with pytest.raises(ValueError):
            parse_idempotency_key(key)
