"""Tests for the capability registry and requires()."""

from dataclasses import dataclass

import pytest

from traffic_api.core.permissions import CAPABILITY_REGISTRY, Capability, requires, roles_with
from traffic_api.db.enums import Role


@dataclass
class FakeSession:
    role: object
    is_active: bool = True


def test_every_capability_is_registered():
    assert set(CAPABILITY_REGISTRY) == set(Capability)


@pytest.mark.parametrize("role,allowed", [
    (Role.ADMIN, True),
    (Role.TEAM, False),
    (Role.PARTNER, False),
])
def test_merge_is_admin_only(role, allowed):
    assert bool(requires(FakeSession(role), Capability.MERGE_CONVERSATIONS)) is allowed


def test_view_all_audiences_is_admin_only():
    assert roles_with(Capability.VIEW_ALL_AUDIENCES) == frozenset({Role.ADMIN})


def test_string_role_is_accepted():
    assert requires(FakeSession("admin"), Capability.MANAGE_AUDIENCES)


def test_unknown_role_is_denied_with_reason():
    decision = requires(FakeSession("superuser"), Capability.VIEW_CHAT)
    assert not decision
    assert decision.reason == "Unknown role 'superuser'"


def test_inactive_user_is_denied():
    decision = requires(FakeSession(Role.ADMIN, is_active=False), Capability.VIEW_CHAT)
    assert not decision
    assert decision.reason == "Account disabled"


def test_denial_names_the_role():
    decision = requires(FakeSession(Role.PARTNER), Capability.MERGE_CONVERSATIONS)
    assert decision.reason == "Role 'partner' not authorized for this action"
