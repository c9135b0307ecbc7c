"""
Tests for the capability matrix, admin preview, resolver
lifecycle and the shared allow check used by navigation and route guards.
"""

import pytest

from posdesk.core.permissions import (CAPABILITIES, NAVIGATION, ROLES,
                                      AccessControlResolver, ActualRole,
                                      PermissionSnapshot, PreviewingRole,
                                      ResolverState, access_denied_detail,
                                      capabilities_for, filter_navigation,
                                      is_allowed)

FLOOR = {"canManageLoans", "canProcessSales", "canManageCustomers"}
BACK_OFFICE = FLOOR | {"canManageProducts", "canManageExpenses", "canViewReports", "canManageSuppliers"}


def _fetch(role):
    async def fetch_role():
        return role

    return fetch_role


async def _ready(role: str) -> AccessControlResolver:
    resolver = AccessControlResolver()
    await resolver.load_permissions(_fetch(role))
    return resolver


# ── Capability matrix ───────────────────────────────────────────────
@pytest.mark.parametrize(
    "role,granted",
    [
        ("admin", set(CAPABILITIES)),
        ("manager", BACK_OFFICE),
        ("supervisor", BACK_OFFICE),
        ("cashier", FLOOR),
    ],
)
def test_capability_matrix(role, granted):
    caps = capabilities_for(role)
    assert set(caps) == set(CAPABILITIES)
    assert {name for name, ok in caps.items() if ok} == granted


def test_unknown_or_missing_role_grants_nothing():
    assert not any(capabilities_for(None).values())
    assert not any(capabilities_for("janitor").values())


def test_can_rejects_unknown_capability():
    with pytest.raises(ValueError):
        PermissionSnapshot(ActualRole("admin")).can("canLaunchRockets")


def test_snapshot_flags_follow_effective_role():
    snap = PermissionSnapshot(PreviewingRole(actual="admin", as_role="cashier"))
    data = snap.as_dict()
    assert data["role"] == "cashier"
    assert data["actual_role"] == "admin"
    assert data["is_cashier"] is True
    assert data["is_admin"] is False
    assert data["is_actual_admin"] is True
    assert data["is_preview_mode"] is True


# ── Resolver lifecycle ──────────────────────────────────────────────
@pytest.mark.asyncio
async def test_resolver_state_machine():
    resolver = AccessControlResolver()
    assert resolver.state is ResolverState.UNINITIALIZED
    assert resolver.current is None

    seen = {}

    async def fetch_role():
        seen["state"] = resolver.state
        seen["current"] = resolver.current
        return "manager"

    await resolver.load_permissions(fetch_role)
    assert seen == {"state": ResolverState.LOADING, "current": None}
    assert resolver.state is ResolverState.READY
    assert resolver.current.effective_role == "manager"


@pytest.mark.asyncio
async def test_signed_out_has_all_false():
    resolver = await _ready(None)
    assert resolver.state is ResolverState.READY
    assert resolver.snapshot.effective_role is None
    assert not any(resolver.snapshot.capabilities.values())


@pytest.mark.asyncio
async def test_load_error_keeps_previous_snapshot():
    resolver = await _ready("supervisor")

    async def broken():
        raise RuntimeError("profile store unavailable")

    snap = await resolver.load_permissions(broken)
    assert resolver.state is ResolverState.READY
    assert snap.effective_role == "supervisor"


@pytest.mark.asyncio
async def test_load_error_before_first_load_is_all_false():
    resolver = AccessControlResolver()

    async def broken():
        raise RuntimeError("boom")

    snap = await resolver.load_permissions(broken)
    assert not any(snap.capabilities.values())


@pytest.mark.asyncio
async def test_unknown_stored_role_keeps_previous_snapshot():
    resolver = await _ready("cashier")
    snap = await resolver.load_permissions(_fetch("owner"))
    assert snap.effective_role == "cashier"


@pytest.mark.asyncio
async def test_auth_change_discards_preview():
    resolver = await _ready("admin")
    resolver.set_preview_role("cashier")

    snap = await resolver.on_auth_state_change(_fetch("admin"))
    assert snap.is_preview_mode is False
    assert snap.effective_role == "admin"

    snap = await resolver.on_auth_state_change(_fetch(None))
    assert snap.effective_role is None


# ── Preview ─────────────────────────────────────────────────────────
@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["manager", "supervisor", "cashier"])
async def test_admin_preview_uses_previewed_capabilities(role):
    resolver = await _ready("admin")
    snap = resolver.set_preview_role(role)
    assert snap.effective_role == role
    assert snap.actual_role == "admin"
    assert snap.is_actual_admin is True
    assert snap.capabilities == capabilities_for(role)


@pytest.mark.asyncio
async def test_preview_admin_clears_preview():
    resolver = await _ready("admin")
    resolver.set_preview_role("cashier")
    snap = resolver.set_preview_role("admin")
    assert snap.is_preview_mode is False
    assert snap.preview_role is None
    assert snap.effective_role == "admin"


@pytest.mark.asyncio
async def test_clear_preview_restores_admin():
    resolver = await _ready("admin")
    resolver.set_preview_role("manager")
    snap = resolver.clear_preview_role()
    assert snap == PermissionSnapshot(ActualRole("admin"))


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["manager", "supervisor", "cashier"])
async def test_non_admin_preview_is_ignored(role):
    resolver = await _ready(role)
    before = resolver.snapshot
    assert resolver.set_preview_role("admin") is before
    assert resolver.set_preview_role("cashier") is before
    assert resolver.clear_preview_role() is before


@pytest.mark.asyncio
async def test_preview_rejects_unknown_role():
    resolver = await _ready("admin")
    with pytest.raises(ValueError):
        resolver.set_preview_role("owner")
    assert resolver.snapshot.is_preview_mode is False


# ── Consumers ───────────────────────────────────────────────────────
def test_loading_grants_provisionally():
    assert is_allowed(None, "canManageStaff", ["admin"]) is True
    assert len(filter_navigation(None)) == len(NAVIGATION)


def test_is_allowed_checks_capability_and_roles():
    preview = PermissionSnapshot(PreviewingRole(actual="admin", as_role="manager"))
    assert is_allowed(preview, "canViewReports") is True
    assert is_allowed(preview, "canManageStaff") is False
    assert is_allowed(preview, allowed_roles=["admin"]) is False
    assert is_allowed(PermissionSnapshot(), "canProcessSales") is False


def test_cashier_navigation():
    ids = {item.id for item in filter_navigation(PermissionSnapshot(ActualRole("cashier")))}
    assert {"dashboard", "pos", "saleshistory", "customers", "loans", "ai-voice"} == ids


def test_admin_sees_everything():
    items = filter_navigation(PermissionSnapshot(ActualRole("admin")))
    assert [i.id for i in items] == [i.id for i in NAVIGATION]


def test_manager_does_not_see_admin_section():
    ids = {item.id for item in filter_navigation(PermissionSnapshot(ActualRole("manager")))}
    assert "reports" in ids
    assert ids.isdisjoint({"staff", "user-roles", "audit-logs", "settings"})


def test_access_denied_detail_lists_roles():
    detail = access_denied_detail(PermissionSnapshot(ActualRole("cashier")), ["admin", "manager"])
    assert detail["title"] == "Access Denied"
    assert detail["required_roles"] == ["admin", "manager"]
    assert detail["your_role"] == "cashier"


def test_every_role_is_in_matrix():
    for role in ROLES:
        assert any(capabilities_for(role).values())
