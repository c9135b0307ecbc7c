"""
Role → capability resolution, admin "preview as role", and the checks the
navigation list and route guards run against the result.

The role in force is modelled as a tagged union:

* ``ActualRole(role)``             — the stored role is used as-is.
* ``PreviewingRole(actual, as_role)`` — an admin evaluating the UI as
  another role; the stored role is untouched.

Capabilities are a pure function of the effective role and nothing else.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Union

logger = logging.getLogger(__name__)

ROLES = ("admin", "manager", "supervisor", "cashier")

CAPABILITIES = (
    "canManageProducts",
    "canManageStaff",
    "canManageSettings",
    "canManageExpenses",
    "canViewReports",
    "canManageLoans",
    "canProcessSales",
    "canManageCustomers",
    "canManageSuppliers",
)

_FLOOR = frozenset({"canManageLoans", "canProcessSales", "canManageCustomers"})
_BACK_OFFICE = _FLOOR | {
    "canManageProducts",
    "canManageExpenses",
    "canViewReports",
    "canManageSuppliers",
}

CAPABILITY_MATRIX: dict[str, frozenset[str]] = {
    "admin": frozenset(CAPABILITIES),
    "manager": _BACK_OFFICE,
    "supervisor": _BACK_OFFICE,
    "cashier": _FLOOR,
}

ACCESS_DENIED_TITLE = "Access Denied"
ACCESS_DENIED_MESSAGE = "You don't have permission to access this feature."


def capabilities_for(role: str | None) -> dict[str, bool]:
    """Full capability map for *role*; unknown or missing role grants nothing."""
    granted = CAPABILITY_MATRIX.get(role or "", frozenset())
    return {cap: cap in granted for cap in CAPABILITIES}


# ── Role view (tagged union) ────────────────────────────────────────
@dataclass(frozen=True)
class ActualRole:
    role: str

    @property
    def effective(self) -> str:
        return self.role

    @property
    def actual(self) -> str:
        return self.role


@dataclass(frozen=True)
class PreviewingRole:
    actual: str
    as_role: str

    @property
    def effective(self) -> str:
        return self.as_role


RoleView = Union[ActualRole, PreviewingRole]


@dataclass(frozen=True)
class PermissionSnapshot:
    """What the current actor may see. ``view is None`` means signed out."""

    view: RoleView | None = None

    @property
    def effective_role(self) -> str | None:
        return self.view.effective if self.view else None

    @property
    def actual_role(self) -> str | None:
        return self.view.actual if self.view else None

    @property
    def preview_role(self) -> str | None:
        return self.view.as_role if isinstance(self.view, PreviewingRole) else None

    @property
    def is_preview_mode(self) -> bool:
        return isinstance(self.view, PreviewingRole)

    @property
    def is_actual_admin(self) -> bool:
        return self.actual_role == "admin"

    @property
    def capabilities(self) -> dict[str, bool]:
        return capabilities_for(self.effective_role)

    def can(self, capability: str) -> bool:
        if capability not in CAPABILITIES:
            raise ValueError(f"Unknown capability: {capability}")
        return capability in CAPABILITY_MATRIX.get(self.effective_role or "", frozenset())

    def as_dict(self) -> dict:
        role = self.effective_role
        return {
            "role": role,
            "effective_role": role,
            "actual_role": self.actual_role,
            "preview_role": self.preview_role,
            "is_preview_mode": self.is_preview_mode,
            "is_actual_admin": self.is_actual_admin,
            "is_admin": role == "admin",
            "is_manager": role == "manager",
            "is_supervisor": role == "supervisor",
            "is_cashier": role == "cashier",
            "capabilities": self.capabilities,
        }


# ── Resolver ────────────────────────────────────────────────────────
class ResolverState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


RoleFetcher = Callable[[], Awaitable[Union[str, None]]]


class AccessControlResolver:
    """Holds one actor's permission snapshot for the lifetime of a session.

    ``fetch_role`` returns the stored role of the signed-in actor, or ``None``
    when nobody is signed in.  Read errors never propagate: they are logged
    and the previous snapshot stays in force (all-false before the first
    successful load).
    """

    def __init__(self) -> None:
        self.state = ResolverState.UNINITIALIZED
        self.snapshot = PermissionSnapshot()

    @property
    def current(self) -> PermissionSnapshot | None:
        """The snapshot once ready; ``None`` while still loading."""
        if self.state is ResolverState.READY:
            return self.snapshot
        return None

    async def load_permissions(self, fetch_role: RoleFetcher) -> PermissionSnapshot:
        self.state = ResolverState.LOADING
        try:
            role = await fetch_role()
        except Exception as exc:
            logger.error("Error loading permissions: %s", exc)
            self.state = ResolverState.READY
            return self.snapshot

        if role is None:
            self.snapshot = PermissionSnapshot()
        elif role not in ROLES:
            logger.warning("Ignoring unknown role %r on profile", role)
        else:
            self.snapshot = PermissionSnapshot(ActualRole(role))
        self.state = ResolverState.READY
        return self.snapshot

    async def on_auth_state_change(self, fetch_role: RoleFetcher) -> PermissionSnapshot:
        """Sign-in, sign-out or token refresh: drop everything and reload."""
        self.snapshot = PermissionSnapshot()
        return await self.load_permissions(fetch_role)

    def set_preview_role(self, role: str) -> PermissionSnapshot:
        if role not in ROLES:
            raise ValueError(f"Role must be one of: {ROLES}")
        if not self.snapshot.is_actual_admin:
            return self.snapshot
        if role == "admin":
            return self.clear_preview_role()
        self.snapshot = PermissionSnapshot(PreviewingRole(actual="admin", as_role=role))
        logger.info("Admin previewing as %s", role)
        return self.snapshot

    def clear_preview_role(self) -> PermissionSnapshot:
        if not self.snapshot.is_actual_admin:
            return self.snapshot
        self.snapshot = PermissionSnapshot(ActualRole("admin"))
        return self.snapshot


# ── Consumers ───────────────────────────────────────────────────────
def is_allowed(
    perms: PermissionSnapshot | None,
    capability: str | None = None,
    allowed_roles: Iterable[str] | None = None,
) -> bool:
    """Shared check for navigation entries and route guards.

    ``perms is None`` means the resolver is still loading; access is granted
    provisionally so nothing flickers in and out.
    """
    if perms is None:
        return True
    if capability is not None and not perms.can(capability):
        return False
    if allowed_roles is not None and perms.effective_role not in set(allowed_roles):
        return False
    return True


def access_denied_detail(
    perms: PermissionSnapshot | None,
    allowed_roles: Sequence[str] | None = None,
) -> dict:
    detail = {"title": ACCESS_DENIED_TITLE, "message": ACCESS_DENIED_MESSAGE}
    if allowed_roles:
        detail["required_roles"] = list(allowed_roles)
        detail["your_role"] = perms.effective_role if perms else None
    return detail


@dataclass(frozen=True)
class NavItem:
    id: str
    label: str
    section: str
    capability: str | None = None
    roles: tuple[str, ...] | None = None
    badge: str | None = None


NAVIGATION: tuple[NavItem, ...] = (
    NavItem("dashboard", "Overview", "main"),
    NavItem("pos", "Point of Sale", "sales", "canProcessSales", badge="AI"),
    NavItem("saleshistory", "Sales History", "sales", "canProcessSales"),
    NavItem("inventory", "Products", "inventory", "canManageProducts"),
    NavItem("stock", "Stock Management", "inventory", "canManageProducts"),
    NavItem("categories", "Categories & Units", "inventory", "canManageProducts"),
    NavItem("customers", "Customers", "crm", "canManageCustomers"),
    NavItem("suppliers", "Suppliers", "crm", "canManageSuppliers"),
    NavItem("expenses", "Expenses", "finance", "canManageExpenses"),
    NavItem("loans", "Loans", "finance", "canManageLoans"),
    NavItem("reports", "Reports", "reports", "canViewReports"),
    NavItem("reports-export", "Export Reports", "reports", "canViewReports"),
    NavItem("analytics", "Analytics", "reports", "canViewReports"),
    NavItem("ai-voice", "AI Assistant", "ai", badge="AI"),
    NavItem("staff", "Staff", "admin", "canManageStaff"),
    NavItem("user-roles", "User Roles", "admin", "canManageStaff", roles=("admin",)),
    NavItem("audit-logs", "Audit Logs", "admin", "canManageStaff", roles=("admin",)),
    NavItem("settings", "Settings", "admin", "canManageSettings"),
)


def filter_navigation(
    perms: PermissionSnapshot | None,
    items: Iterable[NavItem] = NAVIGATION,
) -> list[NavItem]:
    return [item for item in items if is_allowed(perms, item.capability, item.roles)]
