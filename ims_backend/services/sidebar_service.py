"""Sidebar menu builder and its cache wrapper."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ims_backend.services.cache_service import permissions_hash


@dataclass(frozen=True)
class MenuNode:
    id: str
    name: str
    name_so: str
    route: str
    permission_any: tuple = ()
    icon: str = ""
    children: tuple = ()


# Top-to-bottom order of the back-office navigation.
MENU: tuple[MenuNode, ...] = (
    MenuNode("dashboard", "Dashboard", "Dashboard", "/", ("dashboard.view",), "SpaceDashboard"),
    MenuNode("customers", "Customers", "Macaamiisha", "/customers", ("customers.view",), "Users"),
    MenuNode(
        "stock-management", "Stock Management", "Maamulka Kaydka", "/stock-management",
        ("stores.view",), "Box",
        children=(
            MenuNode("stock-items", "Items", "Alaab", "/stock-management/items",
                     ("items.view", "products.view", "stock.view", "warehouse_stock.view")),
            MenuNode("adjust-items", "Adjust Items", "Hagaaji Alaab", "/stock-management/adjust-items",
                     ("stock.adjust", "inventory_movements.create")),
            MenuNode("recount", "Recount", "Dib u tiris", "/stock-management/recount",
                     ("stock.recount", "inventory_movements.create")),
            MenuNode("stores", "Stores", "Bakhaarada", "/stock-management/stores", ("stores.view",)),
        ),
    ),
    MenuNode("products", "Products", "Alaab", "/products", ("items.view", "products.view"), "Package"),
    MenuNode("returns", "Returns", "Celin", "/return", ("returns.view", "sales.view"), "AssignmentReturn"),
    MenuNode("purchases", "Purchases", "Iibsashada", "/purchases", ("purchases.view",), "ShoppingBag"),
    MenuNode("sales", "Sales", "Iibka", "/sales", ("sales.view",), "ShoppingCart"),
    MenuNode("inventory", "Inventory", "Kayd", "/inventory",
             ("warehouse_stock.view", "stock.view", "inventory_movements.view"), "BarChart3"),
    MenuNode("suppliers", "Suppliers", "Alaab-qeybiyeyaal", "/suppliers", ("suppliers.view",), "Users"),
    MenuNode(
        "finance", "Finance", "Maaliyadda", "/finance", ("finance.reports",), "DollarSign",
        children=(
            MenuNode("finance-accounts", "Accounts", "Xisaabaadka", "/finance/accounts", ("accounts.view",)),
            MenuNode("finance-receipts", "Receipts", "Rasiidada", "/finance/receipts",
                     ("receipts.view", "accounts.view")),
            MenuNode("finance-expenses", "Expenses", "Kharashaadka", "/finance/expense", ("expenses.view",)),
            MenuNode("finance-payroll", "Payroll", "Mushaharka", "/finance/payroll",
                     ("payroll_lines.view", "payroll_runs.view")),
        ),
    ),
    MenuNode("employees", "Employees", "Shaqaalaha", "/employees", ("employees.view", "users.view"), "UserCircle"),
    MenuNode("reports", "Reports", "Warbixinno", "/reports", ("reports.all", "reports.view"), "BarChart3"),
    MenuNode(
        "system", "System", "Nidaamka", "/system", ("system.users.manage",), "Settings",
        children=(
            MenuNode("system-users", "Users", "Isticmaalayaasha", "/system/users",
                     ("users.view", "system.users.manage")),
            MenuNode("system-roles", "Roles", "Doorarka", "/system/roles",
                     ("roles.view", "system.roles.manage")),
            MenuNode("system-permissions", "Permissions", "Ogolaanshaha", "/system/permissions",
                     ("permissions.view", "system.permissions.manage")),
            MenuNode("system-audit", "Audit Logs", "Diiwaanka", "/system/logs",
                     ("audit_logs.view", "system.audit.view")),
        ),
    ),
    MenuNode("settings", "Settings", "Dejinta", "/settings", ("system.settings",), "Cog"),
)


def _visible(node: MenuNode, permissions: frozenset):
    children = [c for c in (_visible(child, permissions) for child in node.children) if c]
    own = not permissions.isdisjoint(node.permission_any)
    if not own and not children:
        return None
    item = {
        "id": node.id,
        "name": node.name,
        "name_so": node.name_so,
        "icon": node.icon,
        "route": node.route,
        "permission": node.permission_any[0] if node.permission_any else None,
    }
    if node.children:
        item["items"] = children
    return item


def build_menu(permissions: Iterable[str], menu: tuple = MENU) -> list[dict]:
    """Pure: the navigation tree visible to a holder of ``permissions``.

    A leaf appears iff the set holds one of its keys; a parent appears iff
    it holds one of the parent's keys or at least one child is visible.
    """
    perms = frozenset(permissions)
    return [item for item in (_visible(node, perms) for node in menu) if item]


@dataclass
class SidebarMenu:
    modules: list
    cached: bool
    timestamp: datetime


class SidebarService:
    """Caches ``build_menu`` output per (user, role, permissions hash)."""

    def __init__(self, cache, clock):
        self.cache = cache
        self.clock = clock

    def get_menu(self, user_id: int, role_id: int, permissions: Iterable[str]) -> SidebarMenu:
        perms = frozenset(permissions)
        perm_hash = permissions_hash(perms)
        hit = self.cache.get(user_id, role_id, perm_hash)
        if hit is not None:
            return SidebarMenu(modules=hit.menu, cached=True, timestamp=self.clock.now())

        modules = build_menu(perms)
        self.cache.put(user_id, role_id, perm_hash, modules)
        return SidebarMenu(modules=modules, cached=False, timestamp=self.clock.now())
