"""Seed the permission catalog."""

import logging

from sqlalchemy.orm import Session
from ims_backend.models.permission import Permission

logger = logging.getLogger("ims_backend.seeds")

PERMISSION_KEYS = [
    "dashboard.view",
    "customers.view", "customers.create", "customers.update", "customers.delete",
    "items.view", "items.create", "items.update", "items.delete",
    "products.view",
    "stores.view", "stock.view", "stock.adjust", "stock.recount",
    "warehouse_stock.view", "inventory_movements.view", "inventory_movements.create",
    "returns.view", "purchases.view", "purchases.create",
    "sales.view", "sales.create", "sales.void",
    "suppliers.view",
    "finance.reports", "accounts.view", "receipts.view", "expenses.view",
    "payroll_lines.view", "payroll_runs.view",
    "employees.view",
    "reports.view", "reports.all",
    "users.view", "users.update",
    "roles.view", "roles.update",
    "permissions.view",
    "audit_logs.view", "audit_logs.delete",
    "system.users.manage", "system.roles.manage", "system.permissions.manage",
    "system.audit.view", "system.settings",
]


def seed_permissions(db: Session) -> int:
    """Insert catalog keys that don't already exist. Returns the number added."""
    existing = {key for (key,) in db.query(Permission.perm_key).all()}
    added = 0
    for key in PERMISSION_KEYS:
        if key in existing:
            continue
        module, _, action = key.rpartition(".")
        db.add(Permission(
            perm_key=key,
            perm_name=f"{module.replace('_', ' ').title()} {action}",
            module=module.split(".")[0],
        ))
        added += 1
    db.commit()
    logger.info("Seeded %d permissions", added)
    return added
