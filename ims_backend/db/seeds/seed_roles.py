"""Seed default roles and their grants."""

import logging

from sqlalchemy.orm import Session
from ims_backend.models.permission import Permission
from ims_backend.models.role import Role, RolePermission
from ims_backend.db.seeds.seed_permissions import PERMISSION_KEYS

logger = logging.getLogger("ims_backend.seeds")

ROLES = [
    {
        "role_code": "admin",
        "role_name": "Administrator",
        "description": "Full system access",
        "is_system": True,
        "grants": PERMISSION_KEYS,
    },
    {
        "role_code": "manager",
        "role_name": "Store Manager",
        "description": "Runs a store: stock, purchases, sales and reports",
        "is_system": True,
        "grants": [
            "dashboard.view", "customers.view", "customers.create", "customers.update",
            "items.view", "items.create", "items.update", "stores.view", "stock.view",
            "stock.adjust", "stock.recount", "warehouse_stock.view",
            "inventory_movements.view", "inventory_movements.create",
            "returns.view", "purchases.view", "purchases.create",
            "sales.view", "sales.create", "sales.void", "suppliers.view",
            "reports.view", "employees.view",
        ],
    },
    {
        "role_code": "cashier",
        "role_name": "Cashier",
        "description": "Point of sale",
        "is_system": True,
        "grants": ["dashboard.view", "customers.view", "items.view", "sales.view", "sales.create"],
    },
]


def seed_roles(db: Session) -> None:
    """Insert default roles if they don't already exist; grants only on creation."""
    perm_ids = dict(db.query(Permission.perm_key, Permission.perm_id).all())
    created = 0
    for data in ROLES:
        if db.query(Role).filter(Role.role_code == data["role_code"]).first():
            continue
        role = Role(
            role_code=data["role_code"],
            role_name=data["role_name"],
            description=data["description"],
            is_system=data["is_system"],
        )
        db.add(role)
        db.flush()
        for key in data["grants"]:
            if key in perm_ids:
                db.add(RolePermission(role_id=role.role_id, perm_id=perm_ids[key]))
        created += 1

    db.commit()
    logger.info("Seeded %d roles", created)
