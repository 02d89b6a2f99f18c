"""
backoffice/seed.py

Seed a demo tenant with users and master data.

Rules:
- Safe to run multiple times (idempotent).
- Matches existing rows by natural key (tenant name, username, job name,
  category name) and never recreates them.

NOTE:
- Timesheets, supplies, expenses and credits are operational data and are not
  seeded here.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from .extensions import db
from .models import ExpenseCategory, Job, Laborer, Role, SupplyCategory, Tenant, User

logger = logging.getLogger(__name__)

DEMO_TENANT = {
    "name": "Demo Contracting Co.",
    "vat_number": "300000000000003",
    "address": "King Fahad Road",
    "city": "Riyadh",
}

DEMO_USERS = [
    # username, role
    ("admin", Role.ADMIN),
    ("accountant", Role.USER),
    ("auditor", Role.READ_ONLY),
]

DEMO_JOBS = ["Site Preparation", "Concrete Works", "Finishing"]

DEMO_LABORERS = [
    # name, job, salary_rate, org_rate
    ("Ahmed Ali", "Site Preparation", Decimal("20.00"), Decimal("35.00")),
    ("Rashid Khan", "Concrete Works", Decimal("22.00"), Decimal("40.00")),
    ("Samir Haddad", "Finishing", Decimal("25.00"), Decimal("45.00")),
]

DEMO_SUPPLY_CATEGORIES = ["Cement", "Steel", "Tools"]

DEMO_EXPENSE_CATEGORIES = ["Fuel", "Rent", "Utilities", "Transport"]


def _get_or_create(model, defaults=None, **lookup):
    instance = model.query.filter_by(**lookup).first()
    if instance:
        return instance, False
    instance = model(**lookup, **(defaults or {}))
    db.session.add(instance)
    db.session.flush()
    return instance, True


def seed_demo(password: str = "change-me") -> Tenant:
    """
    Create the demo tenant and its master data if missing.

    Returns the tenant. Commits once at the end.
    """
    tenant, created = _get_or_create(
        Tenant,
        name=DEMO_TENANT["name"],
        defaults={k: v for k, v in DEMO_TENANT.items() if k != "name"},
    )
    if created:
        logger.info("seeded tenant %s", tenant.name)

    for username, role in DEMO_USERS:
        user = User.query.filter_by(username=username).first()
        if user:
            continue
        user = User(username=username, role=role.value, tenant_id=tenant.id, is_active=True)
        user.set_password(password)
        db.session.add(user)
        logger.info("seeded user %s (%s)", username, role.value)

    jobs = {}
    for name in DEMO_JOBS:
        jobs[name], _ = _get_or_create(Job, tenant_id=tenant.id, name=name)

    for name, job_name, salary_rate, org_rate in DEMO_LABORERS:
        _get_or_create(
            Laborer,
            tenant_id=tenant.id,
            name=name,
            defaults={"job_id": jobs[job_name].id, "salary_rate": salary_rate, "org_rate": org_rate},
        )

    for name in DEMO_SUPPLY_CATEGORIES:
        _get_or_create(SupplyCategory, tenant_id=tenant.id, name=name)

    for name in DEMO_EXPENSE_CATEGORIES:
        _get_or_create(ExpenseCategory, tenant_id=tenant.id, name=name)

    db.session.commit()
    return tenant
