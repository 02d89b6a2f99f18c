"""Pytest fixtures: an app on an in-memory database with one seeded tenant."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    Credit,
    Expense,
    ExpenseCategory,
    Job,
    Laborer,
    Role,
    Supply,
    SupplyCategory,
    Tenant,
    Timesheet,
    User,
)

PASSWORD = "secret-pass"


@pytest.fixture
def app():
    # No app context stays pushed while tests issue requests, so each request
    # resolves its own current_user.
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def tenant(app) -> int:
    """Tenant id of the seeded tenant; a second tenant owns the 'outsider' user."""
    with app.app_context():
        return _seed_tenants()


def _seed_tenants() -> int:
    tenant = Tenant(name="Acme Contracting", vat_number="310000000000003", city="Riyadh")
    other = Tenant(name="Other Co", vat_number="320000000000003")
    db.session.add_all([tenant, other])
    db.session.flush()

    for username, role, tenant_id in (
        ("admin", Role.ADMIN, tenant.id),
        ("clerk", Role.USER, tenant.id),
        ("viewer", Role.READ_ONLY, tenant.id),
        ("outsider", Role.ADMIN, other.id),
    ):
        user = User(username=username, role=role.value, tenant_id=tenant_id)
        user.set_password(PASSWORD)
        db.session.add(user)

    db.session.commit()
    return tenant.id


@pytest.fixture
def activity(app, tenant: int) -> dict:
    """One month (March 2025) of timesheets, supplies, expenses and credits."""
    with app.app_context():
        return _seed_activity(tenant)


def _seed_activity(tenant_id: int) -> dict:
    concrete = Job(tenant_id=tenant_id, name="Concrete Works")
    finishing = Job(tenant_id=tenant_id, name="Finishing")
    db.session.add_all([concrete, finishing])
    db.session.flush()

    ali = Laborer(tenant_id=tenant_id, name="Ali", job_id=concrete.id, salary_rate=Decimal("20"), org_rate=Decimal("35"))
    omar = Laborer(tenant_id=tenant_id, name="Omar", job_id=finishing.id, salary_rate=Decimal("25"), org_rate=Decimal("40"))
    db.session.add_all([ali, omar])
    db.session.flush()

    for day in range(1, 11):
        db.session.add(
            Timesheet(
                tenant_id=tenant_id,
                laborer_id=ali.id,
                job_id=concrete.id,
                date=date(2025, 3, day),
                hours_worked=Decimal("5"),
                overtime=Decimal("1"),
                overtime_multiplier=Decimal("1.5"),
            )
        )
    db.session.add(
        Timesheet(
            tenant_id=tenant_id,
            laborer_id=omar.id,
            job_id=finishing.id,
            date=date(2025, 3, 4),
            hours_worked=Decimal("8"),
            overtime=Decimal("0"),
        )
    )
    # Outside the month
    db.session.add(
        Timesheet(
            tenant_id=tenant_id,
            laborer_id=omar.id,
            job_id=finishing.id,
            date=date(2025, 4, 1),
            hours_worked=Decimal("8"),
            overtime=Decimal("0"),
        )
    )

    cement = SupplyCategory(tenant_id=tenant_id, name="Cement")
    db.session.add(cement)
    db.session.flush()
    db.session.add_all(
        [
            Supply(tenant_id=tenant_id, category_id=cement.id, name="Bag A", date=date(2025, 3, 2), price=Decimal("10"), quantity=2),
            Supply(tenant_id=tenant_id, category_id=cement.id, name="Bag B", date=date(2025, 3, 3), price=Decimal("20"), quantity=1),
        ]
    )

    fuel = ExpenseCategory(tenant_id=tenant_id, name="Fuel")
    db.session.add(fuel)
    db.session.flush()
    db.session.add(
        Expense(tenant_id=tenant_id, category_id=fuel.id, description="Diesel", amount=Decimal("100"), date=date(2025, 3, 5))
    )

    db.session.add_all(
        [
            Credit(tenant_id=tenant_id, date=date(2025, 1, 15), amount=Decimal("1000"), type="DEPOSIT"),
            Credit(tenant_id=tenant_id, date=date(2025, 2, 10), amount=Decimal("300"), type="WITHDRAWAL"),
            Credit(tenant_id=tenant_id, date=date(2025, 3, 1), amount=Decimal("200"), type="ADVANCE", status="PENDING"),
            Credit(tenant_id=tenant_id, date=date(2025, 3, 2), amount=Decimal("999"), type="DEPOSIT", status="CANCELLED"),
        ]
    )
    db.session.commit()
    return {"ali": ali.id, "omar": omar.id, "concrete": concrete.id, "finishing": finishing.id}


def _login(app, username: str):
    client = app.test_client()
    resp = client.post("/auth/login", json={"username": username, "password": PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def admin_client(app, tenant):
    return _login(app, "admin")


@pytest.fixture
def viewer_client(app, tenant):
    return _login(app, "viewer")


@pytest.fixture
def outsider_client(app, tenant):
    return _login(app, "outsider")


@pytest.fixture
def clerk_client(app, tenant):
    return _login(app, "clerk")
