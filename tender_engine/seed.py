"""
tender_engine/seed.py

Seed a demo tenant: users per role, a project with budget lines, suppliers
(one compliant, one with lapsed insurance), and two packages, one on snapshot lines
and one on legacy budget-line links.

Rules:
- Safe to run multiple times (idempotent): rows are matched by natural keys
  (username, supplier name, project code, package name) and only created if missing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from .extensions import db
from .models import (
    BudgetLine,
    Package,
    PackageItem,
    PackageLineItem,
    Project,
    Supplier,
    User,
)

logger = logging.getLogger(__name__)

DEMO_TENANT = "demo"

DEMO_USERS = [
    # username, role
    ("admin", "admin"),
    ("manager", "manager"),
    ("buyer", "buyer"),
    ("viewer", "viewer"),
]

DEMO_BUDGET_LINES = [
    # code, description, cost_code, qty, rate, amount
    ("GW-01", "Excavation", "2100", Decimal("120.000"), Decimal("25.00"), None),
    ("GW-02", "Concrete foundations", "2200", Decimal("40.000"), Decimal("180.00"), None),
    ("GW-03", "Drainage allowance", "2300", None, None, Decimal("3500.00")),
    ("ME-01", "Electrical first fix", "5100", Decimal("1.000"), Decimal("12500.00"), None),
]


def _get_or_create(model, defaults=None, **lookup):
    row = model.query.filter_by(**lookup).first()
    if row:
        return row, False
    row = model(**lookup, **(defaults or {}))
    db.session.add(row)
    db.session.flush()
    return row, True


def seed_demo_data(tenant_id: str = DEMO_TENANT) -> dict:
    """Create the demo data set; returns counts of rows created this run."""
    created = {"users": 0, "suppliers": 0, "projects": 0, "budgetLines": 0, "packages": 0}

    for username, role in DEMO_USERS:
        _, is_new = _get_or_create(User, defaults={"role": role}, tenant_id=tenant_id, username=username)
        created["users"] += int(is_new)

    now = datetime.utcnow()
    _, is_new = _get_or_create(
        Supplier,
        defaults={
            "email": "bids@northbuild.example",
            "insurance_valid_until": now + timedelta(days=365),
            "hs_certificate_valid": True,
            "accreditation_valid": True,
        },
        tenant_id=tenant_id,
        name="Northbuild Civils Ltd",
    )
    created["suppliers"] += int(is_new)

    _, is_new = _get_or_create(
        Supplier,
        defaults={
            "email": "tenders@ridgeway.example",
            "insurance_valid_until": now - timedelta(days=30),
            "hs_accreditations": "CHAS",
            "compliance_status": "approved",
        },
        tenant_id=tenant_id,
        name="Ridgeway Groundworks",
    )
    created["suppliers"] += int(is_new)

    project, is_new = _get_or_create(Project, defaults={"name": "Riverside Depot"}, tenant_id=tenant_id, code="RD-001")
    created["projects"] += int(is_new)

    budget_lines = []
    for code, description, cost_code, qty, rate, amount in DEMO_BUDGET_LINES:
        line, is_new = _get_or_create(
            BudgetLine,
            defaults={"description": description, "cost_code": cost_code, "qty": qty, "rate": rate, "amount": amount},
            tenant_id=tenant_id,
            project_id=project.id,
            code=code,
        )
        budget_lines.append(line)
        created["budgetLines"] += int(is_new)

    groundworks, is_new = _get_or_create(Package, tenant_id=tenant_id, project_id=project.id, name="Groundworks")
    created["packages"] += int(is_new)
    if is_new:
        for line in budget_lines[:3]:
            db.session.add(
                PackageLineItem(
                    tenant_id=tenant_id,
                    package_id=groundworks.id,
                    budget_line_id=line.id,
                    description=line.description,
                    cost_code=line.cost_code,
                    qty=line.qty,
                    rate=line.rate,
                    total=line.amount,
                )
            )

    electrical, is_new = _get_or_create(Package, tenant_id=tenant_id, project_id=project.id, name="Electrical")
    created["packages"] += int(is_new)
    if is_new:
        db.session.add(PackageItem(tenant_id=tenant_id, package_id=electrical.id, budget_line_id=budget_lines[3].id))

    db.session.commit()
    logger.info("demo data seeded tenant=%s created=%s", tenant_id, created)
    return created
