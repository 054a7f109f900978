"""
Shared fixtures: an app on TestingConfig (in-memory SQLite), the test client,
and a small factory for tenant-scoped rows.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from config import TestingConfig
from tender_engine import create_app
from tender_engine.extensions import db as _db
from tender_engine.models import (
    BudgetLine,
    Contract,
    ContractLineItem,
    Package,
    PackageItem,
    PackageLineItem,
    Project,
    Supplier,
    TenderInvite,
    User,
)

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


class Factory:
    """Creates committed rows for one tenant."""

    def __init__(self, tenant_id: str = TENANT):
        self.tenant_id = tenant_id
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _save(self, row):
        _db.session.add(row)
        _db.session.commit()
        return row

    def user(self, role: str = "manager", username: str | None = None, is_active: bool = True) -> User:
        return self._save(
            User(
                tenant_id=self.tenant_id,
                username=username or f"{role}-{self._next()}",
                role=role,
                is_active=is_active,
            )
        )

    def supplier(self, name: str | None = None, compliant: bool = True, **fields) -> Supplier:
        now = datetime.utcnow()
        values = {
            "insurance_valid_until": now + timedelta(days=180),
            "hs_certificate_valid": True,
            "accreditation_valid": True,
        }
        if not compliant:
            values["insurance_valid_until"] = now - timedelta(days=1)
        values.update(fields)
        return self._save(Supplier(tenant_id=self.tenant_id, name=name or f"Supplier {self._next()}", **values))

    def project(self, name: str = "Riverside Depot") -> Project:
        return self._save(Project(tenant_id=self.tenant_id, code=f"P-{self._next()}", name=name))

    def package(self, project: Project | None = None, name: str = "Groundworks") -> Package:
        project = project or self.project()
        return self._save(Package(tenant_id=self.tenant_id, project_id=project.id, name=name))

    def budget_line(self, project: Project, amount=None, qty=None, rate=None, description="Budget line") -> BudgetLine:
        return self._save(
            BudgetLine(
                tenant_id=self.tenant_id,
                project_id=project.id,
                code=f"BL-{self._next()}",
                description=description,
                cost_code="2100",
                qty=_dec(qty),
                rate=_dec(rate),
                amount=_dec(amount),
            )
        )

    def snapshot_line(
        self,
        package: Package,
        total=None,
        qty=None,
        rate=None,
        budget_line: BudgetLine | None = None,
        description: str = "Scope line",
    ) -> PackageLineItem:
        return self._save(
            PackageLineItem(
                tenant_id=self.tenant_id,
                package_id=package.id,
                budget_line_id=budget_line.id if budget_line else None,
                description=description,
                cost_code="2100",
                qty=_dec(qty),
                rate=_dec(rate),
                total=_dec(total),
            )
        )

    def legacy_link(self, package: Package, budget_line: BudgetLine) -> PackageItem:
        return self._save(
            PackageItem(tenant_id=self.tenant_id, package_id=package.id, budget_line_id=budget_line.id)
        )

    def invite(self, package: Package, supplier: Supplier) -> TenderInvite:
        return self._save(TenderInvite(tenant_id=self.tenant_id, package_id=package.id, supplier_id=supplier.id))

    def contract(self, package: Package, supplier: Supplier, status: str = "draft", title: str = "Existing") -> Contract:
        return self._save(
            Contract(
                tenant_id=self.tenant_id,
                project_id=package.project_id,
                package_id=package.id,
                supplier_id=supplier.id,
                title=title,
                value=Decimal("0.00"),
                status=status,
            )
        )

    def contract_line(self, contract: Contract, budget_line_id=None, package_line_item_id=None) -> ContractLineItem:
        return self._save(
            ContractLineItem(
                tenant_id=self.tenant_id,
                contract_id=contract.id,
                budget_line_id=budget_line_id,
                package_line_item_id=package_line_item_id,
                description="Contracted line",
                total=Decimal("10.00"),
            )
        )


def _dec(value):
    return None if value is None else Decimal(str(value))


@pytest.fixture
def factory(app) -> Factory:
    return Factory(TENANT)


@pytest.fixture
def other_factory(app) -> Factory:
    return Factory(OTHER_TENANT)


def auth_headers(user: User) -> dict:
    return {"X-User-Id": str(user.id), "X-Tenant-Id": user.tenant_id}


@pytest.fixture
def priced_package(factory):
    """Package with three snapshot lines summing to exactly 100.00."""
    project = factory.project()
    package = factory.package(project)
    for total in ("33.33", "33.33", "33.34"):
        factory.snapshot_line(package, total=total)
    return package
