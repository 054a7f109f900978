"""
Tender Evaluation & Award Engine – Domain Models

Covers:
- Tenancy-scoped master data (Project, Supplier, BudgetLine)
- Sourcing packages and their two line-item shapes:
  - PackageLineItem (priced snapshot owned by the package)
  - PackageItem -> BudgetLine (legacy join onto the shared budget)
- Tendering: TenderInvite, Submission, Tender
- Award outcome: AwardDecision, ComplianceOverride, Contract, ContractLineItem
- Optional sourcing tables: DirectAward, InternalResourceAssignment
- AuditLog (write-only sink)

IMPORTANT:
- Every table carries tenant_id; every lookup must be tenant scoped.
- Monetary values are db.Numeric and handled as Decimal in Python, never float.
- AwardDecision and ComplianceOverride are append-only.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------
# Statuses
# ---------------------------------------------------------------------
PACKAGE_STATUS_DRAFT = "Draft"
PACKAGE_STATUS_TENDER = "Tender"
PACKAGE_STATUS_AWARDED = "Awarded"

INVITE_STATUS_INVITED = "Invited"
INVITE_STATUS_SUBMITTED = "Submitted"

SUBMISSION_STATUS_SUBMITTED = "Submitted"
SUBMISSION_STATUS_AWARDED = "Awarded"
SUBMISSION_STATUS_UNSUCCESSFUL = "Unsuccessful"

DECISION_APPROVED = "approved"
DECISION_APPROVED_WITH_OVERRIDE = "approved_with_override"

AWARD_TYPE_TENDER = "tender"
AWARD_TYPE_DIRECT = "direct"


# ---------------------------------------------------------------------
# Users (identity resolved upstream; role drives permissions)
# ---------------------------------------------------------------------
ROLE_PERMISSIONS = {
    "manager": {
        "procurement:invite",
        "procurement:submit",
        "procurement:score",
        "procurement:award",
        "procurement:override_compliance",
        "procurement:source",
        "contracts:manage",
    },
    "buyer": {
        "procurement:invite",
        "procurement:submit",
        "procurement:score",
        "procurement:award",
        "procurement:source",
    },
    "viewer": set(),
}


class User(UserMixin, db.Model):
    """Platform user inside one tenant."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    username = db.Column(db.String(80), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="viewer")

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (db.UniqueConstraint("tenant_id", "username", name="uq_user_tenant_username"),)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def has_permission(self, permission: str) -> bool:
        if self.is_admin:
            return True
        return permission in ROLE_PERMISSIONS.get(self.role, set())

    def can_mutate(self) -> bool:
        return self.is_admin or bool(ROLE_PERMISSIONS.get(self.role))

    def __repr__(self):
        return f"<User {self.tenant_id}/{self.username}>"


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    code = db.Column(db.String(50), index=True)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    packages = db.relationship("Package", back_populates="project", lazy=True)

    def __repr__(self):
        return f"<Project {self.code or self.id} - {self.name}>"


class Supplier(db.Model):
    """
    Supplier with the compliance evidence the award gate reads.

    NOTE:
    - hs_certificate_valid / accreditation_valid are nullable on purpose.
      None means "not captured", and the gate then falls back to
      hs_accreditations / compliance_status.
    """

    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))

    insurance_valid_until = db.Column(db.DateTime, nullable=True)
    hs_certificate_valid = db.Column(db.Boolean, nullable=True)
    hs_accreditations = db.Column(db.Text, nullable=True)
    accreditation_valid = db.Column(db.Boolean, nullable=True)
    compliance_status = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_ref(self) -> dict:
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Supplier {self.id} - {self.name}>"


class BudgetLine(db.Model):
    """Shared project budget line (legacy source of package pricing)."""

    __tablename__ = "budget_lines"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    code = db.Column(db.String(50))
    description = db.Column(db.Text)
    cost_code = db.Column(db.String(50))

    qty = db.Column(db.Numeric(14, 3), nullable=True)
    rate = db.Column(db.Numeric(14, 2), nullable=True)
    amount = db.Column(db.Numeric(14, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)


# ---------------------------------------------------------------------
# Packages and line items
# ---------------------------------------------------------------------
class Package(db.Model):
    __tablename__ = "packages"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PACKAGE_STATUS_DRAFT, index=True)

    award_supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    award_value = db.Column(db.Numeric(14, 2), nullable=True)
    awarded_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="packages")
    award_supplier = db.relationship("Supplier", foreign_keys=[award_supplier_id])

    invites = db.relationship(
        "TenderInvite",
        back_populates="package",
        cascade="all, delete-orphan",
    )
    submissions = db.relationship(
        "Submission",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="Submission.id",
    )

    @property
    def is_awarded(self) -> bool:
        return self.award_supplier_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "name": self.name,
            "status": self.status,
            "awardSupplierId": self.award_supplier_id,
            "awardValue": self.award_value,
            "awardedAt": _iso(self.awarded_at),
        }


class PackageLineItem(db.Model):
    """Priced scope line snapshotted onto the package."""

    __tablename__ = "package_line_items"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    package_id = db.Column(
        db.Integer,
        db.ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # budget line this snapshot was copied from (if any)
    budget_line_id = db.Column(
        db.Integer,
        db.ForeignKey("budget_lines.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        unique=True,
    )

    description = db.Column(db.Text)
    cost_code = db.Column(db.String(50))

    qty = db.Column(db.Numeric(14, 3), nullable=True)
    rate = db.Column(db.Numeric(14, 2), nullable=True)
    total = db.Column(db.Numeric(14, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class PackageItem(db.Model):
    """Legacy join row: package -> shared budget line."""

    __tablename__ = "package_items"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    package_id = db.Column(
        db.Integer,
        db.ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    budget_line_id = db.Column(
        db.Integer,
        db.ForeignKey("budget_lines.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    budget_line = db.relationship("BudgetLine")

    __table_args__ = (
        db.UniqueConstraint("package_id", "budget_line_id", name="uq_package_budget_line"),
    )


# ---------------------------------------------------------------------
# Tendering
# ---------------------------------------------------------------------
class TenderInvite(db.Model):
    __tablename__ = "tender_invites"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    package_id = db.Column(
        db.Integer,
        db.ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = db.Column(db.String(20), nullable=False, default=INVITE_STATUS_INVITED)
    invited_at = db.Column(db.DateTime, default=datetime.utcnow)
    responded_at = db.Column(db.DateTime, nullable=True)

    package = db.relationship("Package", back_populates="invites")
    supplier = db.relationship("Supplier")

    __table_args__ = (
        db.UniqueConstraint("package_id", "supplier_id", name="uq_invite_package_supplier"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "packageId": self.package_id,
            "supplierId": self.supplier_id,
            "status": self.status,
            "invitedAt": _iso(self.invited_at),
            "respondedAt": _iso(self.responded_at),
        }


class Submission(db.Model):
    """
    A supplier's bid for a package.

    Scores and rank are a projection recomputed over all package submissions.
    overall_overridden marks an evaluator override that recomputation must keep.
    """

    __tablename__ = "submissions"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    package_id = db.Column(
        db.Integer,
        db.ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    price = db.Column(db.Numeric(14, 2), nullable=True)
    duration_weeks = db.Column(db.Integer, nullable=True)
    details = db.Column(db.JSON, nullable=True)

    price_score = db.Column(db.Float, nullable=True)
    technical_score = db.Column(db.Float, nullable=True)
    overall_score = db.Column(db.Float, nullable=True)
    overall_overridden = db.Column(db.Boolean, default=False, nullable=False)
    rank = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=SUBMISSION_STATUS_SUBMITTED)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    package = db.relationship("Package", back_populates="submissions")
    supplier = db.relationship("Supplier")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "packageId": self.package_id,
            "supplierId": self.supplier_id,
            "price": self.price,
            "durationWeeks": self.duration_weeks,
            "details": self.details,
            "priceScore": self.price_score,
            "technicalScore": self.technical_score,
            "overallScore": self.overall_score,
            "overallOverridden": self.overall_overridden,
            "rank": self.rank,
            "status": self.status,
        }


class Tender(db.Model):
    """Formal request-for-bid record (Tender/RFx) against a package."""

    __tablename__ = "tenders"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    package_id = db.Column(
        db.Integer,
        db.ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "packageId": self.package_id,
            "title": self.title,
            "status": self.status,
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Award outcome
# ---------------------------------------------------------------------
class AwardDecision(db.Model):
    """Immutable record of an award decision event (append-only)."""

    __tablename__ = "award_decisions"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id", ondelete="SET NULL"), index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="SET NULL"), index=True)

    award_type = db.Column(db.String(20), nullable=False, default=AWARD_TYPE_TENDER)
    decision = db.Column(db.String(40), nullable=False, default=DECISION_APPROVED)
    override_reason = db.Column(db.Text, nullable=True)

    decided_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)


class ComplianceOverride(db.Model):
    """Authorized exception allowing award despite failed compliance (append-only)."""

    __tablename__ = "compliance_overrides"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="SET NULL"), index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id", ondelete="SET NULL"), index=True)
    award_decision_id = db.Column(
        db.Integer,
        db.ForeignKey("award_decisions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    reason = db.Column(db.Text, nullable=False)
    missing = db.Column(db.JSON, nullable=True)

    authorized_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)


class Contract(db.Model):
    __tablename__ = "contracts"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id", ondelete="SET NULL"), index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="SET NULL"), index=True)
    award_decision_id = db.Column(
        db.Integer,
        db.ForeignKey("award_decisions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title = db.Column(db.String(255))
    contract_ref = db.Column(db.String(100), index=True)

    value = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    currency = db.Column(db.String(3), nullable=False, default="GBP")
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = db.relationship("Supplier")
    line_items = db.relationship(
        "ContractLineItem",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractLineItem.id",
    )

    @property
    def line_items_total(self) -> Decimal:
        total = Decimal("0")
        for line in self.line_items:
            total += _to_decimal(line.total)
        return total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "packageId": self.package_id,
            "supplierId": self.supplier_id,
            "awardDecisionId": self.award_decision_id,
            "title": self.title,
            "contractRef": self.contract_ref,
            "value": self.value,
            "currency": self.currency,
            "status": self.status,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
        }


class ContractLineItem(db.Model):
    __tablename__ = "contract_line_items"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    contract_id = db.Column(
        db.Integer,
        db.ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    package_line_item_id = db.Column(
        db.Integer,
        db.ForeignKey("package_line_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        unique=True,
    )
    budget_line_id = db.Column(
        db.Integer,
        db.ForeignKey("budget_lines.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        unique=True,
    )

    description = db.Column(db.Text)
    cost_code = db.Column(db.String(50))

    qty = db.Column(db.Numeric(14, 3), nullable=True)
    rate = db.Column(db.Numeric(14, 2), nullable=True)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    contract = db.relationship("Contract", back_populates="line_items")


# ---------------------------------------------------------------------
# Optional sourcing tables (may be missing on partially migrated databases)
# ---------------------------------------------------------------------
class DirectAward(db.Model):
    __tablename__ = "direct_awards"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    package_id = db.Column(db.Integer, db.ForeignKey("packages.id", ondelete="CASCADE"), index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="SET NULL"), index=True)
    contract_id = db.Column(db.Integer, db.ForeignKey("contracts.id", ondelete="SET NULL"), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)


class InternalResourceAssignment(db.Model):
    __tablename__ = "internal_resource_assignments"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    package_id = db.Column(db.Integer, db.ForeignKey("packages.id", ondelete="CASCADE"), index=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "packageId": self.package_id,
            "notes": self.notes,
            "status": self.status,
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Audit sink
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Write-only audit trail."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    action = db.Column(db.String(80), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    metadata_json = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
