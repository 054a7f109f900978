"""
tender_engine/awards.py

Award Transaction Orchestrator.

award_package() = _validate() then _commit().

_validate() is read-only and fail-fast:
1. package / project / supplier in tenant scope; not yet awarded; no other active
   sourcing mechanism (the tender being awarded does not count)
2. compliance gate (override needs a reason and the override permission)
3. resolve package lines; none -> NO_PACKAGE_LINES
4. optional subset of lines; unknown ids -> LINE_IDS_INVALID
5. none of the chosen lines may already sit on a contract

_commit() writes everything in ONE transaction. The first statement is a guarded
UPDATE on packages (award_supplier_id IS NULL). Two requests that both passed
validation cannot both win it: the loser sees rowcount 0, rolls back, and gets
ALREADY_AWARDED with nothing written. Contract lines are unique per package line and
per budget line, so two awards of different packages that share a budget line cannot
both commit either; the loser gets the line conflict code.

Audit entries are written after the commit and never fail the award.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .audit import write_audit
from .compliance import ComplianceResult, evaluate_supplier
from .errors import Conflict, Forbidden, NotFound, PreconditionFailed, validation_failed
from .extensions import db
from .line_items import (
    ResolvedLines,
    find_line_conflicts,
    resolve_package_lines,
    select_lines,
    select_lines_by_budget_line,
)
from .models import (
    AWARD_TYPE_DIRECT,
    AWARD_TYPE_TENDER,
    DECISION_APPROVED,
    DECISION_APPROVED_WITH_OVERRIDE,
    PACKAGE_STATUS_AWARDED,
    SUBMISSION_STATUS_AWARDED,
    SUBMISSION_STATUS_UNSUCCESSFUL,
    AwardDecision,
    ComplianceOverride,
    Contract,
    ContractLineItem,
    DirectAward,
    Package,
    Project,
    Submission,
    Supplier,
    Tender,
)
from .queries import get_package, get_project, get_supplier
from .sourcing import MECHANISM_TENDER, find_active_sourcing
from .utils import money

logger = logging.getLogger(__name__)

LINES_ALREADY_CONTRACTED = "LINES_ALREADY_CONTRACTED"
BUDGET_LINES_ALREADY_CONTRACTED = "BUDGET_LINES_ALREADY_CONTRACTED"


@dataclass
class AwardRequest:
    tenant_id: str
    package_id: object
    supplier_id: object
    user_id: Optional[int] = None

    award_type: str = AWARD_TYPE_TENDER
    project_id: object = None

    # subset selection: canonical line ids, or budget line ids (POST /awards)
    selected_line_ids: Optional[Sequence] = None
    budget_line_ids: Optional[Sequence] = None
    conflict_code: str = LINES_ALREADY_CONTRACTED

    award_value: Optional[Decimal] = None
    override: bool = False
    override_reason: Optional[str] = None
    can_override_compliance: bool = False

    currency: Optional[str] = None
    title: Optional[str] = None
    contract_ref: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class AwardPlan:
    """Everything _validate() established; consumed by _commit()."""

    request: AwardRequest
    package: Package
    project: Project
    supplier: Supplier
    compliance: ComplianceResult
    lines: ResolvedLines
    line_totals: List[Decimal] = field(default_factory=list)
    contract_value: Decimal = Decimal("0.00")

    @property
    def uses_override(self) -> bool:
        return not self.compliance.ok


@dataclass
class AwardResult:
    award_id: int
    contract_id: int
    contract_value: Decimal
    decision: str
    committed: bool = True

    def to_dict(self) -> dict:
        return {
            "awardId": self.award_id,
            "contractId": self.contract_id,
            "committed": self.committed,
            "contractValue": self.contract_value,
            "decision": self.decision,
        }


# ---------------------------------------------------------------------
# Validation (steps 1-5)
# ---------------------------------------------------------------------
def _check_override_pairing(req: AwardRequest) -> Optional[str]:
    reason = (req.override_reason or "").strip() or None
    if bool(req.override) != bool(reason):
        raise PreconditionFailed(
            "OVERRIDE_REASON_REQUIRED",
            "A compliance override needs both override=true and an overrideReason.",
        )
    return reason


def _resolve_parties(req: AwardRequest):
    package = get_package(req.tenant_id, req.package_id)

    if req.project_id is not None:
        project = get_project(req.tenant_id, req.project_id)
        if package.project_id != project.id:
            raise NotFound("PACKAGE_NOT_FOUND", "Package not found in this project.")
    else:
        project = get_project(req.tenant_id, package.project_id)

    supplier = get_supplier(req.tenant_id, req.supplier_id)

    if package.is_awarded:
        raise Conflict("ALREADY_AWARDED", "Package has already been awarded.")

    mechanism = find_active_sourcing(req.tenant_id, package.id, exclude=(MECHANISM_TENDER,))
    if mechanism:
        raise Conflict(
            "PACKAGE_ALREADY_SOURCED",
            "Package is already sourced through another mechanism.",
            mechanism=mechanism,
        )
    return package, project, supplier


def _check_compliance(req: AwardRequest, supplier: Supplier) -> ComplianceResult:
    compliance = evaluate_supplier(supplier)
    if compliance.ok:
        return compliance

    if not req.override:
        raise Conflict(
            "COMPLIANCE_MISSING",
            "Supplier is not compliant for award.",
            missing=compliance.missing,
            allowOverride=bool(req.can_override_compliance),
        )
    if not req.can_override_compliance:
        raise Forbidden("FORBIDDEN", "You do not have permission to override compliance.")
    return compliance


def _validate(req: AwardRequest) -> AwardPlan:
    if req.award_type not in (AWARD_TYPE_TENDER, AWARD_TYPE_DIRECT):
        raise validation_failed({"awardType": ["Unknown award type."]})
    if req.award_type == AWARD_TYPE_DIRECT and req.award_value is None:
        raise validation_failed({"awardValue": ["A direct award needs an award value."]})
    if req.award_value is not None and req.award_value < 0:
        raise validation_failed({"awardValue": ["Award value cannot be negative."]})
    if req.budget_line_ids and req.selected_line_ids:
        raise validation_failed({"selectedLineIds": ["Cannot be combined with budgetLineIds."]})

    # 1
    package, project, supplier = _resolve_parties(req)
    _check_override_pairing(req)

    # 2
    compliance = _check_compliance(req, supplier)

    # 3
    resolved = resolve_package_lines(req.tenant_id, package.id)
    if not resolved:
        raise PreconditionFailed("NO_PACKAGE_LINES", "Package has no priced lines to award.")

    # 4
    if req.budget_line_ids:
        chosen = select_lines_by_budget_line(resolved, req.budget_line_ids)
    else:
        chosen = select_lines(resolved, req.selected_line_ids)

    # 5
    conflicts = find_line_conflicts(req.tenant_id, chosen.lines)
    if conflicts:
        raise Conflict(
            req.conflict_code,
            "Some selected lines are already linked to a contract.",
            conflicts=[c.to_dict() for c in conflicts],
        )

    line_totals = [money(line.total) for line in chosen.lines]
    if req.award_value is not None:
        contract_value = money(req.award_value)
    else:
        contract_value = money(sum(line_totals, Decimal("0")))

    return AwardPlan(
        request=req,
        package=package,
        project=project,
        supplier=supplier,
        compliance=compliance,
        lines=chosen,
        line_totals=line_totals,
        contract_value=contract_value,
    )


# ---------------------------------------------------------------------
# Commit (step 6)
# ---------------------------------------------------------------------
def _default_contract_ref(req: AwardRequest, package_id: int, now: datetime) -> str:
    prefix = "DA" if req.award_type == AWARD_TYPE_DIRECT else "AW"
    return f"{prefix}-{package_id}-{int(now.timestamp() * 1000)}"


def _claim_package(plan: AwardPlan, now: datetime) -> None:
    """Guarded compare-and-swap: only an unawarded package can be claimed."""
    req = plan.request
    result = db.session.execute(
        update(Package)
        .where(
            Package.id == plan.package.id,
            Package.tenant_id == req.tenant_id,
            Package.award_supplier_id.is_(None),
        )
        .values(
            award_supplier_id=plan.supplier.id,
            award_value=plan.contract_value,
            awarded_at=now,
            status=PACKAGE_STATUS_AWARDED,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("ALREADY_AWARDED", "Package has already been awarded.")


def _commit(plan: AwardPlan) -> AwardResult:
    req = plan.request
    now = datetime.utcnow()
    reason = (req.override_reason or "").strip() or None
    decision_label = DECISION_APPROVED_WITH_OVERRIDE if plan.uses_override else DECISION_APPROVED

    try:
        _claim_package(plan, now)

        decision = AwardDecision(
            tenant_id=req.tenant_id,
            project_id=plan.project.id,
            package_id=plan.package.id,
            supplier_id=plan.supplier.id,
            award_type=req.award_type,
            decision=decision_label,
            override_reason=reason if plan.uses_override else None,
            decided_by=req.user_id,
            decided_at=now,
        )
        db.session.add(decision)
        db.session.flush()

        if plan.uses_override:
            db.session.add(
                ComplianceOverride(
                    tenant_id=req.tenant_id,
                    supplier_id=plan.supplier.id,
                    package_id=plan.package.id,
                    award_decision_id=decision.id,
                    reason=reason,
                    missing=list(plan.compliance.missing),
                    authorized_by=req.user_id,
                )
            )

        contract = Contract(
            tenant_id=req.tenant_id,
            project_id=plan.project.id,
            package_id=plan.package.id,
            supplier_id=plan.supplier.id,
            award_decision_id=decision.id,
            title=(req.title or "").strip() or f"{plan.package.name} - {plan.supplier.name}",
            contract_ref=(req.contract_ref or "").strip() or _default_contract_ref(req, plan.package.id, now),
            value=plan.contract_value,
            currency=(req.currency or current_app.config.get("DEFAULT_CURRENCY") or "GBP").upper(),
            status="draft",
            start_date=req.start_date,
            end_date=req.end_date,
            created_by=req.user_id,
        )
        db.session.add(contract)
        db.session.flush()

        for line, total in zip(plan.lines.lines, plan.line_totals):
            db.session.add(
                ContractLineItem(
                    tenant_id=req.tenant_id,
                    contract_id=contract.id,
                    package_line_item_id=line.package_line_item_id,
                    budget_line_id=line.budget_line_id,
                    description=line.description,
                    cost_code=line.cost_code,
                    qty=line.qty,
                    rate=line.rate,
                    total=total,
                )
            )

        if req.award_type == AWARD_TYPE_DIRECT:
            db.session.add(
                DirectAward(
                    tenant_id=req.tenant_id,
                    package_id=plan.package.id,
                    supplier_id=plan.supplier.id,
                    contract_id=contract.id,
                    status="active",
                )
            )

        Tender.query.filter(
            Tender.tenant_id == req.tenant_id,
            Tender.package_id == plan.package.id,
            func.lower(Tender.status) != "cancelled",
        ).update({"status": "awarded"}, synchronize_session=False)

        for submission in Submission.query.filter_by(tenant_id=req.tenant_id, package_id=plan.package.id).all():
            if submission.supplier_id == plan.supplier.id:
                submission.status = SUBMISSION_STATUS_AWARDED
            else:
                submission.status = SUBMISSION_STATUS_UNSUCCESSFUL

        db.session.commit()
    except Conflict:
        db.session.rollback()
        logger.info("award lost the race tenant=%s package=%s", req.tenant_id, plan.package.id)
        raise
    except IntegrityError:
        db.session.rollback()
        conflicts = find_line_conflicts(req.tenant_id, plan.lines.lines)
        if not conflicts:
            logger.exception("award commit failed tenant=%s package=%s", req.tenant_id, plan.package.id)
            raise
        logger.info(
            "award lost a line to a concurrent contract tenant=%s package=%s", req.tenant_id, plan.package.id
        )
        raise Conflict(
            req.conflict_code,
            "Some selected lines are already linked to a contract.",
            conflicts=[c.to_dict() for c in conflicts],
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("award commit failed tenant=%s package=%s", req.tenant_id, plan.package.id)
        raise

    return AwardResult(
        award_id=decision.id,
        contract_id=contract.id,
        contract_value=plan.contract_value,
        decision=decision_label,
    )


# ---------------------------------------------------------------------
# Post-commit audit (step 7)
# ---------------------------------------------------------------------
def _audit_award(plan: AwardPlan, result: AwardResult) -> None:
    req = plan.request
    package_id = plan.package.id
    supplier_id = plan.supplier.id

    write_audit(
        req.tenant_id,
        req.user_id,
        "CREATE",
        "AwardDecision",
        result.award_id,
        {
            "packageId": package_id,
            "supplierId": supplier_id,
            "awardType": req.award_type,
            "decision": result.decision,
            "overrideReason": req.override_reason if plan.uses_override else None,
            "missing": list(plan.compliance.missing),
        },
    )
    write_audit(
        req.tenant_id,
        req.user_id,
        "CREATE",
        "Contract",
        result.contract_id,
        {
            "source": "award",
            "awardDecisionId": result.award_id,
            "value": result.contract_value,
            "lineCount": len(plan.lines.lines),
            "lineSource": plan.lines.source.value,
        },
    )
    write_audit(
        req.tenant_id,
        req.user_id,
        "AWARD",
        "Package",
        package_id,
        {"supplierId": supplier_id, "contractId": result.contract_id, "awardValue": result.contract_value},
    )


def award_package(req: AwardRequest) -> AwardResult:
    """Validate, commit atomically, then audit. Raises EngineError subclasses."""
    plan = _validate(req)
    result = _commit(plan)

    logger.info(
        "package awarded tenant=%s package=%s supplier=%s contract=%s value=%s decision=%s",
        req.tenant_id, plan.package.id, plan.supplier.id, result.contract_id, result.contract_value, result.decision,
    )
    _audit_award(plan, result)
    return result
