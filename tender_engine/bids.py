"""
tender_engine/bids.py

Invitation & Bid Intake.

- invite_suppliers(): one TenderInvite per supplier; duplicates and unknown suppliers
  are skipped softly and reported back, never fatal.
- submit_bid(): only invited suppliers may bid; each call records one Submission and
  re-scores the package.

Pattern: validate -> add/flush -> db.session.commit() -> write_audit()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from .audit import write_audit
from .errors import Conflict, PreconditionFailed
from .extensions import db
from .models import (
    INVITE_STATUS_SUBMITTED,
    PACKAGE_STATUS_DRAFT,
    PACKAGE_STATUS_TENDER,
    Package,
    Submission,
    Supplier,
    TenderInvite,
)
from .queries import get_package
from .scoring import recompute_price_scores, rerank
from .utils import parse_decimal, parse_id

logger = logging.getLogger(__name__)

SKIP_INVALID_ID = "invalidId"
SKIP_DUPLICATE = "duplicate"
SKIP_ALREADY_INVITED = "alreadyInvited"
SKIP_SUPPLIER_NOT_FOUND = "supplierNotFound"


@dataclass
class InviteResult:
    invited: List[TenderInvite] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "invited": [invite.to_dict() for invite in self.invited],
            "skipped": list(self.skipped),
        }


def _ensure_open(package: Package) -> None:
    if package.is_awarded:
        raise Conflict("ALREADY_AWARDED", "Package has already been awarded.")


# ---------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------
def _invited_supplier_ids(tenant_id: str, package_id: int) -> set:
    return {
        row.supplier_id
        for row in TenderInvite.query.filter_by(tenant_id=tenant_id, package_id=package_id).all()
    }


def invite_suppliers(
    tenant_id: str,
    package_id,
    supplier_ids: Iterable,
    user_id: Optional[int] = None,
) -> InviteResult:
    package = get_package(tenant_id, package_id)
    _ensure_open(package)

    existing = _invited_supplier_ids(tenant_id, package.id)

    result = InviteResult()
    seen: set[int] = set()

    for raw in supplier_ids:
        supplier_pk = parse_id(raw)
        if supplier_pk is None:
            result.skipped.append({"supplierId": raw, "reason": SKIP_INVALID_ID})
            continue
        if supplier_pk in seen:
            result.skipped.append({"supplierId": supplier_pk, "reason": SKIP_DUPLICATE})
            continue
        seen.add(supplier_pk)

        if supplier_pk in existing:
            result.skipped.append({"supplierId": supplier_pk, "reason": SKIP_ALREADY_INVITED})
            continue

        supplier = Supplier.query.filter_by(id=supplier_pk, tenant_id=tenant_id).first()
        if not supplier:
            result.skipped.append({"supplierId": supplier_pk, "reason": SKIP_SUPPLIER_NOT_FOUND})
            continue

        # savepoint per invite; a unique-pair violation skips only this supplier
        invite = TenderInvite(tenant_id=tenant_id, package_id=package.id, supplier_id=supplier.id)
        try:
            with db.session.begin_nested():
                db.session.add(invite)
        except IntegrityError:
            logger.warning(
                "invite race tenant=%s package=%s supplier=%s", tenant_id, package.id, supplier_pk
            )
            result.skipped.append({"supplierId": supplier_pk, "reason": SKIP_ALREADY_INVITED})
            continue
        result.invited.append(invite)

    if result.invited and package.status == PACKAGE_STATUS_DRAFT:
        package.status = PACKAGE_STATUS_TENDER

    db.session.commit()

    if result.skipped:
        logger.info(
            "invites skipped tenant=%s package=%s skipped=%s",
            tenant_id, package.id, result.skipped,
        )

    if result.invited:
        write_audit(
            tenant_id,
            user_id,
            "INVITE",
            "Package",
            package.id,
            {"invitedSuppliers": [invite.supplier_id for invite in result.invited]},
        )
    return result


# ---------------------------------------------------------------------
# Bids
# ---------------------------------------------------------------------
def submit_bid(
    tenant_id: str,
    package_id,
    supplier_id,
    price=None,
    duration_weeks: Optional[int] = None,
    details: Optional[dict] = None,
    user_id: Optional[int] = None,
) -> Submission:
    """
    Record one bid. The supplier must hold an invite for the package.

    A priced bid triggers a price-score recompute for the whole package.
    """
    package = get_package(tenant_id, package_id)
    _ensure_open(package)

    supplier_pk = parse_id(supplier_id)
    invite = None
    if supplier_pk is not None:
        invite = TenderInvite.query.filter_by(
            tenant_id=tenant_id, package_id=package.id, supplier_id=supplier_pk
        ).first()
    if not invite:
        raise PreconditionFailed("NOT_INVITED", "Supplier was not invited to this package.")

    price_value = parse_decimal(price)
    if price is not None and price_value is None:
        raise PreconditionFailed("VALIDATION_FAILED", "Price must be a number.", errors={"price": ["Invalid number."]})
    if price_value is not None and price_value < 0:
        raise PreconditionFailed("VALIDATION_FAILED", "Price cannot be negative.", errors={"price": ["Must be >= 0."]})

    submission = Submission(
        tenant_id=tenant_id,
        package_id=package.id,
        supplier_id=invite.supplier_id,
        price=price_value,
        duration_weeks=duration_weeks,
        details=details or None,
    )
    db.session.add(submission)

    invite.status = INVITE_STATUS_SUBMITTED
    invite.responded_at = datetime.utcnow()
    db.session.flush()

    if price_value is not None:
        recompute_price_scores(tenant_id, package.id)
    else:
        rerank(Submission.query.filter_by(tenant_id=tenant_id, package_id=package.id).all())

    db.session.commit()

    logger.info(
        "bid submitted tenant=%s package=%s supplier=%s submission=%s price=%s",
        tenant_id, package.id, invite.supplier_id, submission.id, price_value,
    )
    write_audit(
        tenant_id,
        user_id,
        "CREATE",
        "Submission",
        submission.id,
        {"price": price_value, "durationWeeks": duration_weeks},
    )
    return submission
