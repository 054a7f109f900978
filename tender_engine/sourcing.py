"""
tender_engine/sourcing.py

Sourcing Conflict Detector.

Exclusivity rule: a package has at most one active sourcing mechanism among
- an open tender (Tender with status != cancelled)
- an active contract (status in ACTIVE_CONTRACT_STATUSES)
- an active direct award
- an active internal-resource assignment

DirectAward / InternalResourceAssignment are optional tables. On a database where
their migration has not run yet, the lookup answers "not found" instead of raising.
Any other database error propagates.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import func, inspect
from sqlalchemy.exc import OperationalError, ProgrammingError

from .extensions import db
from .models import Contract, DirectAward, InternalResourceAssignment, Tender
from .utils import parse_id

logger = logging.getLogger(__name__)

MECHANISM_TENDER = "tender"
MECHANISM_CONTRACT = "contract"
MECHANISM_DIRECT_AWARD = "direct_award"
MECHANISM_INTERNAL_RESOURCE = "internal_resource"

ACTIVE_CONTRACT_STATUSES = ("draft", "active", "executed", "live")
INACTIVE_STATUSES = ("cancelled", "canceled", "closed", "terminated", "withdrawn", "void", "archived")


def _is_missing_table_error(exc: Exception) -> bool:
    """Classify driver errors that mean "this table/relation does not exist"."""
    message = str(getattr(exc, "orig", exc) or "").lower()
    if not message:
        return False
    if "no such table" in message or "undefinedtable" in message:
        return True
    mentions_missing = "does not exist" in message or "unknown" in message or "missing" in message
    if not mentions_missing:
        return False
    return "model" in message or "table" in message or "relation" in message


def _table_exists(table_name: str) -> bool:
    return inspect(db.engine).has_table(table_name)


def _optional_active_lookup(model, tenant_id: str, package_id: int) -> bool:
    """Active row lookup on an optional table; missing table -> False."""
    if not _table_exists(model.__tablename__):
        logger.debug("optional sourcing table %s is absent; treated as not sourced", model.__tablename__)
        return False

    try:
        row = (
            db.session.query(model.id)
            .filter(
                model.tenant_id == tenant_id,
                model.package_id == package_id,
                func.lower(model.status).notin_(INACTIVE_STATUSES),
            )
            .first()
        )
    except (OperationalError, ProgrammingError) as exc:
        if not _is_missing_table_error(exc):
            raise
        db.session.rollback()
        logger.warning(
            "optional sourcing table %s vanished during lookup tenant=%s package=%s",
            model.__tablename__, tenant_id, package_id,
        )
        return False

    return row is not None


def _has_open_tender(tenant_id: str, package_id: int) -> bool:
    row = (
        db.session.query(Tender.id)
        .filter(
            Tender.tenant_id == tenant_id,
            Tender.package_id == package_id,
            func.lower(Tender.status) != "cancelled",
        )
        .first()
    )
    return row is not None


def _has_active_contract(tenant_id: str, package_id: int) -> bool:
    row = (
        db.session.query(Contract.id)
        .filter(
            Contract.tenant_id == tenant_id,
            Contract.package_id == package_id,
            func.lower(Contract.status).in_(ACTIVE_CONTRACT_STATUSES),
        )
        .first()
    )
    return row is not None


_CHECKS = (
    (MECHANISM_TENDER, _has_open_tender),
    (MECHANISM_CONTRACT, _has_active_contract),
    (MECHANISM_DIRECT_AWARD, lambda t, p: _optional_active_lookup(DirectAward, t, p)),
    (MECHANISM_INTERNAL_RESOURCE, lambda t, p: _optional_active_lookup(InternalResourceAssignment, t, p)),
)


def find_active_sourcing(tenant_id, package_id, exclude: Iterable[str] = ()) -> Optional[str]:
    """
    Return the first active sourcing mechanism for the package, or None.

    exclude: mechanism names to ignore (the award path skips the tender it is awarding).
    """
    tenant = str(tenant_id) if tenant_id is not None else None
    package_pk = parse_id(package_id)
    if not tenant or package_pk is None:
        return None

    skipped = set(exclude)
    for mechanism, check in _CHECKS:
        if mechanism in skipped:
            continue
        if check(tenant, package_pk):
            return mechanism
    return None


def is_package_sourced(tenant_id, package_id) -> bool:
    """True when any active sourcing mechanism exists for the package."""
    return find_active_sourcing(tenant_id, package_id) is not None
