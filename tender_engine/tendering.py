"""
tender_engine/tendering.py

Sourcing actions that start a mechanism on a package: a draft tender or an
internal-resource assignment. Both are refused when the package already has an
active sourcing mechanism.
"""

from __future__ import annotations

import logging
from typing import Optional

from .audit import write_audit
from .errors import Conflict
from .extensions import db
from .models import InternalResourceAssignment, Package, Tender
from .queries import get_package
from .sourcing import find_active_sourcing

logger = logging.getLogger(__name__)


def _guard(tenant_id: str, package: Package) -> None:
    if package.is_awarded:
        raise Conflict("ALREADY_AWARDED", "Package has already been awarded.")

    mechanism = find_active_sourcing(tenant_id, package.id)
    if mechanism:
        logger.info(
            "sourcing blocked tenant=%s package=%s active=%s",
            tenant_id, package.id, mechanism,
        )
        raise Conflict(
            "PACKAGE_ALREADY_HAS_SOURCING",
            "Package already has an active sourcing mechanism.",
            mechanism=mechanism,
        )


def open_tender(tenant_id: str, package_id, title: Optional[str] = None, user_id: Optional[int] = None) -> Tender:
    package = get_package(tenant_id, package_id)
    _guard(tenant_id, package)

    tender = Tender(
        tenant_id=tenant_id,
        project_id=package.project_id,
        package_id=package.id,
        title=(title or "").strip() or f"Tender - {package.name}",
        status="draft",
        created_by=user_id,
    )
    db.session.add(tender)
    db.session.commit()

    write_audit(tenant_id, user_id, "CREATE", "Tender", tender.id, {"packageId": package.id, "title": tender.title})
    return tender


def assign_internal_resource(
    tenant_id: str,
    package_id,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> InternalResourceAssignment:
    package = get_package(tenant_id, package_id)
    _guard(tenant_id, package)

    assignment = InternalResourceAssignment(
        tenant_id=tenant_id,
        package_id=package.id,
        notes=(notes or "").strip() or None,
        status="active",
        created_by=user_id,
    )
    db.session.add(assignment)
    db.session.commit()

    write_audit(
        tenant_id, user_id, "CREATE", "InternalResourceAssignment", assignment.id, {"packageId": package.id}
    )
    return assignment
