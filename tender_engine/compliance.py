"""
tender_engine/compliance.py

Compliance Gate: "is this supplier eligible for award now?"

Three independent conditions on the supplier record:
- insurance: an expiry date exists and is not in the past
- hsCertificate: health & safety certificate flag (falls back to hs_accreditations)
- accreditation: accreditation flag (falls back to compliance_status == "approved")

Pure read, no side effects. The award orchestrator decides what a failure means.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .models import Supplier
from .utils import parse_id

MISSING_INSURANCE = "insurance"
MISSING_HS_CERTIFICATE = "hsCertificate"
MISSING_ACCREDITATION = "accreditation"


@dataclass
class ComplianceResult:
    ok: bool
    missing: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"ok": self.ok, "missing": list(self.missing)}


def _insurance_ok(supplier: Supplier, now: datetime) -> bool:
    expiry = supplier.insurance_valid_until
    return expiry is not None and expiry >= now


def _hs_certificate_ok(supplier: Supplier) -> bool:
    if supplier.hs_certificate_valid is not None:
        return bool(supplier.hs_certificate_valid)
    return bool((supplier.hs_accreditations or "").strip())


def _accreditation_ok(supplier: Supplier) -> bool:
    if supplier.accreditation_valid is not None:
        return bool(supplier.accreditation_valid)
    if supplier.compliance_status:
        return supplier.compliance_status.strip().lower() == "approved"
    return False


def evaluate_supplier(supplier: Supplier, now: Optional[datetime] = None) -> ComplianceResult:
    """Evaluate an already loaded supplier."""
    now = now or datetime.utcnow()

    missing: List[str] = []
    if not _insurance_ok(supplier, now):
        missing.append(MISSING_INSURANCE)
    if not _hs_certificate_ok(supplier):
        missing.append(MISSING_HS_CERTIFICATE)
    if not _accreditation_ok(supplier):
        missing.append(MISSING_ACCREDITATION)

    return ComplianceResult(ok=not missing, missing=missing)


def check_supplier_compliance(tenant_id, supplier_id, now: Optional[datetime] = None) -> ComplianceResult:
    """Look the supplier up in tenant scope and evaluate it."""
    supplier_pk = parse_id(supplier_id)
    if not tenant_id or supplier_pk is None:
        return ComplianceResult(ok=False, missing=["inputInvalid"])

    supplier = Supplier.query.filter_by(id=supplier_pk, tenant_id=tenant_id).first()
    if not supplier:
        return ComplianceResult(ok=False, missing=["supplierNotFound"])

    return evaluate_supplier(supplier, now=now)
