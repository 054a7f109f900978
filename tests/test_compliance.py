from datetime import datetime, timedelta

from tender_engine.compliance import check_supplier_compliance, evaluate_supplier
from tender_engine.models import Supplier

from conftest import TENANT


def test_compliant_supplier_passes(factory):
    supplier = factory.supplier()

    result = check_supplier_compliance(TENANT, supplier.id)

    assert result.ok is True
    assert result.missing == []


def test_expired_insurance_is_reported(factory):
    supplier = factory.supplier(compliant=False)

    result = check_supplier_compliance(TENANT, supplier.id)

    assert result.ok is False
    assert result.missing == ["insurance"]


def test_missing_insurance_date_is_reported(factory):
    supplier = factory.supplier(insurance_valid_until=None)

    assert check_supplier_compliance(TENANT, supplier.id).missing == ["insurance"]


def test_text_fallbacks_count_when_flags_are_not_captured(factory):
    supplier = factory.supplier(
        hs_certificate_valid=None,
        hs_accreditations="CHAS, SafeContractor",
        accreditation_valid=None,
        compliance_status="Approved",
    )

    assert check_supplier_compliance(TENANT, supplier.id).ok is True


def test_all_three_conditions_can_fail_together(factory):
    supplier = factory.supplier(
        insurance_valid_until=None,
        hs_certificate_valid=False,
        accreditation_valid=None,
        compliance_status="pending",
    )

    result = check_supplier_compliance(TENANT, supplier.id)

    assert result.to_dict() == {"ok": False, "missing": ["insurance", "hsCertificate", "accreditation"]}


def test_evaluation_uses_the_given_clock():
    supplier = Supplier(
        tenant_id=TENANT,
        name="Clocked",
        insurance_valid_until=datetime(2030, 1, 1),
        hs_certificate_valid=True,
        accreditation_valid=True,
    )

    assert evaluate_supplier(supplier, now=datetime(2029, 12, 31)).ok is True
    assert evaluate_supplier(supplier, now=datetime(2030, 1, 1) + timedelta(seconds=1)).missing == ["insurance"]


def test_invalid_input_and_unknown_supplier(factory, other_factory):
    foreign = other_factory.supplier()

    assert check_supplier_compliance(TENANT, "abc").missing == ["inputInvalid"]
    assert check_supplier_compliance("", 1).missing == ["inputInvalid"]
    assert check_supplier_compliance(TENANT, 9999).missing == ["supplierNotFound"]
    assert check_supplier_compliance(TENANT, foreign.id).missing == ["supplierNotFound"]
