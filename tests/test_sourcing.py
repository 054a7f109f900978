from tender_engine.extensions import db
from tender_engine.models import DirectAward, InternalResourceAssignment, Tender
from tender_engine.sourcing import (
    MECHANISM_CONTRACT,
    MECHANISM_DIRECT_AWARD,
    MECHANISM_INTERNAL_RESOURCE,
    MECHANISM_TENDER,
    _is_missing_table_error,
    find_active_sourcing,
    is_package_sourced,
)

from conftest import TENANT


def _add(row):
    db.session.add(row)
    db.session.commit()
    return row


def test_fresh_package_is_not_sourced(factory):
    package = factory.package()

    assert is_package_sourced(TENANT, package.id) is False
    assert find_active_sourcing(TENANT, package.id) is None


def test_open_tender_counts_and_cancelled_does_not(factory):
    package = factory.package()
    tender = _add(Tender(tenant_id=TENANT, package_id=package.id, status="draft"))

    assert find_active_sourcing(TENANT, package.id) == MECHANISM_TENDER

    tender.status = "cancelled"
    db.session.commit()
    assert is_package_sourced(TENANT, package.id) is False


def test_active_contract_statuses(factory):
    package = factory.package()
    supplier = factory.supplier()
    contract = factory.contract(package, supplier, status="live")

    assert find_active_sourcing(TENANT, package.id) == MECHANISM_CONTRACT

    contract.status = "cancelled"
    db.session.commit()
    assert find_active_sourcing(TENANT, package.id) is None


def test_direct_award_and_inactive_status_spelling(factory):
    package = factory.package()
    award = _add(DirectAward(tenant_id=TENANT, package_id=package.id, status="active"))

    assert find_active_sourcing(TENANT, package.id) == MECHANISM_DIRECT_AWARD

    award.status = "Canceled"
    db.session.commit()
    assert find_active_sourcing(TENANT, package.id) is None


def test_internal_resource_assignment(factory):
    package = factory.package()
    _add(InternalResourceAssignment(tenant_id=TENANT, package_id=package.id, status="active"))

    assert find_active_sourcing(TENANT, package.id) == MECHANISM_INTERNAL_RESOURCE


def test_exclude_skips_a_mechanism(factory):
    package = factory.package()
    _add(Tender(tenant_id=TENANT, package_id=package.id, status="open"))

    assert find_active_sourcing(TENANT, package.id, exclude=(MECHANISM_TENDER,)) is None


def test_other_tenant_rows_are_invisible(factory, other_factory):
    package = factory.package()
    _add(Tender(tenant_id=other_factory.tenant_id, package_id=package.id, status="open"))

    assert is_package_sourced(TENANT, package.id) is False


def test_missing_optional_table_means_not_sourced(factory):
    package = factory.package()
    InternalResourceAssignment.__table__.drop(db.engine)

    assert find_active_sourcing(TENANT, package.id) is None
    assert is_package_sourced(TENANT, package.id) is False


def test_table_vanishing_between_check_and_query_degrades(factory, monkeypatch):
    from tender_engine import sourcing

    package = factory.package()
    DirectAward.__table__.drop(db.engine)
    monkeypatch.setattr(sourcing, "_table_exists", lambda name: True)

    assert find_active_sourcing(TENANT, package.id) is None


def test_missing_table_error_classifier():
    assert _is_missing_table_error(Exception("no such table: direct_awards"))
    assert _is_missing_table_error(Exception('relation "direct_awards" does not exist'))
    assert _is_missing_table_error(Exception("Unknown model InternalResourceAssignment"))
    assert not _is_missing_table_error(Exception("UNIQUE constraint failed: tenders.id"))
    assert not _is_missing_table_error(Exception("column x does not exist"))


def test_bad_ids_are_never_sourced():
    assert find_active_sourcing(TENANT, "abc") is None
    assert find_active_sourcing(None, 1) is None
