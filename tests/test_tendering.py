import pytest

from tender_engine.contracts import change_contract_status
from tender_engine.errors import Conflict, NotFound, PreconditionFailed
from tender_engine.sourcing import is_package_sourced
from tender_engine.tendering import assign_internal_resource, open_tender

from conftest import TENANT


def test_open_tender_creates_a_draft_tender(factory):
    package = factory.package(name="Roofing")

    tender = open_tender(TENANT, package.id)

    assert tender.status == "draft"
    assert tender.title == "Tender - Roofing"
    assert tender.project_id == package.project_id
    assert is_package_sourced(TENANT, package.id) is True


def test_second_sourcing_mechanism_is_refused(factory):
    package = factory.package()
    open_tender(TENANT, package.id, title="Roofing RFQ")

    with pytest.raises(Conflict) as exc_info:
        assign_internal_resource(TENANT, package.id, notes="In-house crew")

    assert exc_info.value.code == "PACKAGE_ALREADY_HAS_SOURCING"
    assert exc_info.value.payload == {"mechanism": "tender"}


def test_internal_resource_assignment(factory):
    package = factory.package()

    assignment = assign_internal_resource(TENANT, package.id, notes="  In-house crew ")

    assert assignment.status == "active"
    assert assignment.notes == "In-house crew"

    with pytest.raises(Conflict):
        open_tender(TENANT, package.id)


def test_awarded_package_cannot_be_sourced_again(factory):
    package = factory.package()
    package.award_supplier_id = factory.supplier().id
    factory._save(package)

    with pytest.raises(Conflict) as exc_info:
        open_tender(TENANT, package.id)
    assert exc_info.value.code == "ALREADY_AWARDED"


@pytest.mark.parametrize(
    "path",
    [
        ["issued"],
        ["cancelled"],
        ["issued", "signed"],
        ["issued", "cancelled"],
    ],
)
def test_allowed_contract_transitions(factory, path):
    contract = factory.contract(factory.package(), factory.supplier())

    for status in path:
        contract = change_contract_status(TENANT, contract.id, status)

    assert contract.status == path[-1]


@pytest.mark.parametrize(
    "path",
    [
        ["signed"],
        ["issued", "draft"],
        ["cancelled", "issued"],
        ["issued", "signed", "cancelled"],
    ],
)
def test_invalid_contract_transitions(factory, path):
    contract = factory.contract(factory.package(), factory.supplier())

    with pytest.raises(Conflict) as exc_info:
        for status in path:
            change_contract_status(TENANT, contract.id, status)
    assert exc_info.value.code == "INVALID_STATUS_TRANSITION"


def test_unknown_contract_and_status(factory):
    with pytest.raises(NotFound) as exc_info:
        change_contract_status(TENANT, 999, "issued")
    assert exc_info.value.code == "CONTRACT_NOT_FOUND"

    contract = factory.contract(factory.package(), factory.supplier())
    with pytest.raises(PreconditionFailed):
        change_contract_status(TENANT, contract.id, "archived")
