"""HTTP contract of the JSON endpoints (Flask test client)."""

from decimal import Decimal

from tender_engine.extensions import db
from tender_engine.models import Contract, Package

from conftest import auth_headers


def _tender_with_two_bids(client, headers, factory, package):
    cheap, dear = factory.supplier(name="Cheap"), factory.supplier(name="Dear")

    resp = client.post(f"/packages/{package.id}/invite", json={"supplierIds": [cheap.id, dear.id]}, headers=headers)
    assert resp.status_code == 201

    for supplier, price in ((cheap, 900), (dear, "1000.00")):
        resp = client.post(
            f"/packages/{package.id}/submit",
            json={"supplierId": supplier.id, "price": price, "durationWeeks": 10},
            headers=headers,
        )
        assert resp.status_code == 201
    return cheap, dear


# ---------------------------------------------------------------------
# Identity & permissions
# ---------------------------------------------------------------------
def test_requests_without_identity_are_401(client, priced_package):
    resp = client.get(f"/packages/{priced_package.id}/lines")

    assert resp.status_code == 401
    assert resp.get_json()["code"] == "UNAUTHENTICATED"


def test_identity_must_match_tenant(client, factory, priced_package):
    user = factory.user()
    headers = {"X-User-Id": str(user.id), "X-Tenant-Id": "someone-else"}

    assert client.get(f"/packages/{priced_package.id}/lines", headers=headers).status_code == 401


def test_inactive_user_is_not_loaded(client, factory, priced_package):
    user = factory.user(is_active=False)

    assert client.get(f"/packages/{priced_package.id}/lines", headers=auth_headers(user)).status_code == 401


def test_viewer_can_read_but_not_write(client, factory, priced_package):
    viewer = factory.user(role="viewer")

    assert client.get(f"/packages/{priced_package.id}/lines", headers=auth_headers(viewer)).status_code == 200

    resp = client.post(
        f"/packages/{priced_package.id}/award", json={"supplierId": factory.supplier().id}, headers=auth_headers(viewer)
    )
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "FORBIDDEN"


def test_buyer_cannot_manage_contracts(client, factory):
    buyer = factory.user(role="buyer")
    contract = factory.contract(factory.package(), factory.supplier())

    resp = client.post(f"/contracts/{contract.id}/status", json={"status": "issued"}, headers=auth_headers(buyer))

    assert resp.status_code == 403


# ---------------------------------------------------------------------
# Tender flow
# ---------------------------------------------------------------------
def test_invite_bid_score_award_flow(client, factory, priced_package):
    headers = auth_headers(factory.user(role="manager"))
    cheap, dear = _tender_with_two_bids(client, headers, factory, priced_package)

    listing = client.get(f"/packages/{priced_package.id}/submissions", headers=headers).get_json()
    by_supplier = {s["supplierId"]: s for s in listing["submissions"]}
    assert by_supplier[cheap.id]["priceScore"] == 100.0
    assert by_supplier[dear.id]["priceScore"] == 90.0

    resp = client.post(
        f"/submissions/{by_supplier[dear.id]['id']}/score", json={"technicalScore": 80}, headers=headers
    )
    assert resp.status_code == 200
    scored = resp.get_json()["submission"]
    assert scored["overallScore"] == 84.0
    assert scored["rank"] == 1

    listing = client.get(f"/packages/{priced_package.id}/submissions", headers=headers).get_json()
    assert [s["rank"] for s in listing["submissions"]] == [1, 2]

    resp = client.post(f"/packages/{priced_package.id}/award", json={"supplierId": dear.id}, headers=headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["committed"] is True
    assert body["decision"] == "approved"
    assert Decimal(body["contractValue"]) == Decimal("100.00")

    contract = client.get(f"/contracts/{body['contractId']}", headers=headers).get_json()
    assert len(contract["lineItems"]) == 3
    assert Decimal(contract["lineItemsTotal"]) == Decimal("100.00")

    again = client.post(f"/packages/{priced_package.id}/award", json={"supplierId": cheap.id}, headers=headers)
    assert again.status_code == 409
    assert again.get_json()["code"] == "ALREADY_AWARDED"
    assert Contract.query.count() == 1


def test_override_object_on_score_endpoint(client, factory, priced_package):
    headers = auth_headers(factory.user())
    cheap, _ = _tender_with_two_bids(client, headers, factory, priced_package)
    listing = client.get(f"/packages/{priced_package.id}/submissions", headers=headers).get_json()
    cheap_sub = next(s for s in listing["submissions"] if s["supplierId"] == cheap.id)

    resp = client.post(
        f"/submissions/{cheap_sub['id']}/score", json={"override": {"overallScore": 42.5}}, headers=headers
    )

    assert resp.get_json()["submission"]["overallScore"] == 42.5
    assert resp.get_json()["submission"]["overallOverridden"] is True


def test_bid_from_uninvited_supplier(client, factory, priced_package):
    headers = auth_headers(factory.user())

    resp = client.post(
        f"/packages/{priced_package.id}/submit", json={"supplierId": factory.supplier().id, "price": 10}, headers=headers
    )

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "NOT_INVITED"


def test_unknown_submission_is_404(client, factory):
    resp = client.post("/submissions/999/score", json={"technicalScore": 10}, headers=auth_headers(factory.user()))

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "SUBMISSION_NOT_FOUND"


def test_invite_reports_skipped_suppliers(client, factory, priced_package):
    headers = auth_headers(factory.user())
    supplier = factory.supplier()

    resp = client.post(
        f"/packages/{priced_package.id}/invite", json={"supplierIds": [supplier.id, supplier.id, 404]}, headers=headers
    )

    body = resp.get_json()
    assert resp.status_code == 201
    assert len(body["invited"]) == 1
    assert [s["reason"] for s in body["skipped"]] == ["duplicate", "supplierNotFound"]


# ---------------------------------------------------------------------
# Validation & error shape
# ---------------------------------------------------------------------
def test_payload_errors_are_keyed_by_json_field(client, factory, priced_package):
    headers = auth_headers(factory.user())

    resp = client.post(f"/packages/{priced_package.id}/award", json={"awardValue": "abc"}, headers=headers)

    body = resp.get_json()
    assert resp.status_code == 400
    assert body["code"] == "VALIDATION_FAILED"
    assert set(body["errors"]) == {"supplierId", "awardValue"}


def test_empty_invite_list_is_invalid(client, factory, priced_package):
    resp = client.post(
        f"/packages/{priced_package.id}/invite", json={"supplierIds": []}, headers=auth_headers(factory.user())
    )

    assert resp.status_code == 400
    assert "supplierIds" in resp.get_json()["errors"]


def test_score_out_of_range_is_rejected_by_form(client, factory):
    resp = client.post("/submissions/1/score", json={"technicalScore": 150}, headers=auth_headers(factory.user()))

    assert resp.status_code == 400
    assert "technicalScore" in resp.get_json()["errors"]


def test_unknown_package_and_route(client, factory):
    headers = auth_headers(factory.user())

    resp = client.get("/packages/9999/lines", headers=headers)
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "PACKAGE_NOT_FOUND"

    resp = client.get("/nowhere", headers=headers)
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NOT_FOUND"


# ---------------------------------------------------------------------
# Award variants
# ---------------------------------------------------------------------
def test_compliance_missing_response(client, factory, priced_package):
    buyer = factory.user(role="buyer")
    supplier = factory.supplier(compliant=False)

    resp = client.post(f"/packages/{priced_package.id}/award", json={"supplierId": supplier.id}, headers=auth_headers(buyer))

    body = resp.get_json()
    assert resp.status_code == 409
    assert body["code"] == "COMPLIANCE_MISSING"
    assert body["missing"] == ["insurance"]
    assert body["allowOverride"] is False


def test_override_without_reason_is_400(client, factory, priced_package):
    resp = client.post(
        f"/packages/{priced_package.id}/award",
        json={"supplierId": factory.supplier().id, "override": True},
        headers=auth_headers(factory.user()),
    )

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "OVERRIDE_REASON_REQUIRED"


def test_manager_override_award(client, factory, priced_package):
    supplier = factory.supplier(compliant=False)

    resp = client.post(
        f"/packages/{priced_package.id}/award",
        json={"supplierId": supplier.id, "override": True, "overrideReason": "Certificate in renewal"},
        headers=auth_headers(factory.user(role="manager")),
    )

    assert resp.status_code == 201
    assert resp.get_json()["decision"] == "approved_with_override"


def test_direct_award_requires_award_value(client, factory, priced_package):
    headers = auth_headers(factory.user())
    supplier = factory.supplier()

    resp = client.post(f"/packages/{priced_package.id}/direct-award", json={"supplierId": supplier.id}, headers=headers)
    assert resp.status_code == 400
    assert "awardValue" in resp.get_json()["errors"]

    resp = client.post(
        f"/packages/{priced_package.id}/direct-award",
        json={"supplierId": supplier.id, "awardValue": "2500.00", "startDate": "2027-01-04"},
        headers=headers,
    )
    assert resp.status_code == 201
    assert Decimal(resp.get_json()["contractValue"]) == Decimal("2500.00")


def test_awards_endpoint_uses_budget_line_ids(client, factory):
    headers = auth_headers(factory.user())
    project = factory.project()
    package = factory.package(project)
    kept = factory.budget_line(project, amount="40.00")
    dropped = factory.budget_line(project, amount="60.00")
    factory.legacy_link(package, kept)
    factory.legacy_link(package, dropped)
    supplier = factory.supplier()
    payload = {"projectId": project.id, "packageId": package.id, "supplierId": supplier.id, "budgetLineIds": [kept.id]}

    resp = client.post("/awards", json=payload, headers=headers)

    assert resp.status_code == 201
    assert Decimal(resp.get_json()["contractValue"]) == Decimal("40.00")
    assert db.session.get(Package, package.id).award_supplier_id == supplier.id

    other = factory.package(project, name="Rework")
    factory.legacy_link(other, kept)
    resp = client.post(
        "/awards",
        json={"projectId": project.id, "packageId": other.id, "supplierId": supplier.id, "budgetLineIds": [kept.id]},
        headers=headers,
    )
    body = resp.get_json()
    assert resp.status_code == 409
    assert body["code"] == "BUDGET_LINES_ALREADY_CONTRACTED"
    assert body["conflicts"][0]["budgetLineId"] == kept.id


def test_invalid_selected_lines_response(client, factory, priced_package):
    resp = client.post(
        f"/packages/{priced_package.id}/award",
        json={"supplierId": factory.supplier().id, "selectedLineIds": [31337]},
        headers=auth_headers(factory.user()),
    )

    assert resp.status_code == 400
    assert resp.get_json()["invalidIds"] == [31337]


# ---------------------------------------------------------------------
# Sourcing & contracts
# ---------------------------------------------------------------------
def test_sourcing_probe_and_actions(client, factory, priced_package):
    headers = auth_headers(factory.user())
    url = f"/packages/{priced_package.id}"

    assert client.get(f"{url}/check-sourcing", headers=headers).get_json() == {"sourced": False, "mechanism": None}

    resp = client.post(f"{url}/tenders", json={"title": "Groundworks RFQ"}, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()["status"] == "draft"

    assert client.get(f"{url}/check-sourcing", headers=headers).get_json()["sourced"] is True

    resp = client.post(f"{url}/internal-resource", json={"notes": "crew"}, headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "PACKAGE_ALREADY_HAS_SOURCING"


def test_contract_status_endpoint(client, factory):
    headers = auth_headers(factory.user(role="manager"))
    contract = factory.contract(factory.package(), factory.supplier())
    url = f"/contracts/{contract.id}/status"

    resp = client.post(url, json={"status": "issued"}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "issued"

    resp = client.post(url, json={"status": "draft"}, headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "INVALID_STATUS_TRANSITION"

    resp = client.post("/contracts/4040/status", json={"status": "issued"}, headers=headers)
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "CONTRACT_NOT_FOUND"


def test_lines_preview(client, factory, priced_package):
    body = client.get(f"/packages/{priced_package.id}/lines", headers=auth_headers(factory.user())).get_json()

    assert body["source"] == "snapshot"
    assert len(body["lines"]) == 3
    assert Decimal(body["subtotal"]) == Decimal("100.00")
