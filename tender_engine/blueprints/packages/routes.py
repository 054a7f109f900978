"""
tender_engine/blueprints/packages/routes.py

Package-scoped endpoints (JSON):
- invitations and bid intake
- ranked submissions and resolved line preview
- award (tender) and direct award
- sourcing probe and sourcing actions (tender, internal resource)

IMPORTANT:
- Identity comes from the request loader; every service call is tenant scoped
  with current_tenant_id().
- Services raise EngineError subclasses; the app factory renders them.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from ...awards import AwardRequest, award_package
from ...bids import invite_suppliers, submit_bid
from ...forms import (
    AwardForm,
    BidForm,
    DirectAwardForm,
    InternalResourceForm,
    InviteForm,
    TenderForm,
    load_form,
)
from ...line_items import resolve_package_lines
from ...models import AWARD_TYPE_DIRECT, AWARD_TYPE_TENDER, Submission
from ...queries import get_package
from ...security import current_tenant_id, current_user_id, has_permission, permission_required
from ...sourcing import find_active_sourcing
from ...tendering import assign_internal_resource, open_tender

packages_bp = Blueprint("packages", __name__, url_prefix="/packages")


# ---------------------------------------------------------------------
# Invitations & bids
# ---------------------------------------------------------------------
@packages_bp.route("/<int:package_id>/invite", methods=["POST"])
@login_required
@permission_required("procurement:invite")
def invite(package_id: int):
    form = load_form(InviteForm)
    result = invite_suppliers(
        current_tenant_id(),
        package_id,
        form.supplier_ids.data,
        user_id=current_user_id(),
    )
    status = 201 if result.invited else 200
    return jsonify(result.to_dict()), status


@packages_bp.route("/<int:package_id>/submit", methods=["POST"])
@login_required
@permission_required("procurement:submit")
def submit(package_id: int):
    form = load_form(BidForm)
    submission = submit_bid(
        current_tenant_id(),
        package_id,
        form.supplier_id.data,
        price=form.price.data,
        duration_weeks=form.duration_weeks.data,
        details=form.details.data,
        user_id=current_user_id(),
    )
    return jsonify(submission.to_dict()), 201


@packages_bp.route("/<int:package_id>/submissions", methods=["GET"])
@login_required
def submissions(package_id: int):
    """Submissions in rank order (unranked last, then by submission id)."""
    tenant_id = current_tenant_id()
    package = get_package(tenant_id, package_id)

    rows = Submission.query.filter_by(tenant_id=tenant_id, package_id=package.id).all()
    rows.sort(key=lambda s: (s.rank is None, s.rank or 0, s.id))
    return jsonify({"packageId": package.id, "submissions": [s.to_dict() for s in rows]})


@packages_bp.route("/<int:package_id>/lines", methods=["GET"])
@login_required
def lines(package_id: int):
    tenant_id = current_tenant_id()
    package = get_package(tenant_id, package_id)

    resolved = resolve_package_lines(tenant_id, package.id)
    payload = resolved.to_dict()
    payload["packageId"] = package.id
    return jsonify(payload)


# ---------------------------------------------------------------------
# Award
# ---------------------------------------------------------------------
def _award_request(form: AwardForm, package_id: int, award_type: str) -> AwardRequest:
    return AwardRequest(
        tenant_id=current_tenant_id(),
        package_id=package_id,
        supplier_id=form.supplier_id.data,
        user_id=current_user_id(),
        award_type=award_type,
        selected_line_ids=form.selected_line_ids.data,
        award_value=form.award_value.data,
        override=bool(form.override.data),
        override_reason=form.override_reason.data,
        can_override_compliance=has_permission("procurement:override_compliance"),
        currency=form.currency.data,
        title=form.title.data,
        contract_ref=form.contract_ref.data,
        start_date=form.start_date.data,
        end_date=form.end_date.data,
    )


@packages_bp.route("/<int:package_id>/award", methods=["POST"])
@login_required
@permission_required("procurement:award")
def award(package_id: int):
    form = load_form(AwardForm)
    result = award_package(_award_request(form, package_id, AWARD_TYPE_TENDER))
    return jsonify(result.to_dict()), 201


@packages_bp.route("/<int:package_id>/direct-award", methods=["POST"])
@login_required
@permission_required("procurement:award")
def direct_award(package_id: int):
    form = load_form(DirectAwardForm)
    result = award_package(_award_request(form, package_id, AWARD_TYPE_DIRECT))
    return jsonify(result.to_dict()), 201


# ---------------------------------------------------------------------
# Sourcing
# ---------------------------------------------------------------------
@packages_bp.route("/<int:package_id>/check-sourcing", methods=["GET"])
@login_required
def check_sourcing(package_id: int):
    tenant_id = current_tenant_id()
    package = get_package(tenant_id, package_id)

    mechanism = find_active_sourcing(tenant_id, package.id)
    return jsonify({"sourced": mechanism is not None, "mechanism": mechanism})


@packages_bp.route("/<int:package_id>/tenders", methods=["POST"])
@login_required
@permission_required("procurement:source")
def create_tender(package_id: int):
    form = load_form(TenderForm)
    tender = open_tender(current_tenant_id(), package_id, title=form.title.data, user_id=current_user_id())
    return jsonify(tender.to_dict()), 201


@packages_bp.route("/<int:package_id>/internal-resource", methods=["POST"])
@login_required
@permission_required("procurement:source")
def internal_resource(package_id: int):
    form = load_form(InternalResourceForm)
    assignment = assign_internal_resource(
        current_tenant_id(), package_id, notes=form.notes.data, user_id=current_user_id()
    )
    return jsonify(assignment.to_dict()), 201
