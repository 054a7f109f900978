"""
tender_engine/blueprints/awards/routes.py

POST /awards: award through an explicit project / package / supplier payload.

Same orchestrator as the package award route; lines are picked by budget line id
and a clash is reported as BUDGET_LINES_ALREADY_CONTRACTED.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from ...awards import BUDGET_LINES_ALREADY_CONTRACTED, AwardRequest, award_package
from ...forms import AwardPayloadForm, load_form
from ...models import AWARD_TYPE_TENDER
from ...security import current_tenant_id, current_user_id, has_permission, permission_required

awards_bp = Blueprint("awards", __name__, url_prefix="/awards")


@awards_bp.route("", methods=["POST"])
@login_required
@permission_required("procurement:award")
def create_award():
    form = load_form(AwardPayloadForm)
    req = AwardRequest(
        tenant_id=current_tenant_id(),
        package_id=form.package_id.data,
        supplier_id=form.supplier_id.data,
        user_id=current_user_id(),
        award_type=AWARD_TYPE_TENDER,
        project_id=form.project_id.data,
        selected_line_ids=form.selected_line_ids.data,
        budget_line_ids=form.budget_line_ids.data,
        conflict_code=BUDGET_LINES_ALREADY_CONTRACTED,
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
    result = award_package(req)
    return jsonify(result.to_dict()), 201
