"""
tender_engine/blueprints/submissions/routes.py

Evaluator scoring of a single submission. Every call re-ranks the whole package.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from ...forms import ScoreForm, load_form
from ...scoring import score_submission
from ...security import current_tenant_id, current_user_id, permission_required

submissions_bp = Blueprint("submissions", __name__, url_prefix="/submissions")


@submissions_bp.route("/<int:submission_id>/score", methods=["POST"])
@login_required
@permission_required("procurement:score")
def score(submission_id: int):
    form = load_form(ScoreForm)
    submission = score_submission(
        current_tenant_id(),
        submission_id,
        technical_score=form.technical_score.data,
        override_score=form.override.data,
        user_id=current_user_id(),
    )
    return jsonify({"message": "Score recorded", "submission": submission.to_dict()})
