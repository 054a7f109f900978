"""
tender_engine/blueprints/contracts/routes.py

Contract read and lifecycle endpoints.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from ...contracts import change_contract_status
from ...forms import ContractStatusForm, load_form
from ...queries import get_contract
from ...security import current_tenant_id, current_user_id, permission_required

contracts_bp = Blueprint("contracts", __name__, url_prefix="/contracts")


def _contract_payload(contract) -> dict:
    payload = contract.to_dict()
    payload["lineItems"] = [
        {
            "id": line.id,
            "packageLineItemId": line.package_line_item_id,
            "budgetLineId": line.budget_line_id,
            "description": line.description,
            "costCode": line.cost_code,
            "qty": line.qty,
            "rate": line.rate,
            "total": line.total,
        }
        for line in contract.line_items
    ]
    payload["lineItemsTotal"] = contract.line_items_total
    return payload


@contracts_bp.route("/<int:contract_id>", methods=["GET"])
@login_required
def detail(contract_id: int):
    contract = get_contract(current_tenant_id(), contract_id)
    return jsonify(_contract_payload(contract))


@contracts_bp.route("/<int:contract_id>/status", methods=["POST"])
@login_required
@permission_required("contracts:manage")
def change_status(contract_id: int):
    form = load_form(ContractStatusForm)
    contract = change_contract_status(
        current_tenant_id(), contract_id, form.status.data, user_id=current_user_id()
    )
    return jsonify(contract.to_dict())
