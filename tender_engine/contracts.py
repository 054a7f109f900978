"""
tender_engine/contracts.py

Contract lifecycle after award: draft -> issued -> signed, with cancellation allowed
before signature. Signed and cancelled are terminal.
"""

from __future__ import annotations

import logging
from typing import Optional

from .audit import serialize_model, write_audit
from .errors import Conflict, validation_failed
from .extensions import db
from .models import Contract
from .queries import get_contract

logger = logging.getLogger(__name__)

CONTRACT_STATUSES = ("draft", "issued", "signed", "cancelled")

ALLOWED_TRANSITIONS = {
    "draft": {"issued", "cancelled"},
    "issued": {"signed", "cancelled"},
    "signed": set(),
    "cancelled": set(),
}


def change_contract_status(tenant_id: str, contract_id, status: str, user_id: Optional[int] = None) -> Contract:
    target = (status or "").strip().lower()
    if target not in CONTRACT_STATUSES:
        raise validation_failed({"status": [f"Must be one of: {', '.join(CONTRACT_STATUSES)}."]})

    contract = get_contract(tenant_id, contract_id)
    current = (contract.status or "").strip().lower()

    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise Conflict(
            "INVALID_STATUS_TRANSITION",
            f"Cannot move contract from {current} to {target}.",
            currentStatus=current,
            requestedStatus=target,
        )

    before = serialize_model(contract)
    contract.status = target
    db.session.commit()

    logger.info("contract status changed tenant=%s contract=%s %s->%s", tenant_id, contract.id, current, target)
    write_audit(
        tenant_id,
        user_id,
        "UPDATE",
        "Contract",
        contract.id,
        {"from": current, "to": target, "before": before, "after": serialize_model(contract)},
    )
    return contract
