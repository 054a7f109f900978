"""
tender_engine/audit.py

Audit logging helper utilities.

Goals:
- Capture WHO did WHAT to WHICH entity, with a metadata snapshot.
- Store username snapshot to preserve identity even if username changes later.
- Store IP address for traceability.

IMPORTANT:
- Audit is a write-only, best-effort sink. write_audit() runs AFTER the business
  transaction has committed, commits on its own, and never raises: a failed
  audit write is logged and swallowed so it can never roll back an award.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import AuditLog

logger = logging.getLogger(__name__)


def _safe_str(value: Any) -> Optional[str]:
    """
    Convert a value to a stable string representation suitable for JSON and DB storage.

    - For Decimal/datetime/etc: str(value) is typically safe.
    - For None: return None.
    """
    if value is None:
        return None
    try:
        return str(value)
    except Exception:
        return repr(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Convert a SQLAlchemy model instance to a dict snapshot based on table columns.

    Captures only scalar column values (not relationships), as strings.
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        data[column.name] = _safe_str(getattr(instance, column.name))
    return data


def _request_identity() -> tuple[Optional[str], Optional[str]]:
    """(username, ip) for the current request, if any."""
    if not has_request_context():
        return None, None
    username = current_user.username if current_user.is_authenticated else None
    return username, request.remote_addr


def write_audit(
    tenant_id: Optional[str],
    user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Persist one AuditLog entry in its own commit.

    Returns True when written. Entries missing tenant/entity/action are skipped.
    """
    if not tenant_id or entity_id is None or not action or not entity_type:
        logger.error(
            "audit skipped due to missing fields tenant=%s action=%s entity=%s/%s",
            tenant_id, action, entity_type, entity_id,
        )
        return False

    username, ip_address = _request_identity()

    try:
        entry = AuditLog(
            tenant_id=tenant_id,
            user_id=int(user_id) if user_id is not None else None,
            username_snapshot=username,
            action=action,
            entity_type=entity_type,
            entity_id=int(entity_id),
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False, default=_safe_str),
            ip_address=ip_address,
        )
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "audit write failed tenant=%s action=%s entity=%s/%s",
            tenant_id, action, entity_type, entity_id,
        )
        return False

    return True
