"""
tender_engine/security.py

Access control helpers for the Tender Evaluation & Award Engine.

Key rules:
- Authentication happens upstream. The gateway forwards the resolved identity in
  X-User-Id / X-Tenant-Id headers; load_user_from_request() turns it into a User.
- Tenant isolation: a user is only ever loaded for its own tenant, and every
  service call is scoped with current_tenant_id().
- Permissions are role based (see models.ROLE_PERMISSIONS); admin has all.
- Viewers are read-only (no mutating requests).

This module also provides a global safety net:
- viewer_readonly_guard() blocks POST/PUT/PATCH/DELETE for viewers.
  Wire it via app.before_request in app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import jsonify, request
from flask_login import current_user

from .models import User
from .utils import parse_id

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

USER_HEADER = "X-User-Id"
TENANT_HEADER = "X-Tenant-Id"


def _forbidden(message: str = "You do not have permission for this action."):
    """Consistent JSON 403."""
    return jsonify({"code": "FORBIDDEN", "message": message}), 403


def unauthorized_response():
    """Consistent JSON 401 (used as the login manager's unauthorized handler)."""
    return jsonify({"code": "UNAUTHENTICATED", "message": "Authentication required."}), 401


def load_user_from_request(req) -> Optional[User]:
    """
    Flask-Login request loader.

    Both headers must be present and agree with the stored user; inactive users
    are never loaded.
    """
    user_id = parse_id(req.headers.get(USER_HEADER))
    tenant_id = (req.headers.get(TENANT_HEADER) or "").strip()
    if not user_id or not tenant_id:
        return None

    user = User.query.filter_by(id=user_id, tenant_id=tenant_id).first()
    if not user or not user.is_active:
        return None
    return user


def current_tenant_id() -> Optional[str]:
    """Tenant of the authenticated user."""
    if not current_user.is_authenticated:
        return None
    return current_user.tenant_id


def current_user_id() -> Optional[int]:
    if not current_user.is_authenticated:
        return None
    return current_user.id


def has_permission(permission: str) -> bool:
    """Return True if current user is authenticated and holds the permission."""
    return bool(current_user.is_authenticated and current_user.has_permission(permission))


def viewer_readonly_guard() -> Optional[Tuple[Any, int]]:
    """
    Global guard: viewers cannot mutate data.

    Unauthenticated requests pass through; the route's login_required answers them.
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if current_user.can_mutate():
        return None

    return _forbidden("Read-only users cannot change data.")


def permission_required(permission: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator factory: require a role permission.

    Usage:
        @permission_required("procurement:award")
        def award(package_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not current_user.is_authenticated:
                return unauthorized_response()
            if not has_permission(permission):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
