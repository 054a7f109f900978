"""
tender_engine/errors.py

Machine-readable failures raised by the engine services.

Every error carries:
- code: stable identifier the UI branches on (e.g. COMPLIANCE_MISSING)
- message: human readable text
- payload: extra keys merged into the JSON body (missing, conflicts, ...)

The app factory renders them to JSON; services never build responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400

    def __init__(self, code: str, message: str, **payload: Any) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.payload: Dict[str, Any] = payload

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        body.update(self.payload)
        return body

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.code}>"


class PreconditionFailed(EngineError):
    """Missing required field, empty priced scope, invalid id shapes."""

    status_code = 400


class Forbidden(EngineError):
    status_code = 403


class NotFound(EngineError):
    """Entity absent in tenant scope."""

    status_code = 404


class Conflict(EngineError):
    """Already awarded, lines already contracted, compliance missing."""

    status_code = 409


def validation_failed(errors: Optional[Dict[str, Any]] = None) -> PreconditionFailed:
    """Wrap form errors into the standard 400 shape."""
    return PreconditionFailed("VALIDATION_FAILED", "Request payload is invalid.", errors=errors or {})
