"""
tender_engine/blueprints/submissions/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose submissions_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import submissions_bp  # noqa: F401
