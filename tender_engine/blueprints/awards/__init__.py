"""
tender_engine/blueprints/awards/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose awards_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import awards_bp  # noqa: F401
