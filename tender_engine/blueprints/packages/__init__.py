"""
tender_engine/blueprints/packages/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose packages_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import packages_bp  # noqa: F401
