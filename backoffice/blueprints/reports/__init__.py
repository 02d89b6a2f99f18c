"""
Reports blueprint package.

Exposes the Blueprint object; routes live in routes.py.
"""

from .routes import reports_bp  # noqa: F401
