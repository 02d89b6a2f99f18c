"""
Invoices blueprint package.

Exposes the Blueprint object; routes live in routes.py.
"""

from .routes import invoices_bp  # noqa: F401
