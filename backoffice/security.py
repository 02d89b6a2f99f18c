"""
backoffice/security.py

Access control helpers for the back office JSON API.

Key rules:
- All permission checks are server-side.
- Every business endpoint works inside the current user's tenant.
- Roles:
  - ADMIN: full access.
  - USER: read and write inside their tenant.
  - READ_ONLY: read only (no mutating requests), except logout.

This module also provides a global safety net:
- readonly_guard() blocks POST/PUT/PATCH/DELETE for READ_ONLY users.
  Wire it via app.before_request in the app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import g, jsonify, request
from flask_login import current_user

logger = logging.getLogger(__name__)

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

ALLOW_MUTATING_ENDPOINTS = {"auth.login", "auth.logout"}


def _forbidden(message: str = "Forbidden") -> Tuple[Any, int]:
    """Consistent JSON 403."""
    return jsonify({"error": message}), 403


def _unauthorized() -> Tuple[Any, int]:
    return jsonify({"error": "Authentication required"}), 401


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def is_read_only() -> bool:
    return bool(current_user.is_authenticated and getattr(current_user, "is_read_only", False))


def readonly_guard() -> Optional[Tuple[Any, int]]:
    """
    Global guard: READ_ONLY users cannot mutate data.

    Blocks POST/PUT/PATCH/DELETE for users who are authenticated with the
    READ_ONLY role. Login/logout stay allowed.
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not is_read_only():
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in ALLOW_MUTATING_ENDPOINTS:
        return None

    logger.info("blocked %s %s for read-only user %s", request.method, request.path, current_user.username)
    return _forbidden("Read-only users cannot modify data")


def tenant_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator: authenticated user with a tenant.

    Sets g.tenant_id for the view; queries must filter on it.
    """
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            return _unauthorized()
        tenant_id = getattr(current_user, "tenant_id", None)
        if tenant_id is None:
            return _forbidden("No tenant selected")
        g.tenant_id = tenant_id
        return view_func(*args, **kwargs)

    return wrapper


def write_access_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: any role except READ_ONLY. Route-level check behind the global guard."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            return _unauthorized()
        if is_read_only():
            return _forbidden("Read-only users cannot modify data")
        return view_func(*args, **kwargs)

    return wrapper


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper
