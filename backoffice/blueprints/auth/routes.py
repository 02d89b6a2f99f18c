"""
Authentication Routes

Provides:
- POST /auth/login
- POST /auth/logout
- GET  /auth/me
- GET  /auth/csrf-token (JSON clients echo it back in X-CSRFToken)

Rules:
- Only active users may log in.
- Credentials validated via password hash.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...models import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "tenantId": user.tenant_id,
        "tenantName": user.tenant.name if user.tenant else None,
    }


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate a user from a JSON body {username, password}."""
    data = request.get_json(silent=True) or {}
    username = str(data.get("username", "")).strip()
    password = str(data.get("password", ""))

    user = User.query.filter_by(username=username).first()

    if not user or not user.check_password(password):
        logger.info("failed login for %r", username)
        return jsonify({"error": "Invalid username or password"}), 401

    if not user.is_active:
        return jsonify({"error": "Account is inactive"}), 403

    login_user(user)
    return jsonify({"user": _user_payload(user)})


# ============================================================
# LOGOUT / SESSION
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"message": "Logged out"})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"user": _user_payload(current_user)})


@auth_bp.route("/csrf-token")
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})
