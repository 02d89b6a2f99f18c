"""
backoffice/audit.py

Audit logging helpers.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store a username snapshot so identity survives later renames.
- Store IP address for traceability.

IMPORTANT:
- This helper ADDS AuditLog entries to the current SQLAlchemy session.
  The calling route controls transaction boundaries (commit/rollback), so an
  invoice and its audit row are committed or rolled back together.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import request
from flask_login import current_user

from .extensions import db
from .models import AuditLog

AUDITED_ACTIONS = {"CREATE", "UPDATE", "DELETE"}


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Convert a SQLAlchemy model instance to a dict snapshot based on table columns.

    NOTES:
    - Captures only scalar column values (not relationships).
    - Values are converted to string for JSON safety (Decimal, date, datetime).
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        value = getattr(instance, column.name)
        data[column.name] = None if value is None else str(value)
    return data


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: SQLAlchemy model instance with .id (flush first for new rows)
        action: CREATE / UPDATE / DELETE
        before: dict snapshot (optional)
        after: dict snapshot (optional)

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy,
      configure ProxyFix / trusted proxy headers to capture the real client IP.
    """
    if action not in AUDITED_ACTIONS:
        raise ValueError(f"unknown audit action {action!r}")

    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    authenticated = current_user.is_authenticated
    entry = AuditLog(
        user_id=current_user.id if authenticated else None,
        username_snapshot=current_user.username if authenticated else None,
        tenant_id=getattr(entity, "tenant_id", None),
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=action,
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr,
    )
    db.session.add(entry)
    return entry
