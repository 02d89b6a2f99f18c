"""
backoffice/blueprints/invoices/routes.py

Invoice routes (JSON).

Includes:
- POST   /invoices/generate-monthly  monthly synthesis from timesheets + supplies
- POST   /invoices/                  manual invoice from caller-supplied lines
- GET    /invoices/                  list (status/search filters, pagination)
- GET    /invoices/<id>              detail
- PATCH  /invoices/<id>/status       status / payment update
- DELETE /invoices/<id>              admins only

IMPORTANT:
- All queries are scoped to g.tenant_id (set by tenant_required).
- The engine computes; this module loads rows, persists results and audits.
- Numbers come from a per-app InvoiceNumberAllocator; the UNIQUE constraints
  on Invoice catch anything that slips past it (multi-process deployments).
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Any, List, Tuple

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload
from werkzeug.exceptions import Conflict

from ...audit import log_action, serialize_model
from ...billing import (
    Customer,
    DuplicateInvoice,
    InvoiceNumberAllocator,
    Seller,
    ValidationError,
    create_invoice,
    synthesize_monthly_invoice,
)
from ...billing.qr import business_timezone
from ...billing.records import to_date
from ...extensions import db
from ...models import Invoice, InvoiceStatus, Supply, Tenant, Timesheet
from ...security import admin_required, tenant_required, write_access_required

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/invoices")

MAX_PAGE_SIZE = 200


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _allocator() -> InvoiceNumberAllocator:
    """One allocator per application instance."""
    return current_app.extensions.setdefault("invoice_number_allocator", InvoiceNumberAllocator())


def month_bounds(month: int, year: int) -> Tuple[date, date]:
    """First and last calendar day of the month."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def _tenant() -> Tenant:
    return db.get_or_404(Tenant, g.tenant_id)


def _seller(tenant: Tenant) -> Seller:
    return Seller(
        name=tenant.name,
        vat_number=tenant.vat_number or current_app.config.get("SELLER_VAT_NUMBER", ""),
    )


def _tz():
    return business_timezone(current_app.config.get("BUSINESS_UTC_OFFSET_HOURS", 3))


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body is required")
    return data


def _customer_from(data: dict) -> Customer:
    return Customer(
        name=str(data.get("customerName") or "").strip(),
        vat_number=data.get("customerVat"),
        address=data.get("customerAddress"),
        city=data.get("customerCity"),
    )


def _optional_date(data: dict, key: str):
    value = data.get(key)
    if value in (None, ""):
        return None
    return to_date(value, field=key)


def _existing_refs(tenant_id: int, month: int, year: int):
    rows = Invoice.query.filter_by(tenant_id=tenant_id, invoice_month=month, invoice_year=year).all()
    return [row.to_ref() for row in rows]


def _tenant_invoice_or_404(invoice_id: int) -> Invoice:
    return Invoice.query.filter_by(id=invoice_id, tenant_id=g.tenant_id).first_or_404(
        description="Invoice not found"
    )


def _save(invoice, *, synthesized: bool) -> Invoice:
    """
    Persist a computed invoice with its audit row in one transaction.

    If the transaction fails the allocated number is handed back. On a UNIQUE
    violation the conflicting invoice (if it is a same-customer duplicate) is
    reported.
    """
    row = Invoice.from_engine(g.tenant_id, invoice, synthesized=synthesized)
    db.session.add(row)
    try:
        db.session.flush()
        log_action(row, "CREATE", before=None, after=serialize_model(row))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        _allocator().release(g.tenant_id, invoice.invoice_month, invoice.invoice_year, invoice.invoice_number)
        if not isinstance(exc, IntegrityError):
            raise
        existing = Invoice.query.filter_by(
            tenant_id=g.tenant_id,
            customer_name=invoice.customer.name,
            invoice_month=invoice.invoice_month,
            invoice_year=invoice.invoice_year,
        ).first()
        if synthesized and existing is not None:
            raise DuplicateInvoice(
                invoice_id=existing.id,
                invoice_number=existing.invoice_number,
                customer_name=invoice.customer.name,
                month=invoice.invoice_month,
                year=invoice.invoice_year,
            ) from None
        logger.warning(
            "invoice number %s already taken for tenant=%s %02d/%d",
            invoice.invoice_number, g.tenant_id, invoice.invoice_month, invoice.invoice_year,
        )
        raise Conflict("Invoice number already taken, please retry") from None
    return row


# ---------------------------------------------------------------------
# Monthly synthesis
# ---------------------------------------------------------------------
@invoices_bp.route("/generate-monthly", methods=["POST"])
@tenant_required
@write_access_required
def generate_monthly():
    data = _json_body()
    tenant = _tenant()
    customer = _customer_from(data)

    # Period is validated by the engine; bounds need it early.
    month, year = data.get("month"), data.get("year")
    try:
        start, end = month_bounds(int(month), int(year))
    except (TypeError, ValueError):
        raise ValidationError("Valid month (1-12) and year are required") from None

    timesheets: List[Any] = (
        Timesheet.query.options(joinedload(Timesheet.laborer), joinedload(Timesheet.job))
        .filter(Timesheet.tenant_id == tenant.id, Timesheet.date >= start, Timesheet.date <= end)
        .order_by(Timesheet.date.asc(), Timesheet.id.asc())
        .all()
    )
    supplies: List[Any] = (
        Supply.query.options(joinedload(Supply.category))
        .filter(Supply.tenant_id == tenant.id, Supply.date >= start, Supply.date <= end)
        .order_by(Supply.date.asc(), Supply.id.asc())
        .all()
    )

    invoice = synthesize_monthly_invoice(
        tenant.id,
        int(month),
        int(year),
        customer,
        [t.to_record() for t in timesheets],
        [s.to_record() for s in supplies],
        seller=_seller(tenant),
        existing=_existing_refs(tenant.id, int(month), int(year)),
        issue_date=_optional_date(data, "issueDate"),
        due_date=_optional_date(data, "dueDate"),
        tz=_tz(),
        allocator=_allocator(),
    )
    row = _save(invoice, synthesized=True)
    return jsonify(row.to_dict()), 201


# ---------------------------------------------------------------------
# Manual entry
# ---------------------------------------------------------------------
@invoices_bp.route("/", methods=["POST"])
@tenant_required
@write_access_required
def create():
    data = _json_body()
    tenant = _tenant()

    items = data.get("items")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    issue_date = to_date(data.get("issueDate"), field="issueDate")
    invoice = create_invoice(
        tenant.id,
        _customer_from(data),
        items,
        seller=_seller(tenant),
        issue_date=issue_date,
        due_date=_optional_date(data, "dueDate"),
        existing=_existing_refs(tenant.id, issue_date.month, issue_date.year),
        tz=_tz(),
        allocator=_allocator(),
    )
    row = _save(invoice, synthesized=False)
    return jsonify(row.to_dict()), 201


# ---------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------
@invoices_bp.route("/", methods=["GET"])
@tenant_required
def list_invoices():
    page = request.args.get("page", 1, type=int) or 1
    limit = min(max(request.args.get("limit", 50, type=int) or 50, 1), MAX_PAGE_SIZE)
    status = (request.args.get("status") or "").strip().upper()
    search = (request.args.get("search") or "").strip()

    q = Invoice.query.filter(Invoice.tenant_id == g.tenant_id)
    if status:
        q = q.filter(Invoice.status == status)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Invoice.invoice_number.ilike(like), Invoice.customer_name.ilike(like)))

    pagination = q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )
    return jsonify(
        {
            "invoices": [row.to_dict() for row in pagination.items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": pagination.total,
                "pages": pagination.pages,
            },
        }
    )


@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
@tenant_required
def detail(invoice_id: int):
    return jsonify(_tenant_invoice_or_404(invoice_id).to_dict())


# ---------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/status", methods=["PATCH"])
@tenant_required
@write_access_required
def update_status(invoice_id: int):
    invoice = _tenant_invoice_or_404(invoice_id)
    data = _json_body()

    status = str(data.get("status") or "").strip().upper()
    if status not in {s.value for s in InvoiceStatus}:
        raise ValidationError(f"status must be one of {', '.join(s.value for s in InvoiceStatus)}")

    before_snapshot = serialize_model(invoice)
    invoice.status = status
    invoice.paid_date = _optional_date(data, "paidDate")
    invoice.payment_method = data.get("paymentMethod")

    db.session.flush()
    log_action(invoice, "UPDATE", before=before_snapshot, after=serialize_model(invoice))
    db.session.commit()
    return jsonify(invoice.to_dict())


@invoices_bp.route("/<int:invoice_id>", methods=["DELETE"])
@tenant_required
@admin_required
def delete(invoice_id: int):
    invoice = _tenant_invoice_or_404(invoice_id)

    before_snapshot = serialize_model(invoice)
    log_action(invoice, "DELETE", before=before_snapshot, after=None)
    db.session.delete(invoice)
    db.session.commit()

    logger.info("deleted invoice %s (tenant=%s)", invoice_id, g.tenant_id)
    return jsonify({"message": "Invoice deleted"})
