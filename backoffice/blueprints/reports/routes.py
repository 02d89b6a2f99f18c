"""
backoffice/blueprints/reports/routes.py

Report routes (JSON, read-only).

Includes:
- GET /reports/labor            payroll cost per laborer
- GET /reports/client           client charge vs cost per laborer
- GET /reports/profit-loss      revenue, costs, margins, job + expense breakdowns
- GET /reports/expenses         expense totals per category
- GET /reports/supplies         supply value and quantity per category
- GET /reports/credits          credit ledger by period (groupBy=day|week|month|year)
- GET /reports/credits/summary  credit totals by type and status

Common query parameters: startDate, endDate (inclusive, YYYY-MM-DD).
Timesheet reports also accept laborerId and jobId.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from sqlalchemy.orm import joinedload

from ...billing import (
    ValidationError,
    client_report,
    credit_ledger_report,
    credit_summary,
    expense_summary,
    labor_report,
    profit_loss_report,
    supply_summary,
)
from ...billing.records import to_date
from ...models import Credit, Expense, Supply, Timesheet
from ...security import tenant_required

reports_bp = Blueprint("reports", __name__, url_prefix="/reports")


# ---------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------
def _date_window():
    start = request.args.get("startDate")
    end = request.args.get("endDate")
    start = to_date(start, field="startDate") if start else None
    end = to_date(end, field="endDate") if end else None
    if start and end and start > end:
        raise ValidationError("startDate must not be after endDate")
    return start, end


def _in_window(q, column):
    start, end = _date_window()
    if start:
        q = q.filter(column >= start)
    if end:
        q = q.filter(column <= end)
    return q


def _optional_int_arg(name: str):
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    if not raw.isdigit():
        raise ValidationError(f"{name} must be an integer")
    return int(raw)


def _timesheet_records():
    q = Timesheet.query.options(joinedload(Timesheet.laborer), joinedload(Timesheet.job)).filter(
        Timesheet.tenant_id == g.tenant_id
    )
    q = _in_window(q, Timesheet.date)

    laborer_id = _optional_int_arg("laborerId")
    if laborer_id is not None:
        q = q.filter(Timesheet.laborer_id == laborer_id)
    job_id = _optional_int_arg("jobId")
    if job_id is not None:
        q = q.filter(Timesheet.job_id == job_id)

    return [row.to_record() for row in q.order_by(Timesheet.date.asc(), Timesheet.id.asc()).all()]


def _expense_records():
    q = Expense.query.options(joinedload(Expense.category)).filter(Expense.tenant_id == g.tenant_id)
    q = _in_window(q, Expense.date)
    return [row.to_record() for row in q.order_by(Expense.date.asc(), Expense.id.asc()).all()]


def _supply_records():
    q = Supply.query.options(joinedload(Supply.category)).filter(Supply.tenant_id == g.tenant_id)
    q = _in_window(q, Supply.date)
    return [row.to_record() for row in q.order_by(Supply.date.asc(), Supply.id.asc()).all()]


def _credit_records():
    q = _in_window(Credit.query.filter(Credit.tenant_id == g.tenant_id), Credit.date)
    return [row.to_record() for row in q.order_by(Credit.date.asc(), Credit.id.asc()).all()]


def _with_filters(payload: dict) -> dict:
    start, end = _date_window()
    filters = payload.setdefault("filters", {})
    filters["startDate"] = start.isoformat() if start else None
    filters["endDate"] = end.isoformat() if end else None
    return payload


# ---------------------------------------------------------------------
# Labor / client / P&L
# ---------------------------------------------------------------------
@reports_bp.route("/labor")
@tenant_required
def labor():
    return jsonify(_with_filters(labor_report(_timesheet_records()).to_dict()))


@reports_bp.route("/client")
@tenant_required
def client():
    return jsonify(_with_filters(client_report(_timesheet_records()).to_dict()))


@reports_bp.route("/profit-loss")
@tenant_required
def profit_loss():
    report = profit_loss_report(_timesheet_records(), _expense_records())
    return jsonify(_with_filters(report.to_dict()))


@reports_bp.route("/expenses")
@tenant_required
def expenses():
    return jsonify(_with_filters(expense_summary(_expense_records()).to_dict()))


@reports_bp.route("/supplies")
@tenant_required
def supplies():
    return jsonify(_with_filters(supply_summary(_supply_records()).to_dict()))


# ---------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------
@reports_bp.route("/credits")
@tenant_required
def credits():
    group_by = (request.args.get("groupBy") or "month").strip().lower()
    ledger = credit_ledger_report(_credit_records(), group_by)
    return jsonify(_with_filters(ledger.to_dict()))


@reports_bp.route("/credits/summary")
@tenant_required
def credits_summary():
    return jsonify(credit_summary(_credit_records()).to_dict())
