"""
backoffice/billing/reports.py

Report Aggregator: labor (cost), client (revenue), profit & loss, expenses,
supplies and the credit ledger. Every variant is a grouping over aggregation.aggregate().

Rates:
- labor report pays at salary_rate with each timesheet's own overtime multiplier
- client report charges at org_rate with each timesheet's own multiplier
  (invoicing uses a fixed 1.5x instead, see invoicing.py)

Output ordering is deterministic regardless of input order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from .aggregation import aggregate, ordered, sum_by
from .errors import ValidationError
from .money import ZERO, money, percent_of, plain, safe_div
from .records import (
    DEFAULT_OVERTIME_MULTIPLIER,
    CreditRecord,
    CreditStatus,
    CreditType,
    ExpenseRecord,
    Multiplier,
    RatedTimeRecord,
    SupplyRecord,
)

logger = logging.getLogger(__name__)

GROUP_BY_CHOICES = ("day", "week", "month", "year")


def _num(value: Decimal) -> float:
    return float(money(value))


def _hours(value: Decimal) -> float:
    return float(value)


# ---------------------------------------------------------------------
# Per-laborer accumulators
# ---------------------------------------------------------------------
@dataclass
class _LaborerHours:
    laborer_id: Any
    laborer_name: Optional[str] = None
    record_count: int = 0
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO

    @property
    def total_hours(self) -> Decimal:
        return self.regular_hours + self.overtime_hours

    def _add_hours(self, record: RatedTimeRecord) -> None:
        self.laborer_name = self.laborer_name or record.laborer_name
        self.record_count += 1
        self.regular_hours += record.regular_hours
        self.overtime_hours += record.overtime_hours


@dataclass
class LaborReportRow(_LaborerHours):
    regular_pay: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    multipliers: Set[Decimal] = field(default_factory=set)

    def add(self, record: RatedTimeRecord) -> "LaborReportRow":
        self._add_hours(record)
        self.regular_pay += record.regular_amount(record.salary_rate)
        self.overtime_pay += record.overtime_amount(record.salary_rate)
        if isinstance(record.overtime, Multiplier):
            self.multipliers.add(record.overtime.value)
        return self

    @property
    def total_pay(self) -> Decimal:
        return self.regular_pay + self.overtime_pay

    @property
    def overtime_multiplier(self):
        """
        None without overtime, the literal multiplier when only one was used,
        otherwise a "min–max×" range label.
        """
        if not self.multipliers:
            return None
        if len(self.multipliers) == 1:
            return next(iter(self.multipliers))
        return f"{plain(min(self.multipliers))}–{plain(max(self.multipliers))}×"

    def to_dict(self) -> Dict[str, Any]:
        multiplier = self.overtime_multiplier
        return {
            "laborerId": self.laborer_id,
            "laborerName": self.laborer_name,
            "recordCount": self.record_count,
            "regularHours": _hours(self.regular_hours),
            "overtimeHours": _hours(self.overtime_hours),
            "totalHours": _hours(self.total_hours),
            "overtimeMultiplier": float(multiplier) if isinstance(multiplier, Decimal) else multiplier,
            "regularPay": _num(self.regular_pay),
            "overtimePay": _num(self.overtime_pay),
            "totalPay": _num(self.total_pay),
        }


@dataclass
class ClientReportRow(_LaborerHours):
    regular_charge: Decimal = ZERO
    overtime_charge: Decimal = ZERO
    total_cost: Decimal = ZERO

    def add(self, record: RatedTimeRecord) -> "ClientReportRow":
        self._add_hours(record)
        self.regular_charge += record.regular_amount(record.org_rate)
        self.overtime_charge += record.overtime_amount(record.org_rate)
        self.total_cost += record.regular_amount(record.salary_rate) + record.overtime_amount(record.salary_rate)
        return self

    @property
    def total_charge(self) -> Decimal:
        return self.regular_charge + self.overtime_charge

    @property
    def profit(self) -> Decimal:
        return self.total_charge - self.total_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "laborerId": self.laborer_id,
            "laborerName": self.laborer_name,
            "recordCount": self.record_count,
            "regularHours": _hours(self.regular_hours),
            "overtimeHours": _hours(self.overtime_hours),
            "totalHours": _hours(self.total_hours),
            "regularCharge": _num(self.regular_charge),
            "overtimeCharge": _num(self.overtime_charge),
            "totalCharge": _num(self.total_charge),
            "totalCost": _num(self.total_cost),
            "profit": _num(self.profit),
        }


def _laborer_order(item):
    key, row = item
    return (row.laborer_name or "", str(key))


# ---------------------------------------------------------------------
# Labor report
# ---------------------------------------------------------------------
@dataclass
class LaborReport:
    rows: List[LaborReportRow]
    average_overtime_multiplier: Decimal = DEFAULT_OVERTIME_MULTIPLIER

    @property
    def total_regular_hours(self) -> Decimal:
        return sum((r.regular_hours for r in self.rows), ZERO)

    @property
    def total_overtime_hours(self) -> Decimal:
        return sum((r.overtime_hours for r in self.rows), ZERO)

    @property
    def total_regular_pay(self) -> Decimal:
        return sum((r.regular_pay for r in self.rows), ZERO)

    @property
    def total_overtime_pay(self) -> Decimal:
        return sum((r.overtime_pay for r in self.rows), ZERO)

    @property
    def total_pay(self) -> Decimal:
        return self.total_regular_pay + self.total_overtime_pay

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportType": "labor",
            "data": [row.to_dict() for row in self.rows],
            "summary": {
                "totalRegularHours": _hours(self.total_regular_hours),
                "totalOvertimeHours": _hours(self.total_overtime_hours),
                "totalHours": _hours(self.total_regular_hours + self.total_overtime_hours),
                "totalRegularPay": _num(self.total_regular_pay),
                "totalOvertimePay": _num(self.total_overtime_pay),
                "totalPay": _num(self.total_pay),
                "averageOvertimeMultiplier": float(self.average_overtime_multiplier),
                "recordCount": sum(r.record_count for r in self.rows),
            },
        }


def average_overtime_multiplier(timesheets: Iterable[RatedTimeRecord]) -> Decimal:
    """Hour-weighted average multiplier over overtime rows; 1.5 when there are none."""
    weighted = ZERO
    hours = ZERO
    for record in timesheets:
        if isinstance(record.overtime, Multiplier):
            weighted += record.overtime_hours * record.overtime.value
            hours += record.overtime_hours
    if hours == ZERO:
        return DEFAULT_OVERTIME_MULTIPLIER
    return weighted / hours


def labor_report(timesheets: Iterable[RatedTimeRecord]) -> LaborReport:
    timesheets = list(timesheets)
    groups = aggregate(
        timesheets,
        lambda r: r.laborer_id,
        lambda row, r: row.add(r),
        lambda k: LaborReportRow(laborer_id=k),
    )
    return LaborReport(
        rows=ordered(groups, _laborer_order),
        average_overtime_multiplier=average_overtime_multiplier(timesheets),
    )


# ---------------------------------------------------------------------
# Client report
# ---------------------------------------------------------------------
@dataclass
class ClientReport:
    rows: List[ClientReportRow]

    @property
    def total_charge(self) -> Decimal:
        return sum((r.total_charge for r in self.rows), ZERO)

    @property
    def total_cost(self) -> Decimal:
        return sum((r.total_cost for r in self.rows), ZERO)

    @property
    def total_profit(self) -> Decimal:
        return self.total_charge - self.total_cost

    @property
    def total_hours(self) -> Decimal:
        return sum((r.total_hours for r in self.rows), ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportType": "client",
            "data": [row.to_dict() for row in self.rows],
            "summary": {
                "totalRegularHours": _hours(sum((r.regular_hours for r in self.rows), ZERO)),
                "totalOvertimeHours": _hours(sum((r.overtime_hours for r in self.rows), ZERO)),
                "totalHours": _hours(self.total_hours),
                "totalRegularCharge": _num(sum((r.regular_charge for r in self.rows), ZERO)),
                "totalOvertimeCharge": _num(sum((r.overtime_charge for r in self.rows), ZERO)),
                "totalCharge": _num(self.total_charge),
                "totalCost": _num(self.total_cost),
                "totalProfit": _num(self.total_profit),
                "recordCount": sum(r.record_count for r in self.rows),
            },
        }


def client_report(timesheets: Iterable[RatedTimeRecord]) -> ClientReport:
    groups = aggregate(
        timesheets,
        lambda r: r.laborer_id,
        lambda row, r: row.add(r),
        lambda k: ClientReportRow(laborer_id=k),
    )
    return ClientReport(rows=ordered(groups, _laborer_order))


# ---------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------
@dataclass
class ExpenseCategoryRow:
    category_id: Any
    category_name: Optional[str] = None
    amount: Decimal = ZERO
    count: int = 0

    def add(self, record: ExpenseRecord) -> "ExpenseCategoryRow":
        self.category_name = self.category_name or record.category_name
        self.amount += record.amount
        self.count += 1
        return self

    @property
    def average(self) -> Decimal:
        return safe_div(self.amount, Decimal(self.count))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "amount": _num(self.amount),
            "count": self.count,
            "average": _num(self.average),
        }


def _expense_breakdown(expenses: Iterable[ExpenseRecord]) -> List[ExpenseCategoryRow]:
    groups = aggregate(
        expenses,
        lambda r: r.category_id,
        lambda row, r: row.add(r),
        lambda k: ExpenseCategoryRow(category_id=k),
    )
    return ordered(groups, lambda kv: (-kv[1].amount, str(kv[0])))


@dataclass
class ExpenseSummary:
    rows: List[ExpenseCategoryRow]

    @property
    def total_amount(self) -> Decimal:
        return sum((r.amount for r in self.rows), ZERO)

    @property
    def total_expenses(self) -> int:
        return sum(r.count for r in self.rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAmount": _num(self.total_amount),
            "totalExpenses": self.total_expenses,
            "categoryCount": len(self.rows),
            "categoryBreakdown": [row.to_dict() for row in self.rows],
        }


def expense_summary(expenses: Iterable[ExpenseRecord]) -> ExpenseSummary:
    return ExpenseSummary(rows=_expense_breakdown(expenses))


# ---------------------------------------------------------------------
# Supplies
# ---------------------------------------------------------------------
@dataclass
class SupplyCategoryRow:
    """Per category: value = Σ unit_price × quantity."""

    category_id: Any
    category_name: Optional[str] = None
    value: Decimal = ZERO
    quantity: Decimal = ZERO
    count: int = 0

    def add(self, record: SupplyRecord) -> "SupplyCategoryRow":
        self.category_name = self.category_name or record.category_name
        self.value += record.total
        self.quantity += record.quantity
        self.count += 1
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "value": _num(self.value),
            "quantity": _hours(self.quantity),
            "count": self.count,
        }


@dataclass
class SupplySummary:
    rows: List[SupplyCategoryRow]

    @property
    def total_value(self) -> Decimal:
        return sum((r.value for r in self.rows), ZERO)

    @property
    def total_quantity(self) -> Decimal:
        return sum((r.quantity for r in self.rows), ZERO)

    @property
    def total_supplies(self) -> int:
        return sum(r.count for r in self.rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalValue": _num(self.total_value),
            "totalQuantity": _hours(self.total_quantity),
            "totalSupplies": self.total_supplies,
            "categoryBreakdown": [row.to_dict() for row in self.rows],
        }


def supply_summary(supplies: Iterable[SupplyRecord]) -> SupplySummary:
    """Supplies folded per category, highest value first."""
    groups = aggregate(
        supplies,
        lambda r: r.category_id,
        lambda row, r: row.add(r),
        lambda k: SupplyCategoryRow(category_id=k),
    )
    return SupplySummary(rows=ordered(groups, lambda kv: (-kv[1].value, str(kv[0]))))


# ---------------------------------------------------------------------
# Profit & loss
# ---------------------------------------------------------------------
@dataclass
class JobPerformanceRow:
    job_id: Any
    job_name: Optional[str] = None
    hours: Decimal = ZERO
    revenue: Decimal = ZERO
    labor_cost: Decimal = ZERO

    def add(self, record: RatedTimeRecord) -> "JobPerformanceRow":
        self.job_name = self.job_name or record.job_name
        self.hours += record.total_hours
        self.revenue += record.regular_amount(record.org_rate) + record.overtime_amount(record.org_rate)
        self.labor_cost += record.regular_amount(record.salary_rate) + record.overtime_amount(record.salary_rate)
        return self

    @property
    def gross_profit(self) -> Decimal:
        return self.revenue - self.labor_cost

    @property
    def margin(self) -> Decimal:
        return percent_of(self.gross_profit, self.revenue)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "jobName": self.job_name,
            "hours": _hours(self.hours),
            "revenue": _num(self.revenue),
            "laborCost": _num(self.labor_cost),
            "grossProfit": _num(self.gross_profit),
            "margin": _num(self.margin),
        }


@dataclass
class ProfitLossReport:
    total_revenue: Decimal
    total_labor_costs: Decimal
    total_hours: Decimal
    job_breakdown: List[JobPerformanceRow]
    expense_breakdown: List[ExpenseCategoryRow]

    @property
    def total_expenses(self) -> Decimal:
        return sum((r.amount for r in self.expense_breakdown), ZERO)

    @property
    def gross_profit(self) -> Decimal:
        return self.total_revenue - self.total_labor_costs

    @property
    def net_profit(self) -> Decimal:
        return self.gross_profit - self.total_expenses

    @property
    def total_costs(self) -> Decimal:
        return self.total_labor_costs + self.total_expenses

    @property
    def gross_margin(self) -> Decimal:
        return percent_of(self.gross_profit, self.total_revenue)

    @property
    def net_margin(self) -> Decimal:
        return percent_of(self.net_profit, self.total_revenue)

    @property
    def average_hourly_revenue(self) -> Decimal:
        return safe_div(self.total_revenue, self.total_hours)

    @property
    def average_hourly_labor_cost(self) -> Decimal:
        return safe_div(self.total_labor_costs, self.total_hours)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportType": "profit-loss",
            "summary": {
                "totalRevenue": _num(self.total_revenue),
                "totalLaborCosts": _num(self.total_labor_costs),
                "grossProfit": _num(self.gross_profit),
                "totalExpenses": _num(self.total_expenses),
                "totalCosts": _num(self.total_costs),
                "netProfit": _num(self.net_profit),
                "grossMargin": _num(self.gross_margin),
                "netMargin": _num(self.net_margin),
                "totalHours": _hours(self.total_hours),
                "averageHourlyRevenue": _num(self.average_hourly_revenue),
                "averageHourlyLaborCost": _num(self.average_hourly_labor_cost),
                "totalJobs": len(self.job_breakdown),
            },
            "jobBreakdown": [row.to_dict() for row in self.job_breakdown],
            "expenseBreakdown": [row.to_dict() for row in self.expense_breakdown],
        }


def profit_loss_report(
    timesheets: Iterable[RatedTimeRecord],
    expenses: Iterable[ExpenseRecord],
) -> ProfitLossReport:
    timesheets = list(timesheets)
    by_laborer = client_report(timesheets)

    jobs = aggregate(
        timesheets,
        lambda r: r.job_id,
        lambda row, r: row.add(r),
        lambda k: JobPerformanceRow(job_id=k),
    )
    return ProfitLossReport(
        total_revenue=by_laborer.total_charge,
        total_labor_costs=by_laborer.total_cost,
        total_hours=by_laborer.total_hours,
        job_breakdown=ordered(jobs, lambda kv: (-kv[1].revenue, str(kv[0]))),
        expense_breakdown=_expense_breakdown(expenses),
    )


# ---------------------------------------------------------------------
# Credit ledger
# ---------------------------------------------------------------------
def period_key(day: date, group_by: str) -> str:
    """
    Bucket label for a credit date.

    day   -> YYYY-MM-DD
    week  -> YYYY-MM-DD of the Sunday starting that week
    month -> YYYY-MM
    year  -> YYYY
    """
    if group_by == "day":
        return day.isoformat()
    if group_by == "week":
        sunday = day - timedelta(days=(day.weekday() + 1) % 7)
        return sunday.isoformat()
    if group_by == "month":
        return f"{day.year:04d}-{day.month:02d}"
    if group_by == "year":
        return f"{day.year:04d}"
    raise ValidationError(f"groupBy must be one of {', '.join(GROUP_BY_CHOICES)}")


@dataclass
class RunningBalanceRow:
    period: str
    deposits: Decimal = ZERO
    withdrawals: Decimal = ZERO
    advances: Decimal = ZERO
    transactions: List[CreditRecord] = field(default_factory=list)
    running_balance: Decimal = ZERO

    def add(self, record: CreditRecord) -> "RunningBalanceRow":
        if record.type is CreditType.DEPOSIT:
            self.deposits += record.amount
        elif record.type is CreditType.WITHDRAWAL:
            self.withdrawals += record.amount
        else:
            self.advances += record.amount
        self.transactions.append(record)
        return self

    @property
    def net_flow(self) -> Decimal:
        return self.deposits + self.advances - self.withdrawals

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "deposits": _num(self.deposits),
            "withdrawals": _num(self.withdrawals),
            "advances": _num(self.advances),
            "netFlow": _num(self.net_flow),
            "runningBalance": _num(self.running_balance),
            "transactionCount": self.transaction_count,
            "transactions": [
                {
                    "id": t.id,
                    "date": t.date.isoformat(),
                    "amount": _num(t.amount),
                    "type": t.type.value,
                    "status": t.status.value,
                    "description": t.description,
                    "reference": t.reference,
                }
                for t in self.transactions
            ],
        }


@dataclass
class CreditLedger:
    group_by: str
    rows: List[RunningBalanceRow]

    @property
    def final_balance(self) -> Decimal:
        return self.rows[-1].running_balance if self.rows else ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportData": [row.to_dict() for row in self.rows],
            "totals": {
                "totalDeposits": _num(sum((r.deposits for r in self.rows), ZERO)),
                "totalWithdrawals": _num(sum((r.withdrawals for r in self.rows), ZERO)),
                "totalAdvances": _num(sum((r.advances for r in self.rows), ZERO)),
                "totalTransactions": sum(r.transaction_count for r in self.rows),
                "finalBalance": _num(self.final_balance),
            },
            "filters": {"groupBy": self.group_by},
        }


def credit_ledger_report(credits: Iterable[CreditRecord], group_by: str = "month") -> CreditLedger:
    """
    Period buckets with a running balance carried across periods.

    Cancelled credits never move the balance. Records are stable-sorted by
    date before folding; periods are then walked in ascending order, which is
    the only place state threads between groups.
    """
    if group_by not in GROUP_BY_CHOICES:
        raise ValidationError(f"groupBy must be one of {', '.join(GROUP_BY_CHOICES)}")

    active = sorted(
        (c for c in credits if c.status is not CreditStatus.CANCELLED),
        key=lambda c: c.date,
    )
    groups = aggregate(
        active,
        lambda c: period_key(c.date, group_by),
        lambda row, c: row.add(c),
        lambda k: RunningBalanceRow(period=k),
    )

    rows = ordered(groups, lambda kv: kv[0])
    balance = ZERO
    for row in rows:
        balance += row.net_flow
        row.running_balance = balance

    logger.debug("credit ledger: %d credits in %d %s periods", len(active), len(rows), group_by)
    return CreditLedger(group_by=group_by, rows=rows)


@dataclass
class CreditSummary:
    total_deposits: Decimal = ZERO
    total_withdrawals: Decimal = ZERO
    total_advances: Decimal = ZERO
    pending_amount: Decimal = ZERO
    confirmed_amount: Decimal = ZERO
    total_records: int = 0

    @property
    def net_balance(self) -> Decimal:
        return self.total_deposits + self.total_advances - self.total_withdrawals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalDeposits": _num(self.total_deposits),
            "totalWithdrawals": _num(self.total_withdrawals),
            "totalAdvances": _num(self.total_advances),
            "netBalance": _num(self.net_balance),
            "pendingAmount": _num(self.pending_amount),
            "confirmedAmount": _num(self.confirmed_amount),
            "totalRecords": self.total_records,
        }


def credit_summary(credits: Iterable[CreditRecord]) -> CreditSummary:
    """Totals by type and by status over every record, cancelled included."""
    credits = list(credits)
    by_type = sum_by(credits, lambda c: c.type, lambda c: c.amount)
    by_status = sum_by(credits, lambda c: c.status, lambda c: c.amount)
    return CreditSummary(
        total_deposits=by_type.get(CreditType.DEPOSIT, ZERO),
        total_withdrawals=by_type.get(CreditType.WITHDRAWAL, ZERO),
        total_advances=by_type.get(CreditType.ADVANCE, ZERO),
        pending_amount=by_status.get(CreditStatus.PENDING, ZERO),
        confirmed_amount=by_status.get(CreditStatus.CONFIRMED, ZERO),
        total_records=len(credits),
    )
