from __future__ import annotations

import random
from datetime import date
from decimal import Decimal

import pytest

from backoffice.billing import (
    CreditRecord,
    ExpenseRecord,
    RatedTimeRecord,
    SupplyRecord,
    ValidationError,
    client_report,
    credit_ledger_report,
    credit_summary,
    expense_summary,
    labor_report,
    profit_loss_report,
    supply_summary,
)
from backoffice.billing.money import money
from backoffice.billing.reports import period_key


def _ts(day, *, laborer="L1", name="Laborer One", job="J1", job_name="Concrete", regular="5", overtime="1",
        multiplier="1.5", salary="20", org="35"):
    return RatedTimeRecord.build(
        laborer_id=laborer,
        laborer_name=name,
        job_id=job,
        job_name=job_name,
        date=date(2025, 3, day),
        regular_hours=regular,
        overtime_hours=overtime,
        overtime_multiplier=multiplier,
        salary_rate=salary,
        org_rate=org,
    )


# ---------------------------------------------------------------------
# Labor
# ---------------------------------------------------------------------
def test_labor_report_scenario_ten_days() -> None:
    report = labor_report([_ts(d) for d in range(1, 11)])

    (row,) = report.rows
    assert row.regular_hours == Decimal("50")
    assert row.overtime_hours == Decimal("10")
    assert row.regular_pay == Decimal("1000")
    assert row.overtime_pay == Decimal("300")
    assert row.total_pay == Decimal("1300")
    assert row.record_count == 10
    assert row.overtime_multiplier == Decimal("1.5")


def test_labor_rows_sum_to_direct_total() -> None:
    records = [
        _ts(1),
        _ts(2, laborer="L2", name="Laborer Two", multiplier="2", salary="18.75"),
        _ts(3, laborer="L2", name="Laborer Two", overtime="0", multiplier=None, salary="18.75"),
        _ts(4, laborer="L3", name="Alpha", regular="7.5", overtime="2.25", multiplier="1.25", salary="22.10"),
    ]

    report = labor_report(records)

    direct = sum(
        (r.regular_hours * r.salary_rate + r.overtime_amount(r.salary_rate) for r in records),
        Decimal("0"),
    )
    assert sum((row.total_pay for row in report.rows), Decimal("0")) == direct
    assert report.total_pay == direct


def test_labor_rows_are_ordered_by_name_regardless_of_input_order() -> None:
    records = [_ts(1, laborer="L2", name="Zaid"), _ts(2, laborer="L1", name="Bilal"), _ts(3, laborer="L3", name="Adel")]
    shuffled = list(records)
    random.Random(7).shuffle(shuffled)

    assert [r.laborer_name for r in labor_report(records).rows] == ["Adel", "Bilal", "Zaid"]
    assert [r.laborer_id for r in labor_report(shuffled).rows] == ["L3", "L1", "L2"]


def test_overtime_multiplier_label() -> None:
    report = labor_report(
        [
            _ts(1, laborer="L1", multiplier="1.5"),
            _ts(2, laborer="L1", multiplier="2"),
            _ts(3, laborer="L2", name="No Overtime", overtime="0", multiplier=None),
        ]
    )
    by_id = {row.laborer_id: row for row in report.rows}

    assert by_id["L1"].overtime_multiplier == "1.5–2×"
    assert by_id["L2"].overtime_multiplier is None
    assert by_id["L2"].to_dict()["overtimeMultiplier"] is None


def test_average_overtime_multiplier_is_hour_weighted() -> None:
    report = labor_report(
        [
            _ts(1, overtime="3", multiplier="1.5"),
            _ts(2, overtime="1", multiplier="2.5"),
        ]
    )
    # (3 x 1.5 + 1 x 2.5) / 4
    assert report.average_overtime_multiplier == Decimal("1.75")


def test_average_overtime_multiplier_defaults_without_overtime() -> None:
    report = labor_report([_ts(1, overtime="0", multiplier=None)])

    assert report.average_overtime_multiplier == Decimal("1.5")
    assert report.to_dict()["summary"]["averageOvertimeMultiplier"] == 1.5


def test_empty_labor_report() -> None:
    report = labor_report([])

    assert report.rows == []
    assert report.total_pay == Decimal("0")


# ---------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------
def test_client_report_uses_org_rate_and_record_multiplier() -> None:
    report = client_report([_ts(1, overtime="2", multiplier="2")])

    (row,) = report.rows
    assert row.regular_charge == Decimal("175")
    assert row.overtime_charge == Decimal("140")
    assert row.total_charge == Decimal("315")
    # 5 x 20 + 2 x 20 x 2
    assert row.total_cost == Decimal("180")
    assert row.profit == Decimal("135")
    assert report.to_dict()["summary"]["totalProfit"] == 135.0


# ---------------------------------------------------------------------
# Profit & loss / expenses
# ---------------------------------------------------------------------
def _expenses():
    return [
        ExpenseRecord(category_id="E1", category_name="Fuel", date=date(2025, 3, 1), amount="60"),
        ExpenseRecord(category_id="E2", category_name="Rent", date=date(2025, 3, 1), amount="500"),
        ExpenseRecord(category_id="E1", category_name="Fuel", date=date(2025, 3, 9), amount="40"),
    ]


def test_profit_loss_report() -> None:
    records = [
        _ts(1, overtime="0", multiplier=None, regular="10"),
        _ts(2, job="J2", job_name="Finishing", overtime="0", multiplier=None, regular="20", salary="25", org="45"),
    ]

    report = profit_loss_report(records, _expenses())

    assert report.total_revenue == Decimal("1250")
    assert report.total_labor_costs == Decimal("700")
    assert report.gross_profit == Decimal("550")
    assert report.total_expenses == Decimal("600")
    assert report.total_costs == Decimal("1300")
    assert report.net_profit == Decimal("-50")
    assert money(report.gross_margin) == Decimal("44.00")
    assert money(report.net_margin) == Decimal("-4.00")
    assert report.total_hours == Decimal("30")
    assert money(report.average_hourly_revenue) == Decimal("41.67")

    assert [row.job_name for row in report.job_breakdown] == ["Finishing", "Concrete"]
    assert [row.category_name for row in report.expense_breakdown] == ["Rent", "Fuel"]

    summary = report.to_dict()["summary"]
    assert summary["totalJobs"] == 2
    assert summary["netProfit"] == -50.0


def test_profit_loss_with_no_revenue_has_zero_margins() -> None:
    report = profit_loss_report([], _expenses())

    assert report.gross_margin == Decimal("0")
    assert report.net_margin == Decimal("0")
    assert report.average_hourly_revenue == Decimal("0")
    assert report.net_profit == Decimal("-600")


def test_expense_summary() -> None:
    summary = expense_summary(_expenses())

    assert summary.total_amount == Decimal("600")
    assert summary.total_expenses == 3
    fuel = next(row for row in summary.rows if row.category_id == "E1")
    assert (fuel.amount, fuel.count, fuel.average) == (Decimal("100"), 2, Decimal("50"))
    assert summary.to_dict()["categoryBreakdown"][0]["categoryName"] == "Rent"


def test_malformed_amount_rejects_the_whole_report_input() -> None:
    with pytest.raises(ValidationError):
        ExpenseRecord(category_id="E1", date=date(2025, 3, 1), amount="12,5")


def test_supply_summary_folds_value_per_category() -> None:
    supplies = [
        SupplyRecord(category_id="C1", category_name="Cement", name="Bag A", date=date(2025, 3, 2), unit_price="10", quantity=2),
        SupplyRecord(category_id="C2", category_name="Steel", name="Rebar", date=date(2025, 3, 3), unit_price="150", quantity=1),
        SupplyRecord(category_id="C1", category_name="Cement", name="Bag B", date=date(2025, 3, 4), unit_price="20", quantity=1),
    ]

    summary = supply_summary(supplies)

    assert [row.category_name for row in summary.rows] == ["Steel", "Cement"]
    cement = summary.rows[1]
    assert (cement.value, cement.quantity, cement.count) == (Decimal("40"), Decimal("3"), 2)
    assert summary.total_value == Decimal("190")
    assert summary.total_quantity == Decimal("4")
    assert summary.total_supplies == 3
    assert supply_summary([]).to_dict() == {
        "totalValue": 0.0,
        "totalQuantity": 0.0,
        "totalSupplies": 0,
        "categoryBreakdown": [],
    }


# ---------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------
def _deposits_over_three_months():
    return [
        CreditRecord(date=date(2025, 1, 5), amount="100", type="DEPOSIT"),
        CreditRecord(date=date(2025, 1, 20), amount="50", type="DEPOSIT"),
        CreditRecord(date=date(2025, 2, 3), amount="200", type="DEPOSIT"),
        CreditRecord(date=date(2025, 3, 31), amount="25", type="DEPOSIT"),
    ]


def test_three_months_of_deposits_give_monotonic_balance() -> None:
    ledger = credit_ledger_report(_deposits_over_three_months(), "month")

    assert [row.period for row in ledger.rows] == ["2025-01", "2025-02", "2025-03"]
    balances = [row.running_balance for row in ledger.rows]
    assert balances == [Decimal("150"), Decimal("350"), Decimal("375")]
    assert balances == sorted(balances)
    assert ledger.final_balance == Decimal("375")


def test_running_balance_is_independent_of_input_order() -> None:
    records = _deposits_over_three_months() + [
        CreditRecord(date=date(2025, 2, 14), amount="80", type="WITHDRAWAL"),
        CreditRecord(date=date(2025, 3, 2), amount="40", type="ADVANCE"),
    ]
    shuffled = list(records)
    random.Random(3).shuffle(shuffled)

    expected = credit_ledger_report(records, "month")
    actual = credit_ledger_report(shuffled, "month")

    assert [(r.period, r.net_flow, r.running_balance) for r in actual.rows] == [
        (r.period, r.net_flow, r.running_balance) for r in expected.rows
    ]
    cumulative = Decimal("0")
    for row in actual.rows:
        cumulative += row.net_flow
        assert row.running_balance == cumulative


def test_cancelled_credits_are_excluded_from_the_ledger() -> None:
    records = [
        CreditRecord(date=date(2025, 1, 1), amount="100", type="DEPOSIT"),
        CreditRecord(date=date(2025, 1, 2), amount="900", type="DEPOSIT", status="CANCELLED"),
        CreditRecord(date=date(2025, 1, 3), amount="30", type="WITHDRAWAL", status="PENDING"),
    ]

    ledger = credit_ledger_report(records, "month")

    (row,) = ledger.rows
    assert row.transaction_count == 2
    assert row.net_flow == Decimal("70")


@pytest.mark.parametrize(
    "day, group_by, expected",
    [
        (date(2025, 3, 5), "day", "2025-03-05"),
        (date(2025, 3, 5), "week", "2025-03-02"),
        (date(2025, 3, 2), "week", "2025-03-02"),
        (date(2025, 3, 1), "week", "2025-02-23"),
        (date(2025, 3, 5), "month", "2025-03"),
        (date(2025, 3, 5), "year", "2025"),
    ],
)
def test_period_keys(day, group_by, expected) -> None:
    assert period_key(day, group_by) == expected


def test_unknown_group_by_is_rejected() -> None:
    with pytest.raises(ValidationError):
        credit_ledger_report([], "quarter")


def test_ledger_to_dict_totals() -> None:
    data = credit_ledger_report(_deposits_over_three_months(), "year").to_dict()

    assert len(data["reportData"]) == 1
    assert data["totals"] == {
        "totalDeposits": 375.0,
        "totalWithdrawals": 0.0,
        "totalAdvances": 0.0,
        "totalTransactions": 4,
        "finalBalance": 375.0,
    }
    assert data["filters"] == {"groupBy": "year"}


def test_credit_summary() -> None:
    summary = credit_summary(
        [
            CreditRecord(date=date(2025, 1, 1), amount="1000", type="DEPOSIT"),
            CreditRecord(date=date(2025, 1, 2), amount="300", type="WITHDRAWAL"),
            CreditRecord(date=date(2025, 1, 3), amount="200", type="ADVANCE", status="PENDING"),
        ]
    )

    assert summary.net_balance == Decimal("900")
    assert summary.pending_amount == Decimal("200")
    assert summary.confirmed_amount == Decimal("1300")
    assert summary.total_records == 3
