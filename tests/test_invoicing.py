from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from backoffice.billing import (
    BillingError,
    Customer,
    DuplicateInvoice,
    InvoiceLineItem,
    InvoiceNumberAllocator,
    InvoiceRef,
    NoBillableActivity,
    RatedTimeRecord,
    Seller,
    SupplyRecord,
    ValidationError,
    create_invoice,
    decode_qr_payload,
    synthesize_monthly_invoice,
)
from backoffice.billing.money import money

SELLER = Seller(name="Acme Contracting", vat_number="310000000000003")
CUSTOMER = Customer(name="Client X", vat_number="311000000000003", address="Gate 1", city="Riyadh")
ISSUED = datetime(2025, 4, 1, 9, 30, tzinfo=timezone.utc)


def _timesheet(day: int, *, laborer="L1", job="J1", job_name="Concrete Works", regular="5", overtime="1",
               multiplier="1.5", salary="20", org="35") -> RatedTimeRecord:
    return RatedTimeRecord.build(
        laborer_id=laborer,
        job_id=job,
        date=date(2025, 3, day),
        regular_hours=regular,
        overtime_hours=overtime,
        overtime_multiplier=multiplier,
        salary_rate=salary,
        org_rate=org,
        laborer_name=laborer,
        job_name=job_name,
    )


def _supplies():
    return [
        SupplyRecord(category_id="C1", category_name="Cement", name="Bag A", date=date(2025, 3, 2), unit_price="10", quantity=2),
        SupplyRecord(category_id="C1", category_name="Cement", name="Bag B", date=date(2025, 3, 3), unit_price="20", quantity=1),
    ]


def _synthesize(timesheets=(), supplies=(), **kwargs):
    return synthesize_monthly_invoice(
        "t1", 3, 2025, CUSTOMER, list(timesheets), list(supplies), seller=SELLER, issued_at=ISSUED, **kwargs
    )


def test_supply_category_line_uses_weighted_average_price() -> None:
    invoice = _synthesize(supplies=_supplies())

    (line,) = invoice.items
    assert line.quantity == Decimal("3")
    assert money(line.unit_price) == Decimal("13.33")
    assert money(line.line_total) == Decimal("40.00")
    assert line.description == "Cement Supplies: Bag A (2x 10.00 SAR), Bag B (1x 20.00 SAR)"


def test_job_line_bills_overtime_at_fixed_factor() -> None:
    invoice = _synthesize(timesheets=[_timesheet(d) for d in range(1, 11)])

    (line,) = invoice.items
    assert line.description == "Concrete Works - 50h regular + 10h overtime (1 laborers)"
    assert line.quantity == Decimal("60")
    # 50 x 35 + 10 x 35 x 1.5
    assert money(line.line_total) == Decimal("2275.00")


def test_invoice_ignores_per_record_multiplier() -> None:
    record = _timesheet(1, regular="1", overtime="2", multiplier="2.0", org="10")

    invoice = _synthesize(timesheets=[record])

    assert money(invoice.subtotal) == Decimal("40.00")
    assert record.overtime_amount(record.org_rate) == Decimal("40.0")


def test_job_line_without_overtime_omits_overtime_text() -> None:
    invoice = _synthesize(
        timesheets=[
            _timesheet(1, laborer="L1", overtime="0", multiplier=None),
            _timesheet(2, laborer="L2", overtime="0", multiplier=None),
        ]
    )

    assert invoice.items[0].description == "Concrete Works - 10h regular (2 laborers)"


def test_totals_and_vat_hold_for_mixed_activity() -> None:
    invoice = _synthesize(timesheets=[_timesheet(d) for d in range(1, 11)], supplies=_supplies())

    assert [item.description.split(" ")[0] for item in invoice.items] == ["Concrete", "Cement"]
    assert money(invoice.subtotal) == Decimal("2315.00")
    assert money(invoice.vat_amount) == Decimal("347.25")
    assert money(invoice.total_amount) == Decimal("2662.25")
    assert invoice.total_amount == invoice.subtotal + invoice.vat_amount
    assert money(invoice.vat_amount) == money(invoice.subtotal * Decimal("0.15"))


def test_lines_are_ordered_by_job_name_regardless_of_input_order() -> None:
    records = [
        _timesheet(1, job="J2", job_name="Zoning"),
        _timesheet(2, job="J1", job_name="Asphalt"),
    ]

    forward = _synthesize(timesheets=records)
    backward = _synthesize(timesheets=list(reversed(records)))

    assert [i.description for i in forward.items] == [i.description for i in backward.items]
    assert forward.items[0].description.startswith("Asphalt")


def test_qr_payload_carries_invoice_totals() -> None:
    invoice = _synthesize(timesheets=[_timesheet(d) for d in range(1, 11)], supplies=_supplies())

    fields = dict(decode_qr_payload(invoice.qr_payload))
    assert fields[1] == "Acme Contracting"
    assert fields[3] == "2025-04-01T12:30:00+03:00"
    assert fields[4] == "2662.25"
    assert fields[5] == "347.25"


def test_rendered_total_is_the_sum_of_rounded_subtotal_and_vat() -> None:
    # 1h overtime x 66.69 x 1.5 = 100.035, VAT 15.00525
    invoice = _synthesize(timesheets=[_timesheet(1, regular="0", overtime="1", org="66.69")])

    assert invoice.cents() == (Decimal("100.04"), Decimal("15.01"), Decimal("115.05"))
    data = invoice.to_dict()
    assert (data["subtotal"], data["vatAmount"], data["totalAmount"]) == (100.04, 15.01, 115.05)
    assert data["items"][0]["totalAmount"] == 115.05

    fields = dict(decode_qr_payload(invoice.qr_payload))
    assert (fields[4], fields[5]) == ("115.05", "15.01")


def test_second_synthesis_for_same_customer_and_month_is_duplicate() -> None:
    first = _synthesize(supplies=_supplies())
    existing = [
        InvoiceRef(
            id=41,
            tenant_id="t1",
            customer_name=first.customer.name,
            invoice_month=first.invoice_month,
            invoice_year=first.invoice_year,
            invoice_number=first.invoice_number,
        )
    ]

    with pytest.raises(DuplicateInvoice) as exc_info:
        _synthesize(supplies=_supplies(), existing=existing)

    assert exc_info.value.invoice_id == 41
    assert exc_info.value.details() == {"invoiceId": 41, "invoiceNumber": "1"}
    assert exc_info.value.status_code == 409


def test_other_customers_only_advance_the_number() -> None:
    existing = [InvoiceRef(id=1, tenant_id="t1", customer_name="Someone Else", invoice_month=3, invoice_year=2025, invoice_number="1")]

    invoice = _synthesize(supplies=_supplies(), existing=existing)

    assert invoice.invoice_number == "2"


def test_invoices_of_other_tenants_do_not_count() -> None:
    existing = [InvoiceRef(id=1, tenant_id="t2", customer_name="Client X", invoice_month=3, invoice_year=2025, invoice_number="5")]

    invoice = _synthesize(supplies=_supplies(), existing=existing)

    assert invoice.invoice_number == "1"


def test_allocator_is_used_when_given() -> None:
    allocator = InvoiceNumberAllocator()
    allocator.allocate("t1", 3, 2025, [])

    invoice = _synthesize(supplies=_supplies(), allocator=allocator)

    assert invoice.invoice_number == "2"


def test_no_records_is_no_billable_activity() -> None:
    with pytest.raises(NoBillableActivity):
        _synthesize()


def test_only_zero_hour_timesheets_is_no_billable_activity() -> None:
    with pytest.raises(NoBillableActivity):
        _synthesize(timesheets=[_timesheet(1, regular="0", overtime="0", multiplier=None)])


@pytest.mark.parametrize("month, year", [(0, 2025), (13, 2025), ("x", 2025), (3, 0)])
def test_invalid_period_is_rejected(month, year) -> None:
    with pytest.raises(ValidationError):
        synthesize_monthly_invoice("t1", month, year, CUSTOMER, [], _supplies(), seller=SELLER)


def test_overtime_hours_require_a_multiplier() -> None:
    from backoffice.billing.records import NO_OVERTIME

    with pytest.raises(ValidationError):
        RatedTimeRecord(
            laborer_id="L1",
            job_id="J1",
            date=date(2025, 3, 1),
            regular_hours=Decimal("8"),
            overtime_hours=Decimal("2"),
            overtime=NO_OVERTIME,
            salary_rate=Decimal("20"),
            org_rate=Decimal("35"),
        )


def test_manual_invoice_numbers_in_issue_month() -> None:
    invoice = create_invoice(
        "t1",
        CUSTOMER,
        [
            {"description": "Crane rental", "quantity": 2, "unitPrice": 500, "vatRate": 15},
            InvoiceLineItem(description="Permit fee", quantity="1", unit_price="100", vat_rate="0"),
        ],
        seller=SELLER,
        issue_date="2025-02-10",
        due_date="2025-03-10",
        existing=[InvoiceRef(id=3, tenant_id="t1", customer_name="Client X", invoice_month=2, invoice_year=2025, invoice_number="3")],
        issued_at=ISSUED,
    )

    assert (invoice.invoice_month, invoice.invoice_year, invoice.invoice_number) == (2, 2025, "4")
    assert invoice.subtotal == Decimal("1100")
    assert invoice.vat_amount == Decimal("150")
    assert invoice.total_amount == Decimal("1250")
    assert invoice.to_dict()["items"][0]["lineTotal"] == 1000.0


@pytest.mark.parametrize(
    "item",
    [
        {"description": "", "quantity": 1, "unitPrice": 1},
        {"description": "x", "quantity": 0, "unitPrice": 1},
        {"description": "x", "quantity": 1, "unitPrice": -5},
        {"description": "x", "quantity": 1, "unitPrice": 1, "vatRate": 120},
        {"description": "x", "quantity": "abc", "unitPrice": 1},
    ],
)
def test_manual_invoice_rejects_bad_lines(item) -> None:
    with pytest.raises(ValidationError):
        create_invoice("t1", CUSTOMER, [item], seller=SELLER, issue_date=date(2025, 2, 1))


def test_manual_invoice_requires_items() -> None:
    with pytest.raises(ValidationError):
        create_invoice("t1", CUSTOMER, [], seller=SELLER, issue_date=date(2025, 2, 1))


@pytest.mark.parametrize(
    "seller",
    [
        Seller(name="Acme Contracting", vat_number=""),
        Seller(name="A" * 300, vat_number="310000000000003"),
    ],
)
def test_failed_invoice_does_not_use_up_a_number(seller) -> None:
    allocator = InvoiceNumberAllocator()
    line = {"description": "Crane rental", "quantity": 1, "unitPrice": 500}

    with pytest.raises(BillingError):
        create_invoice("t1", CUSTOMER, [line], seller=seller, issue_date=date(2025, 2, 1), allocator=allocator)
    invoice = create_invoice("t1", CUSTOMER, [line], seller=SELLER, issue_date=date(2025, 2, 1), allocator=allocator)

    assert invoice.invoice_number == "1"
