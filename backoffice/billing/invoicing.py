"""
backoffice/billing/invoicing.py

Invoice Synthesizer.

Two entry points share the same totals, numbering and QR steps:
- synthesize_monthly_invoice(): builds line items from a month of timesheets
  and supplies (one line per job, one line per supply category).
- create_invoice(): manual entry of caller-supplied line items.

IMPORTANT:
- Client billing uses a FIXED 1.5x overtime factor, independent of the
  per-timesheet multiplier used by payroll/client reports. Both paths are kept
  on purpose; see DESIGN.md.
- Line totals, VAT and invoice totals are properties: they are recomputed
  from quantity/unit price/VAT rate every time and never stored-then-trusted.
- At most one invoice per (tenant, customer, month, year). The duplicate check
  here works on the snapshot handed in by the caller; the store enforces the
  same rule with a UNIQUE constraint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .aggregation import aggregate, ordered
from .errors import DuplicateInvoice, NoBillableActivity, ValidationError
from .money import HUNDRED, ZERO, money, money_str, plain, to_decimal
from .numbering import InvoiceNumberAllocator, next_invoice_number
from .qr import BUSINESS_TZ, encode_qr_payload
from .records import RatedTimeRecord, SupplyRecord, to_date

logger = logging.getLogger(__name__)

DEFAULT_VAT_RATE = Decimal("15")
INVOICE_OVERTIME_FACTOR = Decimal("1.5")
CURRENCY = "SAR"


# ---------------------------------------------------------------------
# Parties / references
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Seller:
    name: str
    vat_number: str


@dataclass(frozen=True)
class Customer:
    name: str
    vat_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None

    def __post_init__(self):
        if not (self.name or "").strip():
            raise ValidationError("customer name is required")


@dataclass(frozen=True)
class InvoiceRef:
    """Identity of an already persisted invoice (duplicate check + numbering snapshot)."""

    id: Any
    customer_name: str
    invoice_month: int
    invoice_year: int
    invoice_number: Optional[str] = None
    tenant_id: Any = None


# ---------------------------------------------------------------------
# Line items / invoice
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class InvoiceLineItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal = DEFAULT_VAT_RATE

    def __post_init__(self):
        if not (self.description or "").strip():
            raise ValidationError("line item description is required")
        quantity = to_decimal(self.quantity, field="quantity")
        unit_price = to_decimal(self.unit_price, field="unit_price")
        vat_rate = to_decimal(self.vat_rate, field="vat_rate")
        if quantity <= ZERO:
            raise ValidationError("quantity must be > 0")
        if unit_price <= ZERO:
            raise ValidationError("unit_price must be > 0")
        if not (ZERO <= vat_rate <= HUNDRED):
            raise ValidationError("vat_rate must be between 0 and 100")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_price", unit_price)
        object.__setattr__(self, "vat_rate", vat_rate)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "InvoiceLineItem":
        """Accept camelCase (JSON) or snake_case keys."""
        vat_rate = data.get("vatRate", data.get("vat_rate"))
        return cls(
            description=data.get("description") or "",
            quantity=data.get("quantity"),
            unit_price=data.get("unitPrice", data.get("unit_price")),
            vat_rate=DEFAULT_VAT_RATE if vat_rate is None else vat_rate,
        )

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def vat_amount(self) -> Decimal:
        return self.line_total * self.vat_rate / HUNDRED

    @property
    def total_amount(self) -> Decimal:
        return self.line_total + self.vat_amount

    def cents(self) -> Tuple[Decimal, Decimal, Decimal]:
        """Line total, VAT and gross at cent precision; gross is the sum of the other two."""
        line_total = money(self.line_total)
        vat_amount = money(self.vat_amount)
        return line_total, vat_amount, line_total + vat_amount

    def to_dict(self) -> Dict[str, Any]:
        line_total, vat_amount, total_amount = self.cents()
        return {
            "description": self.description,
            "quantity": float(self.quantity),
            "unitPrice": float(money(self.unit_price)),
            "vatRate": float(self.vat_rate),
            "lineTotal": float(line_total),
            "vatAmount": float(vat_amount),
            "totalAmount": float(total_amount),
        }


@dataclass(frozen=True)
class Invoice:
    tenant_id: Any
    invoice_number: str
    invoice_month: int
    invoice_year: int
    customer: Customer
    issued_at: datetime
    items: Tuple[InvoiceLineItem, ...]
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    qr_payload: str = ""

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), ZERO)

    @property
    def vat_amount(self) -> Decimal:
        return sum((item.vat_amount for item in self.items), ZERO)

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.vat_amount

    def cents(self) -> Tuple[Decimal, Decimal, Decimal]:
        """
        Subtotal, VAT and total as rendered, stored and put in the QR code.

        Each of subtotal and VAT is rounded once from full precision and the
        total is their sum, so the three always add up.
        """
        subtotal = money(self.subtotal)
        vat_amount = money(self.vat_amount)
        return subtotal, vat_amount, subtotal + vat_amount

    def to_dict(self) -> Dict[str, Any]:
        subtotal, vat_amount, total_amount = self.cents()
        return {
            "invoiceNumber": self.invoice_number,
            "invoiceMonth": self.invoice_month,
            "invoiceYear": self.invoice_year,
            "issueDate": self.issue_date.isoformat() if self.issue_date else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "customerName": self.customer.name,
            "customerVat": self.customer.vat_number,
            "customerAddress": self.customer.address,
            "customerCity": self.customer.city,
            "subtotal": float(subtotal),
            "vatAmount": float(vat_amount),
            "totalAmount": float(total_amount),
            "qrPayload": self.qr_payload,
            "items": [item.to_dict() for item in self.items],
        }


# ---------------------------------------------------------------------
# Grouping accumulators
# ---------------------------------------------------------------------
@dataclass
class _JobAccumulator:
    job_id: Any
    job_name: Optional[str] = None
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    amount: Decimal = ZERO
    laborers: Set[Any] = field(default_factory=set)


def _fold_timesheet(acc: _JobAccumulator, record: RatedTimeRecord) -> _JobAccumulator:
    # Each row bills at its own org rate; rates can change inside a month.
    acc.job_name = acc.job_name or record.job_name
    acc.regular_hours += record.regular_hours
    acc.overtime_hours += record.overtime_hours
    acc.amount += record.regular_hours * record.org_rate
    acc.amount += record.overtime_hours * record.org_rate * INVOICE_OVERTIME_FACTOR
    acc.laborers.add(record.laborer_id)
    return acc


@dataclass
class _SupplyAccumulator:
    category_id: Any
    category_name: Optional[str] = None
    quantity: Decimal = ZERO
    total: Decimal = ZERO
    items: List[SupplyRecord] = field(default_factory=list)


def _fold_supply(acc: _SupplyAccumulator, record: SupplyRecord) -> _SupplyAccumulator:
    acc.category_name = acc.category_name or record.category_name
    acc.quantity += record.quantity
    acc.total += record.total
    acc.items.append(record)
    return acc


def timesheet_line_items(timesheets: Iterable[RatedTimeRecord]) -> List[InvoiceLineItem]:
    """
    One line per job.

    quantity = regular + overtime hours; unit price = blended hourly charge, so
    quantity x unit price reproduces the job amount.
    """
    groups = aggregate(timesheets, lambda r: r.job_id, _fold_timesheet, lambda k: _JobAccumulator(job_id=k))
    lines = []
    for acc in ordered(groups, lambda kv: ((kv[1].job_name or ""), str(kv[0]))):
        hours = acc.regular_hours + acc.overtime_hours
        if hours == ZERO:
            continue
        description = f"{acc.job_name or 'Unknown Job'} - {plain(acc.regular_hours)}h regular"
        if acc.overtime_hours > ZERO:
            description += f" + {plain(acc.overtime_hours)}h overtime"
        description += f" ({len(acc.laborers)} laborers)"
        lines.append(
            InvoiceLineItem(
                description=description,
                quantity=hours,
                unit_price=acc.amount / hours,
                vat_rate=DEFAULT_VAT_RATE,
            )
        )
    return lines


def supply_line_items(supplies: Iterable[SupplyRecord]) -> List[InvoiceLineItem]:
    """One line per category at the category's weighted average unit price."""
    groups = aggregate(supplies, lambda r: r.category_id, _fold_supply, lambda k: _SupplyAccumulator(category_id=k))
    lines = []
    for acc in ordered(groups, lambda kv: ((kv[1].category_name or ""), str(kv[0]))):
        breakdown = ", ".join(
            f"{item.name} ({plain(item.quantity)}x {money_str(item.unit_price)} {CURRENCY})" for item in acc.items
        )
        name = acc.category_name or str(acc.category_id)
        lines.append(
            InvoiceLineItem(
                description=f"{name} Supplies: {breakdown}",
                quantity=acc.quantity,
                unit_price=acc.total / acc.quantity,
                vat_rate=DEFAULT_VAT_RATE,
            )
        )
    return lines


# ---------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------
def _validate_period(month: Any, year: Any) -> Tuple[int, int]:
    try:
        month_i, year_i = int(month), int(year)
    except (TypeError, ValueError):
        raise ValidationError("Valid month (1-12) and year are required") from None
    if not 1 <= month_i <= 12 or year_i <= 0:
        raise ValidationError("Valid month (1-12) and year are required")
    return month_i, year_i


def _in_scope(ref: InvoiceRef, tenant_id: Any, month: int, year: int) -> bool:
    if ref.tenant_id is not None and ref.tenant_id != tenant_id:
        return False
    return ref.invoice_month == month and ref.invoice_year == year


def _finalize(
    *,
    tenant_id: Any,
    month: int,
    year: int,
    customer: Customer,
    items: Sequence[InvoiceLineItem],
    seller: Seller,
    existing: Sequence[InvoiceRef],
    issued_at: Optional[datetime],
    issue_date: Optional[date],
    due_date: Optional[date],
    tz: tzinfo,
    allocator: Optional[InvoiceNumberAllocator],
) -> Invoice:
    """
    Totals + QR payload + numbering (shared by both entry points).

    NOTE: the number is taken last. Anything that can still fail (seller
    validation, QR field overflow) runs before the allocator records it.
    """
    issued_at = issued_at or datetime.now(timezone.utc)
    draft = Invoice(
        tenant_id=tenant_id,
        invoice_number="",
        invoice_month=month,
        invoice_year=year,
        customer=customer,
        issued_at=issued_at,
        items=tuple(items),
        issue_date=issue_date,
        due_date=due_date,
    )
    _, vat_amount, total_amount = draft.cents()
    payload = encode_qr_payload(seller.name, seller.vat_number, issued_at, total_amount, vat_amount, tz=tz)

    scope_numbers = [ref.invoice_number for ref in existing if _in_scope(ref, tenant_id, month, year)]
    if allocator is not None:
        number = allocator.allocate(tenant_id, month, year, scope_numbers)
    else:
        number = next_invoice_number(tenant_id, month, year, scope_numbers)
    return replace(draft, invoice_number=number, qr_payload=payload)


# ---------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------
def synthesize_monthly_invoice(
    tenant_id: Any,
    month: int,
    year: int,
    customer: Customer,
    timesheets: Iterable[RatedTimeRecord],
    supplies: Iterable[SupplyRecord],
    *,
    seller: Seller,
    existing: Iterable[InvoiceRef] = (),
    issued_at: Optional[datetime] = None,
    issue_date: Optional[date] = None,
    due_date: Optional[date] = None,
    tz: tzinfo = BUSINESS_TZ,
    allocator: Optional[InvoiceNumberAllocator] = None,
) -> Invoice:
    """
    Build the monthly invoice for one customer from a month of activity.

    Raises:
        ValidationError: bad month/year.
        DuplicateInvoice: the customer already has an invoice for this month.
        NoBillableActivity: no timesheets and no supplies.
    """
    month, year = _validate_period(month, year)
    existing = list(existing)

    for ref in existing:
        if _in_scope(ref, tenant_id, month, year) and ref.customer_name == customer.name:
            raise DuplicateInvoice(
                invoice_id=ref.id,
                invoice_number=ref.invoice_number,
                customer_name=customer.name,
                month=month,
                year=year,
            )

    timesheets = list(timesheets)
    supplies = list(supplies)
    if not timesheets and not supplies:
        raise NoBillableActivity(month, year)

    items = timesheet_line_items(timesheets) + supply_line_items(supplies)
    if not items:
        raise NoBillableActivity(month, year)

    invoice = _finalize(
        tenant_id=tenant_id,
        month=month,
        year=year,
        customer=customer,
        items=items,
        seller=seller,
        existing=existing,
        issued_at=issued_at,
        issue_date=issue_date,
        due_date=due_date,
        tz=tz,
        allocator=allocator,
    )
    logger.info(
        "synthesized invoice %s for tenant=%s %02d/%d: %d timesheets, %d supplies, %d lines",
        invoice.invoice_number, tenant_id, month, year, len(timesheets), len(supplies), len(items),
    )
    return invoice


def create_invoice(
    tenant_id: Any,
    customer: Customer,
    items: Iterable[Union[InvoiceLineItem, Mapping[str, Any]]],
    *,
    seller: Seller,
    issue_date: Any,
    due_date: Any = None,
    existing: Iterable[InvoiceRef] = (),
    issued_at: Optional[datetime] = None,
    tz: tzinfo = BUSINESS_TZ,
    allocator: Optional[InvoiceNumberAllocator] = None,
) -> Invoice:
    """Manual invoice: caller-supplied lines, numbered in the issue date's month."""
    issue = to_date(issue_date, field="issue_date")
    due = to_date(due_date, field="due_date") if due_date is not None else None

    lines = [item if isinstance(item, InvoiceLineItem) else InvoiceLineItem.from_mapping(item) for item in items]
    if not lines:
        raise ValidationError("at least one line item is required")

    invoice = _finalize(
        tenant_id=tenant_id,
        month=issue.month,
        year=issue.year,
        customer=customer,
        items=lines,
        seller=seller,
        existing=list(existing),
        issued_at=issued_at,
        issue_date=issue,
        due_date=due,
        tz=tz,
        allocator=allocator,
    )
    logger.info("created invoice %s for tenant=%s with %d lines", invoice.invoice_number, tenant_id, len(lines))
    return invoice
