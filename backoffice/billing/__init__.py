"""
backoffice/billing

Pure billing and financial aggregation engine.

Nothing in this package touches the database or Flask. Blueprints load rows,
convert them with Model.to_record(), and call the functions exported here.
"""

from __future__ import annotations

from .aggregation import aggregate, ordered, sum_by
from .errors import BillingError, DuplicateInvoice, EncodingOverflow, NoBillableActivity, ValidationError
from .invoicing import (
    Customer,
    Invoice,
    InvoiceLineItem,
    InvoiceRef,
    Seller,
    create_invoice,
    supply_line_items,
    synthesize_monthly_invoice,
    timesheet_line_items,
)
from .numbering import InvoiceNumberAllocator, next_invoice_number
from .qr import decode_qr_payload, encode_qr_payload
from .records import (
    CreditRecord,
    CreditStatus,
    CreditType,
    ExpenseRecord,
    Multiplier,
    NO_OVERTIME,
    NoOvertime,
    RatedTimeRecord,
    SupplyRecord,
)
from .reports import (
    client_report,
    credit_ledger_report,
    credit_summary,
    expense_summary,
    labor_report,
    profit_loss_report,
    supply_summary,
)

__all__ = [
    "aggregate",
    "ordered",
    "sum_by",
    "BillingError",
    "DuplicateInvoice",
    "EncodingOverflow",
    "NoBillableActivity",
    "ValidationError",
    "Customer",
    "Invoice",
    "InvoiceLineItem",
    "InvoiceRef",
    "Seller",
    "create_invoice",
    "supply_line_items",
    "synthesize_monthly_invoice",
    "timesheet_line_items",
    "InvoiceNumberAllocator",
    "next_invoice_number",
    "decode_qr_payload",
    "encode_qr_payload",
    "CreditRecord",
    "CreditStatus",
    "CreditType",
    "ExpenseRecord",
    "Multiplier",
    "NO_OVERTIME",
    "NoOvertime",
    "RatedTimeRecord",
    "SupplyRecord",
    "client_report",
    "credit_ledger_report",
    "credit_summary",
    "expense_summary",
    "labor_report",
    "profit_loss_report",
    "supply_summary",
]
