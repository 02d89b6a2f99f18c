"""
backoffice/billing/errors.py

Error kinds raised by the billing engine.

Every error is terminal for the call that raised it. The engine performs no I/O,
so nothing here is retried internally. The HTTP layer maps `status_code` and
`details()` straight into a JSON error response.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base class for all engine errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        """Extra JSON fields surfaced next to the error message."""
        return {}


class ValidationError(BillingError):
    """Malformed or out-of-range numeric/date input. The whole call is rejected."""


class DuplicateInvoice(BillingError):
    """
    An invoice already exists for (tenant, customer, month, year).

    Carries the conflicting invoice identity so callers can redirect to it
    instead of retrying blindly.
    """

    status_code = 409

    def __init__(
        self,
        *,
        invoice_id: Any,
        customer_name: str,
        month: int,
        year: int,
        invoice_number: Optional[str] = None,
    ):
        super().__init__(f"Invoice already exists for {customer_name} in {month}/{year}")
        self.invoice_id = invoice_id
        self.invoice_number = invoice_number
        self.customer_name = customer_name
        self.month = month
        self.year = year

    def details(self) -> Dict[str, Any]:
        return {"invoiceId": self.invoice_id, "invoiceNumber": self.invoice_number}


class NoBillableActivity(BillingError):
    """Synthesis requested for a period with no timesheets and no supplies."""

    def __init__(self, month: int, year: int):
        super().__init__(f"No timesheets or supplies found for {month}/{year}")
        self.month = month
        self.year = year


class EncodingOverflow(BillingError):
    """
    A QR TLV field is longer than its single length byte can describe.

    This is a data problem (e.g. an oversized seller name), not user error.
    """

    status_code = 422

    def __init__(self, tag: int, length: int):
        super().__init__(f"QR field tag {tag} is {length} bytes; the limit is 255")
        self.tag = tag
        self.length = length

    def details(self) -> Dict[str, Any]:
        return {"tag": self.tag, "length": self.length}
