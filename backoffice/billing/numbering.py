"""
backoffice/billing/numbering.py

Sequential invoice numbers scoped to (tenant, month, year).

Numbering resets at the start of every calendar month per tenant.

IMPORTANT:
- next_invoice_number() is pure: it trusts the caller to hand it a consistent
  snapshot of the scope's existing numbers.
- Two requests reading the same snapshot would compute the same number.
  InvoiceNumberAllocator serializes allocation per scope inside one process;
  the store's UNIQUE (tenant, year, month, number) constraint covers the rest.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)


def parse_invoice_number(value: Any) -> Optional[int]:
    """Return the integer value of a stored invoice number, or None if it is malformed."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    raw = str(value).strip()
    if not raw.isdigit() or not raw.isascii():
        return None
    return int(raw)


def highest_invoice_number(existing_numbers: Iterable[Any]) -> int:
    """Largest valid number in the snapshot; 0 when there is none."""
    highest = 0
    for value in existing_numbers:
        parsed = parse_invoice_number(value)
        if parsed is not None and parsed > highest:
            highest = parsed
    return highest


def next_invoice_number(tenant_id: Any, month: int, year: int, existing_numbers: Iterable[Any]) -> str:
    """
    Next number for the (tenant, month, year) scope as a decimal string.

    Non-numeric historical values are skipped, never raised on.
    """
    nxt = highest_invoice_number(existing_numbers) + 1
    logger.debug("next invoice number for tenant=%s %02d/%d is %d", tenant_id, month, year, nxt)
    return str(nxt)


ScopeKey = Tuple[Any, int, int]


class InvoiceNumberAllocator:
    """
    Monotonic per-scope counter guarded by a single-writer lock.

    allocate() never hands out the same number twice for a scope during the
    allocator's lifetime, even if callers pass stale snapshots.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._issued: Dict[ScopeKey, int] = {}

    def allocate(self, tenant_id: Any, month: int, year: int, existing_numbers: Iterable[Any]) -> str:
        key: ScopeKey = (tenant_id, year, month)
        snapshot_high = highest_invoice_number(existing_numbers)
        with self._lock:
            nxt = max(self._issued.get(key, 0), snapshot_high) + 1
            self._issued[key] = nxt
        return str(nxt)

    def release(self, tenant_id: Any, month: int, year: int, number: str) -> None:
        """
        Give back the last number of a scope after a failed insert.

        Only the most recently issued number can be returned; anything else is
        left alone so numbers stay monotonic.
        """
        key: ScopeKey = (tenant_id, year, month)
        parsed = parse_invoice_number(number)
        with self._lock:
            if parsed is not None and self._issued.get(key) == parsed:
                self._issued[key] = parsed - 1

    def reset(self) -> None:
        with self._lock:
            self._issued.clear()
