"""
backoffice/billing/records.py

Engine input records (Rate Model).

These are plain value objects built fresh per request from persisted rows that
the caller already filtered to one tenant and a date window. Construction
validates every invariant, so a record that exists is a record the engine can
trust.

Overtime multiplier:
- Persisted as a nullable number (NULL unless overtime > 0).
- Modelled here as an explicit sum type: NoOvertime | Multiplier(x).
  A record with overtime hours and NoOvertime (or the reverse) cannot be built.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Union

from .errors import ValidationError
from .money import ZERO, to_decimal

MIN_MULTIPLIER = Decimal("1")
MAX_MULTIPLIER = Decimal("5")

# Default applied when overtime hours are entered without an explicit multiplier.
DEFAULT_OVERTIME_MULTIPLIER = Decimal("1.5")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def to_date(value: Any, *, field: str = "date") -> date:
    """Accept date, datetime or ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a date, got {value!r}")


def _non_negative(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field=field)
    if result < ZERO:
        raise ValidationError(f"{field} must be >= 0")
    return result


def _positive(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field=field)
    if result <= ZERO:
        raise ValidationError(f"{field} must be > 0")
    return result


# ---------------------------------------------------------------------
# Overtime sum type
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NoOvertime:
    """The record carries no overtime hours."""

    def as_number(self) -> Optional[Decimal]:
        return None


@dataclass(frozen=True)
class Multiplier:
    value: Decimal

    def __post_init__(self):
        value = to_decimal(self.value, field="overtime_multiplier")
        if not (MIN_MULTIPLIER <= value <= MAX_MULTIPLIER):
            raise ValidationError("overtime_multiplier must be between 1 and 5")
        object.__setattr__(self, "value", value)

    def as_number(self) -> Optional[Decimal]:
        return self.value


Overtime = Union[NoOvertime, Multiplier]

NO_OVERTIME = NoOvertime()


def overtime_from_column(overtime_hours: Decimal, multiplier: Any) -> Overtime:
    """
    Map the persisted nullable multiplier column onto the sum type.

    - No overtime hours: NoOvertime (any stored multiplier is ignored).
    - Overtime hours without a stored multiplier: the 1.5 default.
    """
    if overtime_hours == ZERO:
        return NO_OVERTIME
    if multiplier is None:
        return Multiplier(DEFAULT_OVERTIME_MULTIPLIER)
    return Multiplier(multiplier)


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RatedTimeRecord:
    """One timesheet row joined with its laborer's pay (cost) and billing (revenue) rates."""

    laborer_id: Any
    job_id: Any
    date: date
    regular_hours: Decimal
    overtime_hours: Decimal
    overtime: Overtime
    salary_rate: Decimal
    org_rate: Decimal
    laborer_name: Optional[str] = None
    job_name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "regular_hours", _non_negative(self.regular_hours, "regular_hours"))
        object.__setattr__(self, "overtime_hours", _non_negative(self.overtime_hours, "overtime_hours"))
        object.__setattr__(self, "salary_rate", _positive(self.salary_rate, "salary_rate"))
        object.__setattr__(self, "org_rate", _positive(self.org_rate, "org_rate"))

        if not isinstance(self.overtime, (NoOvertime, Multiplier)):
            raise ValidationError("overtime must be NoOvertime or Multiplier")
        has_hours = self.overtime_hours > ZERO
        if has_hours != isinstance(self.overtime, Multiplier):
            raise ValidationError(
                "overtime multiplier must be present exactly when overtime hours are > 0"
            )

    @classmethod
    def build(
        cls,
        *,
        laborer_id: Any,
        job_id: Any,
        date: Any,
        regular_hours: Any,
        overtime_hours: Any = 0,
        overtime_multiplier: Any = None,
        salary_rate: Any,
        org_rate: Any,
        laborer_name: Optional[str] = None,
        job_name: Optional[str] = None,
    ) -> "RatedTimeRecord":
        """Build from column-shaped values (nullable multiplier)."""
        ot_hours = _non_negative(overtime_hours if overtime_hours is not None else 0, "overtime_hours")
        return cls(
            laborer_id=laborer_id,
            job_id=job_id,
            date=date,
            regular_hours=regular_hours,
            overtime_hours=ot_hours,
            overtime=overtime_from_column(ot_hours, overtime_multiplier),
            salary_rate=salary_rate,
            org_rate=org_rate,
            laborer_name=laborer_name,
            job_name=job_name,
        )

    @property
    def total_hours(self) -> Decimal:
        return self.regular_hours + self.overtime_hours

    @property
    def multiplier(self) -> Optional[Decimal]:
        return self.overtime.as_number()

    def regular_amount(self, rate: Decimal) -> Decimal:
        return self.regular_hours * rate

    def overtime_amount(self, rate: Decimal) -> Decimal:
        """Overtime at the record's own multiplier (payroll/client reporting)."""
        if isinstance(self.overtime, NoOvertime):
            return ZERO
        return self.overtime_hours * rate * self.overtime.value


@dataclass(frozen=True)
class SupplyRecord:
    category_id: Any
    name: str
    date: date
    unit_price: Decimal
    quantity: Decimal = Decimal("1")
    category_name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "unit_price", _positive(self.unit_price, "unit_price"))
        quantity = to_decimal(self.quantity, field="quantity")
        if quantity < Decimal("1"):
            raise ValidationError("quantity must be >= 1")
        object.__setattr__(self, "quantity", quantity)

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ExpenseRecord:
    category_id: Any
    date: date
    amount: Decimal
    category_name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "amount", _positive(self.amount, "amount"))


class CreditType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    ADVANCE = "ADVANCE"


class CreditStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class CreditRecord:
    date: date
    amount: Decimal
    type: CreditType
    status: CreditStatus = CreditStatus.CONFIRMED
    description: Optional[str] = None
    reference: Optional[str] = None
    id: Any = None

    def __post_init__(self):
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "amount", _positive(self.amount, "amount"))
        try:
            object.__setattr__(self, "type", CreditType(self.type))
            object.__setattr__(self, "status", CreditStatus(self.status))
        except ValueError as exc:
            raise ValidationError(str(exc)) from None

    @property
    def signed_amount(self) -> Decimal:
        """Effect on the balance: withdrawals reduce it, deposits and advances raise it."""
        if self.type is CreditType.WITHDRAWAL:
            return -self.amount
        return self.amount
