"""
backoffice/models.py

Contracting Back Office – Domain Models

Tenants own everything: jobs, laborers, timesheets, supplies, expenses, credits
and invoices. Every query in the blueprints filters by tenant_id first.

Engine boundary:
- Rows never reach backoffice.billing directly. Each model that feeds the
  engine exposes to_record(), which builds the validated value object the
  engine consumes.

Invoices:
- (tenant, year, month, invoice_number) is UNIQUE.
- synthesized_for holds the customer name only for invoices built by monthly
  synthesis; (tenant, synthesized_for, month, year) is UNIQUE so a second
  synthesis for the same customer and period cannot be stored even if two
  requests race. Manual invoices leave it NULL.

IMPORTANT:
- Amount columns hold values already rounded to cents; the engine's full
  precision values are rounded only when they are persisted or rendered.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .billing import (
    CreditRecord,
    ExpenseRecord,
    InvoiceRef,
    RatedTimeRecord,
    SupplyRecord,
)
from .billing.money import money
from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _utcnow() -> datetime:
    """Naive UTC timestamp (what the DateTime columns store)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    READ_ONLY = "READ_ONLY"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


# ---------------------------------------------------------------------
# Tenants & users
# ---------------------------------------------------------------------
class Tenant(db.Model):
    """A contracting company. Its name is the seller name on tax invoices."""

    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, unique=True)
    vat_number = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    users = db.relationship("User", back_populates="tenant", lazy=True)

    def __repr__(self):
        return f"<Tenant {self.name}>"


class User(UserMixin, db.Model):
    """System login user, bound to one tenant."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), default=Role.USER.value, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    tenant = db.relationship("Tenant", back_populates="users")

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def is_read_only(self) -> bool:
        return self.role == Role.READ_ONLY.value

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"


# ---------------------------------------------------------------------
# Labor
# ---------------------------------------------------------------------
class Job(db.Model):
    __tablename__ = "jobs"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (db.UniqueConstraint("tenant_id", "name", name="uq_job_tenant_name"),)


class Laborer(db.Model):
    """
    A worker assigned to one job.

    salary_rate: hourly pay (cost side)
    org_rate: hourly charge to the client (revenue side)
    """

    __tablename__ = "laborers"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    id_number = db.Column(db.String(50), nullable=True, index=True)

    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id", ondelete="RESTRICT"), nullable=False, index=True)

    salary_rate = db.Column(db.Numeric(12, 2), nullable=False)
    org_rate = db.Column(db.Numeric(12, 2), nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    job = db.relationship("Job", backref=db.backref("laborers", lazy=True))

    def __repr__(self):
        return f"<Laborer {self.name}>"


class Timesheet(db.Model):
    __tablename__ = "timesheets"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    laborer_id = db.Column(db.Integer, db.ForeignKey("laborers.id", ondelete="CASCADE"), nullable=False, index=True)
    # Job the hours were worked on; a later reassignment of the laborer does not move them.
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id", ondelete="RESTRICT"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False, index=True)

    hours_worked = db.Column(db.Numeric(6, 2), nullable=False)
    overtime = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    # NULL unless overtime > 0
    overtime_multiplier = db.Column(db.Numeric(4, 2), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)

    laborer = db.relationship("Laborer", backref=db.backref("timesheets", lazy=True))
    job = db.relationship("Job")

    def to_record(self) -> RatedTimeRecord:
        laborer = self.laborer
        return RatedTimeRecord.build(
            laborer_id=laborer.id,
            job_id=self.job_id,
            date=self.date,
            regular_hours=self.hours_worked,
            overtime_hours=self.overtime,
            overtime_multiplier=self.overtime_multiplier,
            salary_rate=laborer.salary_rate,
            org_rate=laborer.org_rate,
            laborer_name=laborer.name,
            job_name=self.job.name if self.job else None,
        )


# ---------------------------------------------------------------------
# Supplies / expenses / credits
# ---------------------------------------------------------------------
class SupplyCategory(db.Model):
    __tablename__ = "supply_categories"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    __table_args__ = (db.UniqueConstraint("tenant_id", "name", name="uq_supply_category_tenant_name"),)


class Supply(db.Model):
    __tablename__ = "supplies"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("supply_categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    name = db.Column(db.String(255), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=_utcnow)

    category = db.relationship("SupplyCategory", backref=db.backref("supplies", lazy=True))

    def to_record(self) -> SupplyRecord:
        return SupplyRecord(
            category_id=self.category_id,
            name=self.name,
            date=self.date,
            unit_price=self.price,
            quantity=self.quantity,
            category_name=self.category.name if self.category else None,
        )


class ExpenseCategory(db.Model):
    __tablename__ = "expense_categories"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    __table_args__ = (db.UniqueConstraint("tenant_id", "name", name="uq_expense_category_tenant_name"),)


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("expense_categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    receipt = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow)

    category = db.relationship("ExpenseCategory", backref=db.backref("expenses", lazy=True))

    def to_record(self) -> ExpenseRecord:
        return ExpenseRecord(
            category_id=self.category_id,
            date=self.date,
            amount=self.amount,
            category_name=self.category.name if self.category else None,
        )


class Credit(db.Model):
    """Money movement on the tenant's account (deposit, withdrawal, advance)."""

    __tablename__ = "credits"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    type = db.Column(db.String(20), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="CONFIRMED", index=True)

    description = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow)

    def to_record(self) -> CreditRecord:
        return CreditRecord(
            id=self.id,
            date=self.date,
            amount=self.amount,
            type=self.type,
            status=self.status,
            description=self.description,
            reference=self.reference,
        )


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    invoice_number = db.Column(db.String(20), nullable=False)
    invoice_month = db.Column(db.Integer, nullable=False, index=True)
    invoice_year = db.Column(db.Integer, nullable=False, index=True)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    issued_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    customer_name = db.Column(db.String(255), nullable=False, index=True)
    customer_vat = db.Column(db.String(50), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)
    customer_city = db.Column(db.String(120), nullable=True)
    synthesized_for = db.Column(db.String(255), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    qr_payload = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=InvoiceStatus.DRAFT.value, index=True)
    paid_date = db.Column(db.Date, nullable=True)
    payment_method = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.line_no",
        lazy=True,
    )

    __table_args__ = (
        db.UniqueConstraint(
            "tenant_id", "invoice_year", "invoice_month", "invoice_number", name="uq_invoice_scope_number"
        ),
        db.UniqueConstraint(
            "tenant_id", "synthesized_for", "invoice_month", "invoice_year", name="uq_invoice_monthly_customer"
        ),
    )

    @classmethod
    def from_engine(cls, tenant_id: int, invoice, *, synthesized: bool) -> "Invoice":
        """Persistable row (with items) from a computed billing.Invoice."""
        subtotal, vat_amount, total_amount = invoice.cents()
        row = cls(
            tenant_id=tenant_id,
            invoice_number=invoice.invoice_number,
            invoice_month=invoice.invoice_month,
            invoice_year=invoice.invoice_year,
            issue_date=invoice.issue_date or invoice.issued_at.date(),
            due_date=invoice.due_date,
            issued_at=invoice.issued_at.astimezone(timezone.utc).replace(tzinfo=None)
            if invoice.issued_at.tzinfo
            else invoice.issued_at,
            customer_name=invoice.customer.name,
            customer_vat=invoice.customer.vat_number,
            customer_address=invoice.customer.address,
            customer_city=invoice.customer.city,
            synthesized_for=invoice.customer.name if synthesized else None,
            subtotal=subtotal,
            vat_amount=vat_amount,
            total_amount=total_amount,
            qr_payload=invoice.qr_payload,
        )
        for line_no, item in enumerate(invoice.items, start=1):
            line_total, line_vat, line_gross = item.cents()
            row.items.append(
                InvoiceItem(
                    line_no=line_no,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price.quantize(Decimal("0.0001")),
                    vat_rate=item.vat_rate,
                    line_total=line_total,
                    vat_amount=line_vat,
                    total_amount=line_gross,
                )
            )
        return row

    def to_ref(self) -> InvoiceRef:
        return InvoiceRef(
            id=self.id,
            tenant_id=self.tenant_id,
            customer_name=self.customer_name,
            invoice_month=self.invoice_month,
            invoice_year=self.invoice_year,
            invoice_number=self.invoice_number,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "invoiceMonth": self.invoice_month,
            "invoiceYear": self.invoice_year,
            "issueDate": self.issue_date.isoformat() if self.issue_date else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "customerName": self.customer_name,
            "customerVat": self.customer_vat,
            "customerAddress": self.customer_address,
            "customerCity": self.customer_city,
            "subtotal": float(_to_decimal(self.subtotal)),
            "vatAmount": float(_to_decimal(self.vat_amount)),
            "totalAmount": float(_to_decimal(self.total_amount)),
            "qrPayload": self.qr_payload,
            "status": self.status,
            "paidDate": self.paid_date.isoformat() if self.paid_date else None,
            "paymentMethod": self.payment_method,
            "items": [item.to_dict() for item in self.items],
        }

    def __repr__(self):
        return f"<Invoice {self.invoice_year}-{self.invoice_month:02d} #{self.invoice_number}>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    line_no = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=False)

    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    # Derived lines carry a blended/averaged price, so keep extra scale
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    vat_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("15"))

    line_total = db.Column(db.Numeric(12, 2), nullable=False)
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": float(_to_decimal(self.quantity)),
            "unitPrice": float(money(_to_decimal(self.unit_price))),
            "vatRate": float(_to_decimal(self.vat_rate)),
            "lineTotal": float(_to_decimal(self.line_total)),
            "vatAmount": float(_to_decimal(self.vat_amount)),
            "totalAmount": float(_to_decimal(self.total_amount)),
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who did what to which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)
    tenant_id = db.Column(db.Integer, nullable=True, index=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
