from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from database import Base


class ExpenseType(str, Enum):
    installment = "installment"
    variable_expense = "variable_expense"
    budget = "budget"


class InstallmentStatus(str, Enum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class VariableExpenseStatus(str, Enum):
    active = "active"
    paused = "paused"


class PaymentStatus(str, Enum):
    pending = "pending"
    paid_accurate = "paid_accurate"
    paid_moderate = "paid_moderate"
    paid_high = "paid_high"
    overdue = "overdue"

    @property
    def is_paid(self) -> bool:
        return self in PAID_STATUSES


PAID_STATUSES = frozenset(
    {PaymentStatus.paid_accurate, PaymentStatus.paid_moderate, PaymentStatus.paid_high}
)

VARIABLE_EXPENSE_CATEGORIES = (
    "Servicios Básicos",
    "Comunicaciones",
    "Seguros",
    "Impuestos",
    "Suscripciones",
    "Transporte",
    "Educación",
    "Salud",
    "Entretenimiento",
    "Fitness",
    "Vivienda",
    "Otros",
)


def round_half_up(value) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def instance_id_for(parent_expense_id: str, month: str) -> str:
    return f"{parent_expense_id}_{month}"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class BaseExpense(Base, TimestampMixin):
    __tablename__ = "base_expenses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[ExpenseType] = mapped_column(SAEnum(ExpenseType), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    payment_method_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    __mapper_args__ = {"polymorphic_on": "type"}
    __table_args__ = (Index("ix_base_expenses_type_active", "type", "is_active"),)

    _status_enum = None

    @validates("status")
    def _validate_status(self, _key: str, value: str) -> str:
        if self._status_enum is None:
            return value
        return self._status_enum(value).value


class Installment(BaseExpense):
    total_amount: Mapped[Optional[int]] = mapped_column(Integer)
    total_installments: Mapped[Optional[int]] = mapped_column(Integer)
    start_date: Mapped[Optional[date]] = mapped_column(Date)

    __mapper_args__ = {"polymorphic_identity": ExpenseType.installment}

    _status_enum = InstallmentStatus

    @property
    def installment_amount(self) -> int:
        return round_half_up(Decimal(self.total_amount) / Decimal(self.total_installments))


class VariableExpense(BaseExpense):
    estimated_amount: Mapped[Optional[int]] = mapped_column(Integer)
    billing_day: Mapped[Optional[int]] = mapped_column(Integer)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    service_url: Mapped[Optional[str]] = mapped_column(String(500))

    __mapper_args__ = {"polymorphic_identity": ExpenseType.variable_expense}

    _status_enum = VariableExpenseStatus

    @property
    def is_paused(self) -> bool:
        return self.status == VariableExpenseStatus.paused.value


class MonthlyInstance(Base, TimestampMixin):
    __tablename__ = "monthly_instances"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    parent_expense_id: Mapped[str] = mapped_column(String(64), nullable=False)
    parent_expense_type: Mapped[ExpenseType] = mapped_column(
        SAEnum(ExpenseType), nullable=False
    )
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    sequence_number: Mapped[Optional[int]] = mapped_column(Integer)
    amount_budgeted: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paid: Mapped[Optional[int]] = mapped_column(Integer)
    payment_date: Mapped[Optional[date]] = mapped_column(Date)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    payment_method_id: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        UniqueConstraint("parent_expense_id", "month", name="uq_instance_parent_month"),
        Index("ix_monthly_instances_month", "month"),
        Index("ix_monthly_instances_parent", "parent_expense_id"),
        CheckConstraint("amount_budgeted >= 0", name="instance_budgeted_positive"),
        CheckConstraint(
            "amount_paid IS NULL OR amount_paid >= 0", name="instance_paid_positive"
        ),
    )

    @property
    def year(self) -> int:
        return int(self.month[:4])

    @property
    def month_number(self) -> int:
        return int(self.month[5:7])

    @property
    def is_paid(self) -> bool:
        return self.amount_paid is not None
