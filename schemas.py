from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models import (
    ExpenseType,
    InstallmentStatus,
    PaymentStatus,
    VariableExpenseStatus,
)


MonthKey = Annotated[str, Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")]


class InstallmentIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    total_amount: int = Field(..., gt=0)
    total_installments: int = Field(..., gt=0)
    start_date: date
    payment_method_id: str = Field(..., min_length=1, max_length=64)


class VariableExpenseIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    estimated_amount: int = Field(..., gt=0)
    billing_day: Optional[int] = Field(default=None, ge=1, le=31)
    category: str = Field(..., min_length=1, max_length=100)
    payment_method_id: str = Field(..., min_length=1, max_length=64)
    service_url: Optional[str] = Field(default=None, max_length=500)


class BaseExpenseUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    payment_method_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    is_active: Optional[bool] = None
    # variable expenses only
    estimated_amount: Optional[int] = Field(default=None, gt=0)
    billing_day: Optional[int] = Field(default=None, ge=1, le=31)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    service_url: Optional[str] = Field(default=None, max_length=500)


class PaymentIn(BaseModel):
    amount: int = Field(..., ge=0)
    payment_date: Optional[date] = None


class NotesIn(BaseModel):
    notes: str = Field(..., max_length=1000)


class Budget(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    total: int = Field(..., ge=0)
    spent: int = Field(default=0, ge=0)
    is_special: bool = Field(default=False, alias="isSpecial")


class PaymentMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: Optional[str] = Field(default=None, max_length=40)


class GenerateWindowIn(BaseModel):
    start_month: MonthKey
    end_month: MonthKey


# Shapes of the pre-instance store, one object per expense with embedded history.


class LegacyPaymentRecord(BaseModel):
    month: MonthKey
    amount_budgeted: int = Field(..., ge=0)
    amount_paid: Optional[int] = Field(default=None, ge=0)
    payment_date: Optional[date] = None
    variation_percentage: Optional[float] = None
    notes: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.pending


class _LegacyExpenseBase(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    description: str = Field(..., min_length=1, max_length=200)
    payment_method_id: str = Field(..., min_length=1, max_length=64)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_active: bool = True
    payment_history: list[LegacyPaymentRecord] = Field(default_factory=list)


class LegacyInstallmentRecord(_LegacyExpenseBase):
    type: Literal["installment"]
    total_amount: int = Field(..., gt=0)
    total_installments: int = Field(..., gt=0)
    installment_amount: Optional[int] = Field(default=None, ge=0)
    start_date: date
    paid_installments: int = Field(default=0, ge=0)
    status: InstallmentStatus = InstallmentStatus.active


class LegacyVariableExpenseRecord(_LegacyExpenseBase):
    type: Literal["variable_expense"]
    estimated_amount: int = Field(..., gt=0)
    billing_day: Optional[int] = Field(default=None, ge=1, le=31)
    category: str = Field(default="Otros", min_length=1, max_length=100)
    service_url: Optional[str] = None
    status: VariableExpenseStatus = VariableExpenseStatus.active


LegacyRecord = Annotated[
    Union[LegacyInstallmentRecord, LegacyVariableExpenseRecord],
    Field(discriminator="type"),
]


class BaseExpenseSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: ExpenseType
    description: str
    payment_method_id: str
    is_active: bool
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_amount: Optional[int] = None
    total_installments: Optional[int] = None
    start_date: Optional[date] = None
    estimated_amount: Optional[int] = None
    billing_day: Optional[int] = None
    category: Optional[str] = None
    service_url: Optional[str] = None


class InstanceSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_expense_id: str
    parent_expense_type: ExpenseType
    month: MonthKey
    sequence_number: Optional[int] = None
    amount_budgeted: int
    amount_paid: Optional[int] = None
    payment_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    category: Optional[str] = None
    payment_method_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PersistedState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    version: int
    base_expenses: list[BaseExpenseSnapshot] = Field(
        default_factory=list, alias="baseExpenses"
    )
    monthly_instances: list[InstanceSnapshot] = Field(
        default_factory=list, alias="monthlyInstances"
    )
