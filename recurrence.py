import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from models import (
    BaseExpense,
    ExpenseType,
    Installment,
    InstallmentStatus,
    MonthlyInstance,
    VariableExpense,
    instance_id_for,
)
from periods import MonthWindow, add_months, clamp_day, month_key, months_between
from schemas import Budget


logger = logging.getLogger(__name__)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def installment_window(installment: Installment) -> MonthWindow:
    first = month_key(installment.start_date)
    return MonthWindow(first, add_months(first, installment.total_installments - 1))


def _new_instance(
    parent: Union[BaseExpense, Budget],
    parent_type: ExpenseType,
    month: str,
    *,
    amount_budgeted: int,
    due_date: Optional[date] = None,
    sequence_number: Optional[int] = None,
    category: Optional[str] = None,
    payment_method_id: Optional[str] = None,
    amount_paid: Optional[int] = None,
) -> MonthlyInstance:
    now = datetime.utcnow()
    return MonthlyInstance(
        id=instance_id_for(parent.id, month),
        parent_expense_id=parent.id,
        parent_expense_type=parent_type,
        month=month,
        sequence_number=sequence_number,
        amount_budgeted=amount_budgeted,
        amount_paid=amount_paid,
        payment_date=None,
        due_date=due_date,
        notes=None,
        category=category,
        payment_method_id=payment_method_id,
        created_at=now,
        updated_at=now,
    )


def installment_instance(installment: Installment, month: str) -> Optional[MonthlyInstance]:
    window = installment_window(installment)
    if month not in window:
        return None
    return _new_instance(
        installment,
        ExpenseType.installment,
        month,
        amount_budgeted=installment.installment_amount,
        due_date=clamp_day(month, installment.start_date.day),
        sequence_number=months_between(window.start_month, month) + 1,
        payment_method_id=installment.payment_method_id,
    )


def variable_expense_instance(expense: VariableExpense, month: str) -> MonthlyInstance:
    due_date = clamp_day(month, expense.billing_day) if expense.billing_day else None
    return _new_instance(
        expense,
        ExpenseType.variable_expense,
        month,
        amount_budgeted=expense.estimated_amount,
        due_date=due_date,
        category=expense.category,
        payment_method_id=expense.payment_method_id,
    )


def generate_installment_instances(
    installment: Installment, start_month: str, end_month: str
) -> list[MonthlyInstance]:
    requested = MonthWindow(start_month, end_month)
    if requested.is_empty:
        return []
    if installment.total_installments is None or installment.total_installments < 1:
        raise ValueError(f"Installment {installment.id} has no installments")

    overlap = installment_window(installment).intersect(requested)
    if overlap is None:
        return []
    return [installment_instance(installment, month) for month in overlap]


def generate_variable_expense_instances(
    expense: VariableExpense, start_month: str, end_month: str
) -> list[MonthlyInstance]:
    requested = MonthWindow(start_month, end_month)
    if requested.is_empty or not expense.is_active or expense.is_paused:
        return []
    return [variable_expense_instance(expense, month) for month in requested]


def generate_budget_instances(
    budget: Budget,
    start_month: str,
    end_month: str,
    *,
    today: Optional[date] = None,
) -> list[MonthlyInstance]:
    requested = MonthWindow(start_month, end_month)
    if requested.is_empty:
        return []

    # The backend reports spending for the running month only.
    spent_month = month_key(today or local_today())
    instances: list[MonthlyInstance] = []
    for month in requested:
        spent = budget.spent if month == spent_month and budget.spent else None
        instances.append(
            _new_instance(
                budget,
                ExpenseType.budget,
                month,
                amount_budgeted=budget.total,
                amount_paid=spent,
            )
        )
    return instances


def generate_for_expense(
    expense: BaseExpense, start_month: str, end_month: str
) -> list[MonthlyInstance]:
    if isinstance(expense, Installment):
        return generate_installment_instances(expense, start_month, end_month)
    if isinstance(expense, VariableExpense):
        return generate_variable_expense_instances(expense, start_month, end_month)
    raise TypeError(f"Unsupported expense type: {type(expense).__name__}")


def is_final_installment(instance: MonthlyInstance, installment: Installment) -> bool:
    return (
        instance.parent_expense_id == installment.id
        and instance.sequence_number == installment.total_installments
    )


def should_generate(expense: BaseExpense) -> bool:
    if not expense.is_active:
        return False
    if isinstance(expense, Installment):
        return expense.status != InstallmentStatus.cancelled.value
    return True


@dataclass
class GenerationFailure:
    parent_expense_id: str
    error: str


@dataclass
class GenerationResult:
    instances: list[MonthlyInstance] = field(default_factory=list)
    failures: list[GenerationFailure] = field(default_factory=list)


class InstanceEngine:
    """Runs the generators over a collection of base expenses and budgets."""

    def generate(
        self,
        expenses: Iterable[BaseExpense],
        start_month: str,
        end_month: str,
    ) -> GenerationResult:
        result = GenerationResult()
        for expense in expenses:
            if not should_generate(expense):
                continue
            try:
                generated = generate_for_expense(expense, start_month, end_month)
            except Exception as exc:
                logger.exception(
                    f"instance_generation_failed: expense_id={expense.id} "
                    f"window={start_month}..{end_month}"
                )
                result.failures.append(GenerationFailure(expense.id, str(exc)))
                continue
            result.instances.extend(generated)
        logger.info(
            f"instance_generation: window={start_month}..{end_month} "
            f"generated={len(result.instances)} failures={len(result.failures)}"
        )
        return result

    def generate_budgets(
        self,
        budgets: Iterable[Budget],
        start_month: str,
        end_month: str,
        *,
        today: Optional[date] = None,
    ) -> GenerationResult:
        result = GenerationResult()
        for budget in budgets:
            try:
                generated = generate_budget_instances(
                    budget, start_month, end_month, today=today
                )
            except Exception as exc:
                logger.exception(f"budget_generation_failed: budget_id={budget.id}")
                result.failures.append(GenerationFailure(budget.id, str(exc)))
                continue
            result.instances.extend(generated)
        return result
