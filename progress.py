"""Read-time derived fields for base expenses.

Nothing here is persisted; every value is recomputed from the canonical
expense fields and its instances.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from models import (
    Installment,
    InstallmentStatus,
    MonthlyInstance,
    VariableExpense,
    round_half_up,
)
from periods import add_months, clamp_day, month_key
from recurrence import installment_window, local_today


@dataclass(frozen=True)
class InstallmentProgress:
    paid_installments: int
    remaining_installments: int
    progress_percentage: int
    next_due_date: Optional[date]
    completion_date: date
    status: InstallmentStatus


@dataclass(frozen=True)
class VariableExpenseStats:
    last_month_amount: int
    amount_variation: int
    trend_percentage: float
    accuracy_rate: float
    next_billing_date: Optional[date]


def _paid_for(
    instances: Iterable[MonthlyInstance], parent_expense_id: str
) -> list[MonthlyInstance]:
    paid = [
        i
        for i in instances
        if i.parent_expense_id == parent_expense_id and i.amount_paid is not None
    ]
    return sorted(paid, key=lambda i: i.month, reverse=True)


def derived_installment_status(
    installment: Installment, paid_installments: int
) -> InstallmentStatus:
    if installment.status == InstallmentStatus.cancelled.value:
        return InstallmentStatus.cancelled
    if paid_installments >= installment.total_installments:
        return InstallmentStatus.completed
    return InstallmentStatus.active


def installment_progress(
    installment: Installment, instances: Iterable[MonthlyInstance]
) -> InstallmentProgress:
    paid = min(len(_paid_for(instances, installment.id)), installment.total_installments)
    total = installment.total_installments
    window = installment_window(installment)
    day = installment.start_date.day
    status = derived_installment_status(installment, paid)

    next_due: Optional[date] = None
    if status == InstallmentStatus.active:
        next_due = clamp_day(add_months(window.start_month, paid), day)

    return InstallmentProgress(
        paid_installments=paid,
        remaining_installments=total - paid,
        progress_percentage=round_half_up(paid / total * 100),
        next_due_date=next_due,
        completion_date=clamp_day(window.end_month, day),
        status=status,
    )


def completion_percentage(
    instances: Iterable[MonthlyInstance], parent_expense_id: str
) -> int:
    """Share of materialized instances of an expense that have been paid."""
    own = [i for i in instances if i.parent_expense_id == parent_expense_id]
    if not own:
        return 0
    paid = sum(1 for i in own if i.amount_paid is not None)
    return round_half_up(paid / len(own) * 100)


def trend_percentage(paid_amounts: list[int]) -> float:
    """Growth from the oldest to the newest of up to three recent payments.

    ``paid_amounts`` is ordered newest first.
    """
    recent = paid_amounts[:3]
    if len(recent) < 2 or recent[-1] <= 0:
        return 0.0
    return round((recent[0] - recent[-1]) / recent[-1] * 100, 2)


def next_billing_date(billing_day: int, today: date) -> date:
    current = month_key(today)
    candidate = clamp_day(current, billing_day)
    if candidate < today:
        candidate = clamp_day(add_months(current, 1), billing_day)
    return candidate


def variable_expense_stats(
    expense: VariableExpense,
    instances: Iterable[MonthlyInstance],
    today: Optional[date] = None,
) -> VariableExpenseStats:
    today = today or local_today()
    paid = _paid_for(instances, expense.id)
    amounts = [i.amount_paid for i in paid]

    last_amount = amounts[0] if amounts else 0
    variation = amounts[0] - amounts[1] if len(amounts) > 1 else 0

    accuracy = 100.0
    scored = [i for i in paid if i.amount_budgeted > 0]
    if scored:
        total = 0.0
        for instance in scored:
            deviation = abs(instance.amount_paid - instance.amount_budgeted) / instance.amount_budgeted
            total += max(0.0, 100 - deviation * 100)
        accuracy = round(total / len(scored), 2)

    return VariableExpenseStats(
        last_month_amount=last_amount,
        amount_variation=variation,
        trend_percentage=trend_percentage(amounts),
        accuracy_rate=accuracy,
        next_billing_date=(
            next_billing_date(expense.billing_day, today) if expense.billing_day else None
        ),
    )
