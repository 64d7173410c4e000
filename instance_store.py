from datetime import datetime
from typing import Iterable, Sequence

from models import ExpenseType, MonthlyInstance
from schemas import Budget


def merge_instances(
    existing: Sequence[MonthlyInstance], generated: Iterable[MonthlyInstance]
) -> list[MonthlyInstance]:
    """Append generated instances whose id is not known yet.

    Existing instances are returned untouched and in their original order, so
    payment data recorded on them survives any number of regenerations.
    """
    merged = list(existing)
    seen = {instance.id for instance in merged}
    for instance in generated:
        if instance.id in seen:
            continue
        seen.add(instance.id)
        merged.append(instance)
    return merged


def new_instances(
    existing: Sequence[MonthlyInstance], generated: Iterable[MonthlyInstance]
) -> list[MonthlyInstance]:
    return merge_instances(existing, generated)[len(existing) :]


def refresh_budget_amounts(
    instances: Iterable[MonthlyInstance], budgets: Iterable[Budget]
) -> int:
    """Align budget instances with the budgets' current totals.

    Only ``amount_budgeted`` moves; recorded spending stays as it is.
    Returns the number of instances changed.
    """
    totals = {budget.id: budget.total for budget in budgets}
    changed = 0
    for instance in instances:
        if instance.parent_expense_type != ExpenseType.budget:
            continue
        total = totals.get(instance.parent_expense_id)
        if total is None or instance.amount_budgeted == total:
            continue
        instance.amount_budgeted = total
        instance.updated_at = datetime.utcnow()
        changed += 1
    return changed


def total_paid(instances: Iterable[MonthlyInstance], parent_expense_id: str) -> int:
    return sum(
        i.amount_paid or 0
        for i in instances
        if i.parent_expense_id == parent_expense_id
    )
