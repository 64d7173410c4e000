"""Month-indexed forecasts built from instances and base expenses."""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from formatting import format_month_label
from models import (
    BaseExpense,
    ExpenseType,
    Installment,
    InstallmentStatus,
    MonthlyInstance,
    VariableExpense,
    VariableExpenseStatus,
    round_half_up,
)
from periods import add_months, month_key, month_start, months_between
from progress import variable_expense_stats
from recurrence import installment_window, local_today
from schemas import Budget


logger = logging.getLogger(__name__)

APPROX_DAYS_PER_MONTH = 30


@dataclass
class ForecastCell:
    amount: int
    sequence_number: Optional[int] = None
    payment_method_id: Optional[str] = None
    notes: Optional[str] = None
    projected: bool = False


@dataclass
class ParentExpenseRow:
    parent_expense_id: str
    display_name: str
    type: ExpenseType
    monthly_data: dict[str, ForecastCell] = field(default_factory=dict)

    @property
    def total_amount(self) -> int:
        return sum(cell.amount for cell in self.monthly_data.values())


@dataclass
class MonthlyTotals:
    installments: int = 0
    variable_expenses: int = 0
    budgets: int = 0

    @property
    def total(self) -> int:
        return self.installments + self.variable_expenses + self.budgets


@dataclass(frozen=True)
class MonthExtreme:
    month: str
    label: str
    amount: int


@dataclass
class ForecastSummary:
    total_expenses_count: int
    total_projected_amount: int
    highest_month: MonthExtreme
    lowest_month: MonthExtreme


@dataclass
class ForecastPeriod:
    start_date: date
    end_date: date
    total_months: int
    months: list[str]
    display_months: list[str]
    installment_rows: list[ParentExpenseRow]
    variable_expense_rows: list[ParentExpenseRow]
    budget_rows: list[ParentExpenseRow]
    monthly_totals: dict[str, MonthlyTotals]
    summary: ForecastSummary

    @property
    def rows(self) -> list[ParentExpenseRow]:
        return self.installment_rows + self.variable_expense_rows + self.budget_rows


@dataclass(frozen=True)
class YearlyProjection:
    total_amount: int
    months_included: int
    average_monthly: int


# ---------------------------------------------------------------------------
# projection rules


def project_variable_amount(
    estimated_amount: int, trend_percentage: float, months_from_now: int
) -> int:
    if months_from_now <= 0:
        return estimated_amount
    monthly_trend = Decimal(str(trend_percentage)) / Decimal(100) / Decimal(12)
    multiplier = (Decimal(1) + monthly_trend) ** months_from_now
    return round_half_up(Decimal(estimated_amount) * multiplier)


def installment_active_in_month(installment: Installment, month: str) -> bool:
    return month in installment_window(installment)


def installment_completes_in_month(installment: Installment, month: str) -> bool:
    elapsed_days = (month_start(month) - installment.start_date).days
    return elapsed_days // APPROX_DAYS_PER_MONTH >= installment.total_installments - 1


def _month_keys(start_date: date, months_ahead: int) -> list[str]:
    if months_ahead < 1:
        raise ValueError("months_ahead must be positive")
    first = month_key(start_date)
    return [add_months(first, offset) for offset in range(months_ahead)]


def _extreme(
    months: Sequence[str], labels: Sequence[str], totals: Sequence[int], highest: bool
) -> MonthExtreme:
    best = 0
    for idx in range(1, len(totals)):
        if (totals[idx] > totals[best]) if highest else (totals[idx] < totals[best]):
            best = idx
    return MonthExtreme(month=months[best], label=labels[best], amount=totals[best])


# ---------------------------------------------------------------------------
# instance based forecast


def _projected_cell(
    row_source, month: str, current_month: str, trends: Mapping[str, float]
) -> Optional[ForecastCell]:
    if month < current_month:
        return None
    if isinstance(row_source, Installment):
        if not row_source.is_active or row_source.status == InstallmentStatus.cancelled.value:
            return None
        window = installment_window(row_source)
        if month not in window:
            return None
        sequence = months_between(window.start_month, month) + 1
        return ForecastCell(
            amount=row_source.installment_amount,
            sequence_number=sequence,
            payment_method_id=row_source.payment_method_id,
            notes=f"Installment {sequence}",
            projected=True,
        )
    if isinstance(row_source, VariableExpense):
        if not row_source.is_active or row_source.is_paused:
            return None
        trend = trends.get(row_source.id, 0.0)
        return ForecastCell(
            amount=project_variable_amount(
                row_source.estimated_amount,
                trend,
                months_between(current_month, month),
            ),
            payment_method_id=row_source.payment_method_id,
            projected=True,
        )
    if isinstance(row_source, Budget):
        if row_source.is_special:
            return None
        return ForecastCell(amount=row_source.total, projected=True)
    raise TypeError(f"Unsupported forecast source: {type(row_source).__name__}")


def _build_row(
    row_source,
    parent_id: str,
    display_name: str,
    row_type: ExpenseType,
    months: Sequence[str],
    instances_by_month: Mapping[str, MonthlyInstance],
    current_month: str,
    trends: Mapping[str, float],
) -> ParentExpenseRow:
    row = ParentExpenseRow(parent_id, display_name, row_type)
    for month in months:
        instance = instances_by_month.get(month)
        if instance is not None:
            row.monthly_data[month] = ForecastCell(
                amount=instance.amount_budgeted,
                sequence_number=instance.sequence_number,
                payment_method_id=instance.payment_method_id,
                notes=(
                    f"Installment {instance.sequence_number}"
                    if instance.sequence_number
                    else instance.notes
                ),
            )
            continue
        cell = _projected_cell(row_source, month, current_month, trends)
        if cell is not None:
            row.monthly_data[month] = cell
    return row


def generate_forecast_period(
    base_expenses: Sequence[BaseExpense],
    budgets: Sequence[Budget],
    instances: Iterable[MonthlyInstance],
    start_date: date,
    months_ahead: int = 24,
    *,
    today: Optional[date] = None,
) -> ForecastPeriod:
    today = today or local_today()
    current_month = month_key(today)
    months = _month_keys(start_date, months_ahead)
    labels = [format_month_label(m) for m in months]

    instances = list(instances)
    by_parent: dict[str, dict[str, MonthlyInstance]] = {}
    for instance in instances:
        by_parent.setdefault(instance.parent_expense_id, {})[instance.month] = instance

    trends = {
        expense.id: variable_expense_stats(expense, instances, today).trend_percentage
        for expense in base_expenses
        if isinstance(expense, VariableExpense)
    }

    installment_rows: list[ParentExpenseRow] = []
    variable_rows: list[ParentExpenseRow] = []
    budget_rows: list[ParentExpenseRow] = []
    for expense in base_expenses:
        if isinstance(expense, Installment):
            target = installment_rows
            row_type = ExpenseType.installment
        elif isinstance(expense, VariableExpense):
            target = variable_rows
            row_type = ExpenseType.variable_expense
        else:
            raise TypeError(f"Unsupported expense type: {type(expense).__name__}")
        target.append(
            _build_row(
                expense,
                expense.id,
                expense.description,
                row_type,
                months,
                by_parent.get(expense.id, {}),
                current_month,
                trends,
            )
        )
    for budget in budgets:
        budget_rows.append(
            _build_row(
                budget,
                budget.id,
                budget.name,
                ExpenseType.budget,
                months,
                by_parent.get(budget.id, {}),
                current_month,
                trends,
            )
        )

    monthly_totals: dict[str, MonthlyTotals] = {}
    for month in months:
        monthly_totals[month] = MonthlyTotals(
            installments=sum(
                r.monthly_data[month].amount for r in installment_rows if month in r.monthly_data
            ),
            variable_expenses=sum(
                r.monthly_data[month].amount for r in variable_rows if month in r.monthly_data
            ),
            budgets=sum(
                r.monthly_data[month].amount for r in budget_rows if month in r.monthly_data
            ),
        )

    grand_totals = [monthly_totals[m].total for m in months]
    summary = ForecastSummary(
        total_expenses_count=len(base_expenses) + len(budgets),
        total_projected_amount=sum(grand_totals),
        highest_month=_extreme(months, labels, grand_totals, highest=True),
        lowest_month=_extreme(months, labels, grand_totals, highest=False),
    )
    logger.debug(
        f"forecast_period: start={months[0]} months={len(months)} "
        f"total={summary.total_projected_amount}"
    )
    return ForecastPeriod(
        start_date=start_date,
        end_date=month_start(months[-1]),
        total_months=months_ahead,
        months=months,
        display_months=labels,
        installment_rows=installment_rows,
        variable_expense_rows=variable_rows,
        budget_rows=budget_rows,
        monthly_totals=monthly_totals,
        summary=summary,
    )


def yearly_projections(period: ForecastPeriod) -> dict[str, YearlyProjection]:
    totals: dict[str, list[int]] = {}
    for month in period.months:
        totals.setdefault(month[:4], []).append(period.monthly_totals[month].total)
    return {
        year: YearlyProjection(
            total_amount=sum(values),
            months_included=len(values),
            average_monthly=round_half_up(Decimal(sum(values)) / Decimal(len(values))),
        )
        for year, values in totals.items()
    }


# ---------------------------------------------------------------------------
# single-shot projection straight from base expenses


@dataclass
class ForecastExpense:
    id: str
    description: str
    type: ExpenseType
    projected_amount: int
    is_active_in_month: bool
    status: str
    category: Optional[str] = None
    projection_notes: str = ""


@dataclass
class MonthlyForecast:
    month: str
    display_month: str
    expenses: list[ForecastExpense]
    budgets: list[Budget]
    totals: MonthlyTotals


def _project_installment(installment: Installment, month: str) -> ForecastExpense:
    active = installment_active_in_month(installment, month)
    notes = ""
    if not active:
        notes = "Finished"
    elif installment_completes_in_month(installment, month):
        notes = "Final installment"
    return ForecastExpense(
        id=installment.id,
        description=installment.description,
        type=ExpenseType.installment,
        projected_amount=installment.installment_amount if active else 0,
        is_active_in_month=active,
        status=installment.status if active else InstallmentStatus.completed.value,
        projection_notes=notes,
    )


def _project_variable(
    expense: VariableExpense, month: str, current_month: str, trend: float
) -> ForecastExpense:
    if expense.is_paused:
        return ForecastExpense(
            id=expense.id,
            description=expense.description,
            type=ExpenseType.variable_expense,
            category=expense.category,
            projected_amount=0,
            is_active_in_month=False,
            status=VariableExpenseStatus.paused.value,
            projection_notes="Paused",
        )
    months_from_now = months_between(current_month, month)
    notes = ""
    if months_from_now > 0 and trend:
        notes = f"{trend:+.1f}% annual trend applied"
    return ForecastExpense(
        id=expense.id,
        description=expense.description,
        type=ExpenseType.variable_expense,
        category=expense.category,
        projected_amount=project_variable_amount(
            expense.estimated_amount, trend, months_from_now
        ),
        is_active_in_month=True,
        status=expense.status,
        projection_notes=notes,
    )


def project_monthly_forecasts(
    base_expenses: Sequence[BaseExpense],
    budgets: Sequence[Budget],
    start_date: date,
    months_ahead: int = 24,
    *,
    trends: Optional[Mapping[str, float]] = None,
    today: Optional[date] = None,
) -> list[MonthlyForecast]:
    trends = trends or {}
    current_month = month_key(today or local_today())
    active = [e for e in base_expenses if e.is_active]
    regular_budgets = [b for b in budgets if not b.is_special]
    budgets_total = sum(b.total for b in regular_budgets)

    forecasts: list[MonthlyForecast] = []
    for month in _month_keys(start_date, months_ahead):
        projected: list[ForecastExpense] = []
        totals = MonthlyTotals(budgets=budgets_total)
        for expense in active:
            if isinstance(expense, Installment):
                item = _project_installment(expense, month)
                totals.installments += item.projected_amount
            elif isinstance(expense, VariableExpense):
                item = _project_variable(
                    expense, month, current_month, trends.get(expense.id, 0.0)
                )
                totals.variable_expenses += item.projected_amount
            else:
                raise TypeError(f"Unsupported expense type: {type(expense).__name__}")
            projected.append(item)
        forecasts.append(
            MonthlyForecast(
                month=month,
                display_month=format_month_label(month),
                expenses=projected,
                budgets=regular_budgets,
                totals=totals,
            )
        )
    return forecasts
