from datetime import date

import pytest

from forecast import (
    generate_forecast_period,
    installment_active_in_month,
    installment_completes_in_month,
    project_monthly_forecasts,
    project_variable_amount,
    yearly_projections,
)
from models import ExpenseType, Installment, VariableExpense
from payments import mark_paid
from recurrence import generate_installment_instances, generate_variable_expense_instances
from schemas import Budget


def _installment(**overrides) -> Installment:
    values = dict(
        id="inst-1",
        description="Fridge",
        payment_method_id="visa",
        is_active=True,
        status="active",
        total_amount=20000,
        total_installments=2,
        start_date=date(2024, 2, 15),
    )
    values.update(overrides)
    return Installment(**values)


def _variable(**overrides) -> VariableExpense:
    values = dict(
        id="var-1",
        description="Electricity",
        payment_method_id="debito",
        is_active=True,
        status="active",
        estimated_amount=15000,
        billing_day=10,
        category="Servicios Básicos",
    )
    values.update(overrides)
    return VariableExpense(**values)


BUDGETS = [
    Budget(id="b1", name="Groceries", total=50000, spent=10000),
    Budget(id="b2", name="Holidays", total=99999, isSpecial=True),
]


def test_project_variable_amount_compounds_monthly():
    assert project_variable_amount(15000, 12, 6) == 15923
    assert project_variable_amount(15000, 12, 0) == 15000
    assert project_variable_amount(15000, 0, 12) == 15000


def test_installment_completion_detection():
    installment = _installment(
        total_amount=120000, total_installments=12, start_date=date(2024, 1, 1)
    )
    assert installment_completes_in_month(installment, "2024-12")
    assert not installment_completes_in_month(installment, "2024-11")
    assert installment_active_in_month(installment, "2024-12")
    assert not installment_active_in_month(installment, "2025-01")


def test_forecast_period_mixes_instances_and_projections():
    installment = _installment()
    february = generate_installment_instances(installment, "2024-02", "2024-02")

    period = generate_forecast_period(
        [installment, _variable()],
        BUDGETS,
        february,
        date(2024, 1, 1),
        3,
        today=date(2024, 1, 10),
    )

    assert period.months == ["2024-01", "2024-02", "2024-03"]
    assert period.display_months[0] == "January 2024"
    assert period.end_date == date(2024, 3, 1)

    inst_row = period.installment_rows[0]
    assert inst_row.type == ExpenseType.installment
    assert "2024-01" not in inst_row.monthly_data
    assert inst_row.monthly_data["2024-02"].projected is False
    assert inst_row.monthly_data["2024-02"].sequence_number == 1
    assert inst_row.monthly_data["2024-03"].projected is True
    assert inst_row.monthly_data["2024-03"].sequence_number == 2
    assert inst_row.total_amount == 20000

    var_row = period.variable_expense_rows[0]
    assert [c.amount for c in var_row.monthly_data.values()] == [15000] * 3

    special_row = [r for r in period.budget_rows if r.parent_expense_id == "b2"][0]
    assert special_row.monthly_data == {}

    totals = period.monthly_totals
    assert totals["2024-01"].total == 65000
    assert totals["2024-02"].installments == 10000
    assert totals["2024-02"].total == 75000
    assert totals["2024-03"].total == 75000

    summary = period.summary
    assert summary.total_expenses_count == 4
    assert summary.total_projected_amount == 215000
    assert summary.highest_month.month == "2024-02"
    assert summary.lowest_month.month == "2024-01"
    assert summary.lowest_month.label == "January 2024"


def test_forecast_period_applies_payment_trend():
    expense = _variable()
    history = generate_variable_expense_instances(expense, "2023-10", "2023-12")
    for instance, paid in zip(history, [10000, 11000, 12000]):
        mark_paid(instance, paid, instance.due_date)

    period = generate_forecast_period(
        [expense], [], history, date(2024, 1, 1), 2, today=date(2024, 1, 10)
    )
    cells = period.variable_expense_rows[0].monthly_data
    assert cells["2024-01"].amount == 15000
    assert cells["2024-02"].amount == 15250


def test_forecast_period_skips_past_months_without_instances():
    period = generate_forecast_period(
        [_variable()], [], [], date(2024, 1, 1), 3, today=date(2024, 2, 10)
    )
    cells = period.variable_expense_rows[0].monthly_data
    assert list(cells) == ["2024-02", "2024-03"]


def test_forecast_period_requires_positive_months():
    with pytest.raises(ValueError):
        generate_forecast_period([], [], [], date(2024, 1, 1), 0, today=date(2024, 1, 1))


def test_yearly_projections_split_by_year():
    period = generate_forecast_period(
        [_variable()], [], [], date(2024, 11, 1), 3, today=date(2024, 11, 1)
    )
    yearly = yearly_projections(period)
    assert yearly["2024"].total_amount == 30000
    assert yearly["2024"].months_included == 2
    assert yearly["2024"].average_monthly == 15000
    assert yearly["2025"].total_amount == 15000


def test_project_monthly_forecasts_from_base_expenses():
    installment = _installment(start_date=date(2024, 1, 1))
    paused = _variable(id="var-paused", status="paused")
    inactive = _variable(id="var-off", is_active=False)

    forecasts = project_monthly_forecasts(
        [installment, paused, inactive],
        BUDGETS,
        date(2024, 1, 1),
        3,
        trends={"var-paused": 12.0},
        today=date(2024, 1, 10),
    )

    assert [f.month for f in forecasts] == ["2024-01", "2024-02", "2024-03"]
    jan, feb, mar = forecasts
    assert {e.id for e in jan.expenses} == {"inst-1", "var-paused"}
    assert [b.id for b in jan.budgets] == ["b1"]

    def item(forecast, expense_id):
        return next(e for e in forecast.expenses if e.id == expense_id)

    assert item(jan, "inst-1").projected_amount == 10000
    assert item(feb, "inst-1").projection_notes == "Final installment"
    assert item(mar, "inst-1").projected_amount == 0
    assert not item(mar, "inst-1").is_active_in_month
    assert item(feb, "var-paused").projected_amount == 0
    assert jan.totals.installments == 10000
    assert jan.totals.budgets == 50000
    assert mar.totals.total == 50000
