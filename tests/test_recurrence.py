from datetime import date

import pytest

from models import ExpenseType, Installment, VariableExpense
from recurrence import (
    InstanceEngine,
    generate_budget_instances,
    generate_for_expense,
    generate_installment_instances,
    generate_variable_expense_instances,
    is_final_installment,
)
from schemas import Budget


def _installment(**overrides) -> Installment:
    values = dict(
        id="inst-1",
        description="Laptop",
        payment_method_id="visa",
        is_active=True,
        status="active",
        total_amount=120000,
        total_installments=12,
        start_date=date(2024, 1, 15),
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
        billing_day=31,
        category="Servicios Básicos",
    )
    values.update(overrides)
    return VariableExpense(**values)


def test_installment_generates_full_schedule():
    installment = _installment()
    instances = generate_installment_instances(installment, "2024-01", "2024-12")

    assert len(instances) == 12
    assert [i.amount_budgeted for i in instances] == [10000] * 12
    assert [i.sequence_number for i in instances] == list(range(1, 13))
    assert instances[0].id == "inst-1_2024-01"
    assert instances[0].due_date == date(2024, 1, 15)
    assert all(i.parent_expense_type == ExpenseType.installment for i in instances)
    assert is_final_installment(instances[-1], installment)
    assert not is_final_installment(instances[-2], installment)


def test_installment_window_is_intersected():
    instances = generate_installment_instances(_installment(), "2024-06", "2025-06")
    assert [i.month for i in instances][0] == "2024-06"
    assert [i.month for i in instances][-1] == "2024-12"
    assert [i.sequence_number for i in instances] == list(range(6, 13))


def test_installment_outside_window_or_inverted_window_yields_nothing():
    installment = _installment()
    assert generate_installment_instances(installment, "2025-01", "2025-12") == []
    assert generate_installment_instances(installment, "2023-01", "2023-12") == []
    assert generate_installment_instances(installment, "2024-05", "2024-04") == []


def test_installment_amount_rounds_half_up():
    assert _installment(total_amount=1001, total_installments=2).installment_amount == 501
    assert _installment(total_amount=200, total_installments=3).installment_amount == 67


def test_installment_due_date_is_clamped():
    installment = _installment(start_date=date(2024, 1, 31), total_installments=3)
    instances = generate_installment_instances(installment, "2024-01", "2024-03")
    assert [i.due_date for i in instances] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
    ]


def test_variable_expense_billing_day_clamps_in_short_months():
    instances = generate_variable_expense_instances(_variable(), "2024-04", "2024-04")
    assert len(instances) == 1
    assert instances[0].due_date == date(2024, 4, 30)
    assert instances[0].amount_budgeted == 15000
    assert instances[0].category == "Servicios Básicos"
    assert instances[0].sequence_number is None


def test_variable_expense_without_billing_day_has_no_due_date():
    instances = generate_variable_expense_instances(
        _variable(billing_day=None), "2024-01", "2024-03"
    )
    assert len(instances) == 3
    assert all(i.due_date is None for i in instances)


def test_paused_or_inactive_variable_expense_yields_nothing():
    assert generate_variable_expense_instances(
        _variable(status="paused"), "2024-01", "2024-03"
    ) == []
    assert generate_variable_expense_instances(
        _variable(is_active=False), "2024-01", "2024-03"
    ) == []


def test_budget_spent_lands_on_current_month_only():
    budget = Budget(id="b1", name="Food", total=50000, spent=12000)
    instances = generate_budget_instances(
        budget, "2024-04", "2024-06", today=date(2024, 5, 10)
    )
    assert [i.month for i in instances] == ["2024-04", "2024-05", "2024-06"]
    assert [i.amount_paid for i in instances] == [None, 12000, None]
    assert all(i.amount_budgeted == 50000 for i in instances)
    assert all(i.due_date is None and i.sequence_number is None for i in instances)
    assert instances[1].id == "b1_2024-05"


def test_generate_for_expense_rejects_unknown_types():
    with pytest.raises(TypeError):
        generate_for_expense(object(), "2024-01", "2024-02")


def test_engine_isolates_failures_per_expense():
    broken = _installment(id="inst-broken", total_installments=0)
    healthy = _variable()
    result = InstanceEngine().generate([broken, healthy], "2024-01", "2024-03")

    assert [f.parent_expense_id for f in result.failures] == ["inst-broken"]
    assert [i.parent_expense_id for i in result.instances] == ["var-1"] * 3


def test_engine_skips_cancelled_installments():
    cancelled = _installment(status="cancelled")
    result = InstanceEngine().generate([cancelled], "2024-01", "2024-12")
    assert result.instances == []
    assert result.failures == []
