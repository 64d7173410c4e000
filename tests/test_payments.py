from datetime import date

import pytest

from models import Installment, PaymentStatus, VariableExpense
from payments import (
    deviation_status,
    mark_paid,
    mark_unpaid,
    payment_status,
    update_notes,
    variation_percentage,
)
from recurrence import (
    generate_budget_instances,
    generate_installment_instances,
    generate_variable_expense_instances,
)
from schemas import Budget


def _instance(billing_day=10):
    expense = VariableExpense(
        id="var-1",
        description="Internet",
        payment_method_id="visa",
        is_active=True,
        status="active",
        estimated_amount=10000,
        billing_day=billing_day,
        category="Comunicaciones",
    )
    return generate_variable_expense_instances(expense, "2024-03", "2024-03")[0]


@pytest.mark.parametrize(
    "paid, expected",
    [
        (10000, PaymentStatus.paid_accurate),
        (10500, PaymentStatus.paid_accurate),
        (9500, PaymentStatus.paid_accurate),
        (11000, PaymentStatus.paid_moderate),
        (11500, PaymentStatus.paid_moderate),
        (12000, PaymentStatus.paid_high),
        (7000, PaymentStatus.paid_high),
    ],
)
def test_deviation_thresholds(paid, expected):
    assert deviation_status(10000, paid) == expected


def test_zero_budget_deviation():
    assert deviation_status(0, 0) == PaymentStatus.paid_accurate
    assert deviation_status(0, 1) == PaymentStatus.paid_high


def test_unpaid_instance_becomes_overdue_after_due_date():
    instance = _instance()
    assert payment_status(instance, date(2024, 3, 10)) == PaymentStatus.pending
    assert payment_status(instance, date(2024, 3, 11)) == PaymentStatus.overdue


def test_unpaid_without_due_date_stays_pending():
    instance = _instance(billing_day=None)
    assert payment_status(instance, date(2030, 1, 1)) == PaymentStatus.pending


def _budget_instance():
    budget = Budget(id="b1", name="Food", total=50000)
    return generate_budget_instances(
        budget, "2024-03", "2024-03", today=date(2024, 3, 5)
    )[0]


def test_budget_instance_paid_at_total_is_accurate():
    instance = _budget_instance()
    assert payment_status(instance, date(2024, 3, 5)) == PaymentStatus.pending

    mark_paid(instance, 50000, date(2024, 3, 28))
    assert payment_status(instance, date(2024, 3, 28)) == PaymentStatus.paid_accurate


def test_budget_spent_is_graded_by_deviation():
    budget = Budget(id="b1", name="Food", total=50000, spent=45000)
    instance = generate_budget_instances(
        budget, "2024-03", "2024-03", today=date(2024, 3, 5)
    )[0]
    assert instance.amount_paid == 45000
    assert payment_status(instance, date(2024, 3, 5)) == PaymentStatus.paid_moderate


@pytest.mark.parametrize("amount", [0, 1, 9000, 10000, 50000])
def test_recorded_payment_always_reads_as_paid(amount):
    installment = Installment(
        id="inst-1",
        description="Phone",
        payment_method_id="visa",
        is_active=True,
        status="active",
        total_amount=30000,
        total_installments=3,
        start_date=date(2024, 3, 5),
    )
    instances = [
        generate_installment_instances(installment, "2024-03", "2024-03")[0],
        _instance(),
        _budget_instance(),
    ]
    for instance in instances:
        for today in (date(2024, 3, 1), date(2024, 4, 30)):
            assert not payment_status(instance, today).is_paid
        mark_paid(instance, amount, date(2024, 3, 5))
        for today in (date(2024, 3, 1), date(2024, 4, 30)):
            assert payment_status(instance, today).is_paid
        mark_unpaid(instance)
        assert not payment_status(instance, date(2024, 3, 1)).is_paid



def test_mark_paid_then_unpaid():
    instance = _instance()
    mark_paid(instance, 11000, date(2024, 3, 9))

    assert instance.amount_paid == 11000
    assert instance.payment_date == date(2024, 3, 9)
    assert payment_status(instance, date(2024, 3, 20)) == PaymentStatus.paid_moderate
    assert payment_status(instance, date(2024, 3, 20)).is_paid
    assert variation_percentage(instance) == 10.0

    mark_unpaid(instance)
    assert instance.amount_paid is None
    assert instance.payment_date is None
    assert payment_status(instance, date(2024, 3, 20)) == PaymentStatus.overdue
    assert variation_percentage(instance) is None


@pytest.mark.parametrize("amount", [-1, 10.5, "100"])
def test_mark_paid_validates_before_mutating(amount):
    instance = _instance()
    with pytest.raises(ValueError):
        mark_paid(instance, amount, date(2024, 3, 9))
    assert instance.amount_paid is None
    assert instance.payment_date is None


def test_update_notes_blanks_to_none():
    instance = _instance()
    update_notes(instance, "  paid by transfer ")
    assert instance.notes == "paid by transfer"
    update_notes(instance, "   ")
    assert instance.notes is None


def test_paid_status_for_installment_instances():
    installment = Installment(
        id="inst-1",
        description="Phone",
        payment_method_id="visa",
        is_active=True,
        status="active",
        total_amount=30000,
        total_installments=3,
        start_date=date(2024, 1, 5),
    )
    first = generate_installment_instances(installment, "2024-01", "2024-01")[0]
    mark_paid(first, 10000, date(2024, 1, 5))
    assert payment_status(first, date(2024, 2, 1)) == PaymentStatus.paid_accurate
