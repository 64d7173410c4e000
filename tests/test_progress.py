from datetime import date

from models import Installment, InstallmentStatus, VariableExpense
from payments import mark_paid
from progress import (
    completion_percentage,
    installment_progress,
    next_billing_date,
    trend_percentage,
    variable_expense_stats,
)
from recurrence import generate_installment_instances, generate_variable_expense_instances


def _installment(status="active") -> Installment:
    return Installment(
        id="inst-1",
        description="Laptop",
        payment_method_id="visa",
        is_active=True,
        status=status,
        total_amount=120000,
        total_installments=12,
        start_date=date(2024, 1, 15),
    )


def _variable() -> VariableExpense:
    return VariableExpense(
        id="var-1",
        description="Water",
        payment_method_id="debito",
        is_active=True,
        status="active",
        estimated_amount=10000,
        billing_day=31,
        category="Servicios Básicos",
    )


def test_installment_progress_after_payments():
    installment = _installment()
    instances = generate_installment_instances(installment, "2024-01", "2024-12")
    for instance in instances[:3]:
        mark_paid(instance, 10000, instance.due_date)

    progress = installment_progress(installment, instances)
    assert progress.paid_installments == 3
    assert progress.remaining_installments == 9
    assert progress.progress_percentage == 25
    assert progress.next_due_date == date(2024, 4, 15)
    assert progress.completion_date == date(2024, 12, 15)
    assert progress.status == InstallmentStatus.active


def test_installment_completes_when_all_paid():
    installment = _installment()
    instances = generate_installment_instances(installment, "2024-01", "2024-12")
    for instance in instances:
        mark_paid(instance, 10000, instance.due_date)

    progress = installment_progress(installment, instances)
    assert progress.status == InstallmentStatus.completed
    assert progress.next_due_date is None
    assert progress.progress_percentage == 100


def test_cancelled_installment_stays_cancelled():
    progress = installment_progress(_installment(status="cancelled"), [])
    assert progress.status == InstallmentStatus.cancelled


def test_completion_percentage():
    instances = generate_installment_instances(_installment(), "2024-01", "2024-04")
    mark_paid(instances[0], 10000, date(2024, 1, 15))
    assert completion_percentage(instances, "inst-1") == 25
    assert completion_percentage(instances, "unknown") == 0


def test_trend_percentage_uses_last_three_payments():
    assert trend_percentage([12000, 11000, 10000]) == 20.0
    assert trend_percentage([12000, 11000, 10000, 1]) == 20.0
    assert trend_percentage([9000, 10000]) == -10.0
    assert trend_percentage([10000]) == 0.0
    assert trend_percentage([]) == 0.0


def test_next_billing_date():
    assert next_billing_date(31, date(2024, 4, 5)) == date(2024, 4, 30)
    assert next_billing_date(5, date(2024, 4, 6)) == date(2024, 5, 5)
    assert next_billing_date(6, date(2024, 4, 6)) == date(2024, 4, 6)


def test_variable_expense_stats():
    expense = _variable()
    instances = generate_variable_expense_instances(expense, "2024-01", "2024-03")
    mark_paid(instances[0], 10000, date(2024, 1, 30))
    mark_paid(instances[1], 11000, date(2024, 2, 28))

    stats = variable_expense_stats(expense, instances, date(2024, 3, 5))
    assert stats.last_month_amount == 11000
    assert stats.amount_variation == 1000
    assert stats.trend_percentage == 10.0
    assert stats.accuracy_rate == 95.0
    assert stats.next_billing_date == date(2024, 3, 31)


def test_variable_expense_stats_without_history():
    stats = variable_expense_stats(_variable(), [], date(2024, 3, 5))
    assert stats.last_month_amount == 0
    assert stats.trend_percentage == 0.0
    assert stats.accuracy_rate == 100.0
