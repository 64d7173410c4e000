"""Payment status rules and payment mutations for monthly instances.

Status is never stored: it is recomputed from the budgeted amount, the paid
amount, the due date and the current date every time it is asked for.
"""

from datetime import date, datetime
from typing import Optional

from models import MonthlyInstance, PaymentStatus
from recurrence import local_today


ACCURATE_THRESHOLD = 0.05
MODERATE_THRESHOLD = 0.15


def deviation_ratio(amount_budgeted: int, amount_paid: int) -> float:
    if amount_budgeted == 0:
        return 0.0 if amount_paid == 0 else float("inf")
    return abs(amount_paid - amount_budgeted) / amount_budgeted


def deviation_status(amount_budgeted: int, amount_paid: int) -> PaymentStatus:
    deviation = deviation_ratio(amount_budgeted, amount_paid)
    if deviation <= ACCURATE_THRESHOLD:
        return PaymentStatus.paid_accurate
    if deviation <= MODERATE_THRESHOLD:
        return PaymentStatus.paid_moderate
    return PaymentStatus.paid_high


def derive_status(
    amount_budgeted: int,
    amount_paid: Optional[int],
    due_date: Optional[date],
    today: date,
) -> PaymentStatus:
    if amount_paid is not None:
        return deviation_status(amount_budgeted, amount_paid)
    if due_date is not None and due_date < today:
        return PaymentStatus.overdue
    return PaymentStatus.pending


def payment_status(
    instance: MonthlyInstance, today: Optional[date] = None
) -> PaymentStatus:
    return derive_status(
        instance.amount_budgeted,
        instance.amount_paid,
        instance.due_date,
        today or local_today(),
    )


def variation_percentage(instance: MonthlyInstance) -> Optional[float]:
    if instance.amount_paid is None or not instance.amount_budgeted:
        return None
    variation = (
        (instance.amount_paid - instance.amount_budgeted) / instance.amount_budgeted * 100
    )
    return round(variation, 2)


def _validate_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError("Payment amount must be a whole number")
    if amount < 0:
        raise ValueError("Payment amount cannot be negative")
    return amount


def mark_paid(
    instance: MonthlyInstance, amount: int, payment_date: Optional[date] = None
) -> MonthlyInstance:
    amount = _validate_amount(amount)
    instance.amount_paid = amount
    instance.payment_date = payment_date or local_today()
    instance.updated_at = datetime.utcnow()
    return instance


def mark_unpaid(instance: MonthlyInstance) -> MonthlyInstance:
    instance.amount_paid = None
    instance.payment_date = None
    instance.updated_at = datetime.utcnow()
    return instance


def update_notes(instance: MonthlyInstance, notes: Optional[str]) -> MonthlyInstance:
    cleaned = (notes or "").strip()
    instance.notes = cleaned or None
    instance.updated_at = datetime.utcnow()
    return instance
