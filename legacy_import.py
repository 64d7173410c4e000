from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional, Union

from pydantic import TypeAdapter, ValidationError
from rapidfuzz.distance import Levenshtein
from sqlalchemy import select
from sqlalchemy.orm import Session

from models import (
    BaseExpense,
    Installment,
    MonthlyInstance,
    PAID_STATUSES,
    VARIABLE_EXPENSE_CATEGORIES,
    VariableExpense,
)
from instance_store import new_instances
from payments import derive_status
from periods import MonthWindow, window_around
from recurrence import (
    installment_instance,
    installment_window,
    local_today,
    variable_expense_instance,
)
from schemas import (
    LegacyInstallmentRecord,
    LegacyPaymentRecord,
    LegacyRecord,
    LegacyVariableExpenseRecord,
)


logger = logging.getLogger(__name__)

MIGRATION_MONTHS_BACK = 3
MIGRATION_MONTHS_AHEAD = 6
CATEGORY_MATCH_MAX_DISTANCE = 2

_record_adapter = TypeAdapter(LegacyRecord)

AnyLegacyRecord = Union[LegacyInstallmentRecord, LegacyVariableExpenseRecord]


class LegacyImportError(ValueError):
    pass


@dataclass(frozen=True)
class MigrationIssue:
    index: int
    record_id: Optional[str]
    message: str


@dataclass
class MigrationResult:
    base_expenses: list[BaseExpense] = field(default_factory=list)
    instances: list[MonthlyInstance] = field(default_factory=list)
    errors: list[MigrationIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LegacyImportPreview:
    records_count: int
    installments_count: int
    variable_expenses_count: int
    instances_count: int
    paid_instances_count: int
    already_imported_count: int
    errors: list[MigrationIssue]
    warnings: list[str]


def normalize_category(raw: str) -> str:
    """Map a free-text legacy category onto the known category list.

    Near misses (typos, missing accents) snap to the closest known name; a
    tie or anything further away is kept as typed.
    """
    value = raw.strip()
    lowered = value.lower()
    best_distance: Optional[int] = None
    best: list[str] = []
    for candidate in VARIABLE_EXPENSE_CATEGORIES:
        dist = int(Levenshtein.distance(lowered, candidate.lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [candidate]
        elif dist == best_distance:
            best.append(candidate)
    if best_distance is not None and best_distance <= CATEGORY_MATCH_MAX_DISTANCE and len(best) == 1:
        return best[0]
    return value


def extract_legacy_records(payload: Any) -> list[Any]:
    """Pull the raw expense list out of a legacy store export."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        state = payload.get("state", payload)
        if isinstance(state, dict) and isinstance(state.get("gastos"), list):
            return state["gastos"]
    raise LegacyImportError("Legacy export must be a list or contain state.gastos")


def _timestamps(record: AnyLegacyRecord) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if record.created_at is not None:
        values["created_at"] = record.created_at
    if record.updated_at is not None:
        values["updated_at"] = record.updated_at
    return values


def _base_expense_from_record(record: AnyLegacyRecord) -> BaseExpense:
    if isinstance(record, LegacyInstallmentRecord):
        return Installment(
            id=record.id,
            description=record.description,
            payment_method_id=record.payment_method_id,
            is_active=record.is_active,
            status=record.status.value,
            total_amount=record.total_amount,
            total_installments=record.total_installments,
            start_date=record.start_date,
            **_timestamps(record),
        )
    return VariableExpense(
        id=record.id,
        description=record.description,
        payment_method_id=record.payment_method_id,
        is_active=record.is_active,
        status=record.status.value,
        estimated_amount=record.estimated_amount,
        billing_day=record.billing_day,
        category=normalize_category(record.category),
        service_url=record.service_url,
        **_timestamps(record),
    )


def migration_window(record: AnyLegacyRecord, today: date) -> MonthWindow:
    window = window_around(
        today, months_back=MIGRATION_MONTHS_BACK, months_ahead=MIGRATION_MONTHS_AHEAD
    )
    history_months = sorted(entry.month for entry in record.payment_history)
    if history_months:
        window = window.union(MonthWindow(history_months[0], history_months[-1]))
    return window


def _installment_instances(
    expense: Installment,
    record: LegacyInstallmentRecord,
    history: dict[str, LegacyPaymentRecord],
    warnings: list[str],
) -> list[MonthlyInstance]:
    active = installment_window(expense)
    for month in sorted(history):
        if month not in active:
            warnings.append(
                f"{record.id}: history month {month} is outside the installment range"
            )

    if record.installment_amount is not None and record.installment_amount != expense.installment_amount:
        warnings.append(
            f"{record.id}: stored installment amount {record.installment_amount} "
            f"differs from derived {expense.installment_amount}"
        )

    # The whole schedule is materialized, whatever the window.
    instances = [installment_instance(expense, month) for month in active]
    for instance in instances:
        if instance.month in history:
            continue
        if instance.sequence_number <= record.paid_installments:
            instance.amount_paid = instance.amount_budgeted
            instance.payment_date = instance.due_date
    return instances


def _variable_expense_instances(
    expense: VariableExpense,
    history: dict[str, LegacyPaymentRecord],
    window: MonthWindow,
) -> list[MonthlyInstance]:
    months = set(history)
    if expense.is_active and not expense.is_paused:
        months.update(window)
    return [variable_expense_instance(expense, month) for month in sorted(months)]


def _apply_history(
    record_id: str,
    instances: list[MonthlyInstance],
    history: dict[str, LegacyPaymentRecord],
    today: date,
    warnings: list[str],
) -> None:
    for instance in instances:
        entry = history.get(instance.month)
        if entry is None:
            continue
        # Deviation is judged against what was budgeted at the time.
        instance.amount_budgeted = entry.amount_budgeted
        instance.amount_paid = entry.amount_paid
        instance.payment_date = entry.payment_date
        instance.notes = entry.notes

        derived = derive_status(
            instance.amount_budgeted,
            instance.amount_paid,
            instance.due_date,
            today,
        )
        recorded = entry.payment_status
        if (derived in PAID_STATUSES or recorded in PAID_STATUSES) and derived != recorded:
            warnings.append(
                f"{record_id}: {instance.month} recorded as {recorded.value}, "
                f"derived {derived.value}"
            )


def migrate_legacy_record(
    record: AnyLegacyRecord, today: date
) -> tuple[BaseExpense, list[MonthlyInstance], list[str]]:
    warnings: list[str] = []
    history: dict[str, LegacyPaymentRecord] = {}
    for entry in record.payment_history:
        if entry.month in history:
            warnings.append(f"{record.id}: duplicate history month {entry.month}, last kept")
        history[entry.month] = entry

    expense = _base_expense_from_record(record)
    if isinstance(expense, Installment):
        instances = _installment_instances(expense, record, history, warnings)
    else:
        window = migration_window(record, today)
        instances = _variable_expense_instances(expense, history, window)
    _apply_history(record.id, instances, history, today, warnings)
    return expense, instances, warnings


def migrate_legacy_records(
    records: Iterable[Any], *, today: Optional[date] = None
) -> MigrationResult:
    today = today or local_today()
    result = MigrationResult()
    seen_ids: set[str] = set()

    for idx, raw in enumerate(records):
        raw_id = raw.get("id") if isinstance(raw, dict) else getattr(raw, "id", None)
        try:
            record = (
                raw
                if isinstance(raw, (LegacyInstallmentRecord, LegacyVariableExpenseRecord))
                else _record_adapter.validate_python(raw)
            )
        except ValidationError as exc:
            first = exc.errors()[0]
            loc = ".".join(str(part) for part in first["loc"])
            result.errors.append(
                MigrationIssue(idx, raw_id, f"{loc}: {first['msg']}")
            )
            continue

        if record.id in seen_ids:
            result.errors.append(MigrationIssue(idx, record.id, "Duplicate expense id"))
            continue

        try:
            expense, instances, warnings = migrate_legacy_record(record, today)
        except ValueError as exc:
            logger.exception(f"legacy_migration_failed: record_id={record.id}")
            result.errors.append(MigrationIssue(idx, record.id, str(exc)))
            continue

        seen_ids.add(record.id)
        result.base_expenses.append(expense)
        result.instances.extend(instances)
        result.warnings.extend(warnings)

    logger.info(
        f"legacy_migration: base_expenses={len(result.base_expenses)} "
        f"instances={len(result.instances)} errors={len(result.errors)} "
        f"warnings={len(result.warnings)}"
    )
    return result


class LegacyImportService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _existing_expense_ids(self, ids: Iterable[str]) -> set[str]:
        ids = list(ids)
        if not ids:
            return set()
        return set(self.session.scalars(select(BaseExpense.id).where(BaseExpense.id.in_(ids))))

    def _existing_instances(self, ids: Iterable[str]) -> list[MonthlyInstance]:
        ids = list(ids)
        if not ids:
            return []
        return list(
            self.session.scalars(select(MonthlyInstance).where(MonthlyInstance.id.in_(ids)))
        )

    def preview(self, payload: Any, *, today: Optional[date] = None) -> LegacyImportPreview:
        records = extract_legacy_records(payload)
        result = migrate_legacy_records(records, today=today)
        existing = self._existing_expense_ids(e.id for e in result.base_expenses)
        return LegacyImportPreview(
            records_count=len(records),
            installments_count=sum(
                1 for e in result.base_expenses if isinstance(e, Installment)
            ),
            variable_expenses_count=sum(
                1 for e in result.base_expenses if isinstance(e, VariableExpense)
            ),
            instances_count=len(result.instances),
            paid_instances_count=sum(1 for i in result.instances if i.is_paid),
            already_imported_count=len(existing),
            errors=result.errors,
            warnings=result.warnings,
        )

    def commit(self, payload: Any, *, today: Optional[date] = None) -> dict[str, int]:
        records = extract_legacy_records(payload)
        result = migrate_legacy_records(records, today=today)

        existing_expenses = self._existing_expense_ids(e.id for e in result.base_expenses)
        existing_instances = self._existing_instances(i.id for i in result.instances)

        inserted_expenses = 0
        for expense in result.base_expenses:
            if expense.id in existing_expenses:
                continue
            self.session.add(expense)
            inserted_expenses += 1

        created = new_instances(existing_instances, result.instances)
        self.session.add_all(created)
        inserted_instances = len(created)

        self.session.commit()
        logger.info(
            f"legacy_import_committed: base_expenses={inserted_expenses} "
            f"instances={inserted_instances} errors={len(result.errors)}"
        )
        return {
            "inserted_base_expenses": inserted_expenses,
            "skipped_base_expenses": len(existing_expenses),
            "inserted_instances": inserted_instances,
            "skipped_instances": len(existing_instances),
            "errors": len(result.errors),
            "warnings": len(result.warnings),
        }
