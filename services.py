import logging
import uuid
from datetime import date
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from config import get_settings
from forecast import (
    ForecastPeriod,
    MonthlyForecast,
    YearlyProjection,
    generate_forecast_period,
    project_monthly_forecasts,
    yearly_projections,
)
from instance_store import new_instances, refresh_budget_amounts
from instance_store import total_paid as sum_paid
from models import (
    BaseExpense,
    ExpenseType,
    Installment,
    InstallmentStatus,
    MonthlyInstance,
    PaymentStatus,
    VariableExpense,
    VariableExpenseStatus,
)
from payments import mark_paid, mark_unpaid, payment_status, update_notes
from periods import MonthWindow, month_key, parse_month_key, resolve_window
from progress import (
    InstallmentProgress,
    VariableExpenseStats,
    completion_percentage,
    installment_progress,
    variable_expense_stats,
)
from recurrence import GenerationResult, InstanceEngine, installment_window, local_today
from schemas import (
    BaseExpenseSnapshot,
    BaseExpenseUpdateIn,
    Budget,
    InstallmentIn,
    InstanceSnapshot,
    NotesIn,
    PaymentIn,
    PersistedState,
    VariableExpenseIn,
)


logger = logging.getLogger(__name__)

VARIABLE_ONLY_FIELDS = frozenset(
    {"estimated_amount", "billing_day", "category", "service_url"}
)
REQUIRED_FIELDS = frozenset(
    {"description", "payment_method_id", "is_active", "estimated_amount", "category"}
)


def new_expense_id(expense_type: ExpenseType) -> str:
    prefix = "inst" if expense_type == ExpenseType.installment else "var"
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class BaseExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, expense_id: str) -> BaseExpense:
        expense = self.session.get(BaseExpense, expense_id)
        if not expense:
            raise ValueError("Expense not found")
        return expense

    def _get_typed(self, expense_id: str, cls: type) -> BaseExpense:
        expense = self.get(expense_id)
        if not isinstance(expense, cls):
            raise ValueError(f"Expense is not a {cls.__name__}")
        return expense

    def list(
        self,
        *,
        expense_type: Optional[ExpenseType] = None,
        is_active: Optional[bool] = None,
        payment_method_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[BaseExpense]:
        stmt = select(BaseExpense)
        if expense_type is not None:
            stmt = stmt.where(BaseExpense.type == expense_type)
        if is_active is not None:
            stmt = stmt.where(BaseExpense.is_active == is_active)
        if payment_method_id:
            stmt = stmt.where(BaseExpense.payment_method_id == payment_method_id)
        if search and search.strip():
            stmt = stmt.where(BaseExpense.description.ilike(f"%{search.strip()}%"))
        stmt = stmt.order_by(BaseExpense.created_at, BaseExpense.id)
        return list(self.session.scalars(stmt).all())

    def _after_create(self, expense: BaseExpense, today: Optional[date]) -> None:
        self.session.add(expense)
        self.session.flush()
        InstanceService(self.session).generate_for_expenses(
            [expense], today=today, commit=False
        )
        self.session.commit()
        self.session.refresh(expense)
        logger.info(
            f"expense_created: id={expense.id} type={expense.type.value} "
            f"description={expense.description!r}"
        )

    def create_installment(
        self, data: InstallmentIn, *, today: Optional[date] = None
    ) -> Installment:
        expense = Installment(
            id=new_expense_id(ExpenseType.installment),
            description=data.description.strip(),
            payment_method_id=data.payment_method_id,
            is_active=True,
            status=InstallmentStatus.active.value,
            total_amount=data.total_amount,
            total_installments=data.total_installments,
            start_date=data.start_date,
        )
        self._after_create(expense, today)
        return expense

    def create_variable_expense(
        self, data: VariableExpenseIn, *, today: Optional[date] = None
    ) -> VariableExpense:
        expense = VariableExpense(
            id=new_expense_id(ExpenseType.variable_expense),
            description=data.description.strip(),
            payment_method_id=data.payment_method_id,
            is_active=True,
            status=VariableExpenseStatus.active.value,
            estimated_amount=data.estimated_amount,
            billing_day=data.billing_day,
            category=data.category.strip(),
            service_url=data.service_url,
        )
        self._after_create(expense, today)
        return expense

    def update(self, expense_id: str, data: BaseExpenseUpdateIn) -> BaseExpense:
        expense = self.get(expense_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("description") is not None:
            changes["description"] = changes["description"].strip() or None
        cleared = sorted(f for f in REQUIRED_FIELDS if f in changes and changes[f] is None)
        if cleared:
            raise ValueError(f"Fields cannot be empty: {', '.join(cleared)}")
        if isinstance(expense, Installment):
            rejected = sorted(VARIABLE_ONLY_FIELDS & changes.keys())
            if rejected:
                raise ValueError(
                    f"Fields not editable on installments: {', '.join(rejected)}"
                )
        for field, value in changes.items():
            setattr(expense, field, value)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def toggle_active(self, expense_id: str, is_active: bool) -> BaseExpense:
        expense = self.get(expense_id)
        expense.is_active = is_active
        self.session.commit()
        return expense

    def cancel_installment(self, expense_id: str) -> Installment:
        expense = self._get_typed(expense_id, Installment)
        expense.status = InstallmentStatus.cancelled.value
        self.session.commit()
        logger.info(f"installment_cancelled: id={expense_id}")
        return expense

    def pause(self, expense_id: str) -> VariableExpense:
        expense = self._get_typed(expense_id, VariableExpense)
        expense.status = VariableExpenseStatus.paused.value
        self.session.commit()
        return expense

    def resume(self, expense_id: str) -> VariableExpense:
        expense = self._get_typed(expense_id, VariableExpense)
        expense.status = VariableExpenseStatus.active.value
        self.session.commit()
        return expense

    def delete(self, expense_id: str) -> int:
        """Delete an expense together with every instance it produced."""
        expense = self.get(expense_id)
        result = self.session.execute(
            delete(MonthlyInstance).where(MonthlyInstance.parent_expense_id == expense_id)
        )
        self.session.delete(expense)
        self.session.commit()
        removed = result.rowcount or 0
        logger.info(f"expense_deleted: id={expense_id} instances_removed={removed}")
        return removed

    def summary(self, *, today: Optional[date] = None) -> dict[str, object]:
        current = month_key(today or local_today())
        expenses = self.list()
        installments = [e for e in expenses if isinstance(e, Installment)]
        variables = [e for e in expenses if isinstance(e, VariableExpense)]

        running = [
            i
            for i in installments
            if i.is_active
            and i.status != InstallmentStatus.cancelled.value
            and current in installment_window(i)
        ]
        billing = [v for v in variables if v.is_active and not v.is_paused]
        installments_monthly = sum(i.installment_amount for i in running)
        variables_monthly = sum(v.estimated_amount for v in billing)

        return {
            "month": current,
            "installments": {
                "total": len(installments),
                "active": len(running),
                "cancelled": sum(
                    1 for i in installments if i.status == InstallmentStatus.cancelled.value
                ),
                "monthly_amount": installments_monthly,
            },
            "variable_expenses": {
                "total": len(variables),
                "active": len(billing),
                "paused": sum(1 for v in variables if v.is_paused),
                "monthly_amount": variables_monthly,
            },
            "monthly_total": installments_monthly + variables_monthly,
        }


class InstanceService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()
        self.engine = InstanceEngine()

    def get(self, instance_id: str) -> MonthlyInstance:
        instance = self.session.get(MonthlyInstance, instance_id)
        if not instance:
            raise ValueError("Instance not found")
        return instance

    def all(self) -> list[MonthlyInstance]:
        stmt = select(MonthlyInstance).order_by(
            MonthlyInstance.month, MonthlyInstance.parent_expense_id
        )
        return list(self.session.scalars(stmt).all())

    def stored(self, instance_ids: Iterable[str]) -> list[MonthlyInstance]:
        ids = list(instance_ids)
        if not ids:
            return []
        stmt = select(MonthlyInstance).where(MonthlyInstance.id.in_(ids))
        return list(self.session.scalars(stmt).all())

    def for_month(self, month: str) -> list[MonthlyInstance]:
        parse_month_key(month)
        stmt = (
            select(MonthlyInstance)
            .where(MonthlyInstance.month == month)
            .order_by(MonthlyInstance.parent_expense_type, MonthlyInstance.id)
        )
        return list(self.session.scalars(stmt).all())

    def for_expense(self, parent_expense_id: str) -> list[MonthlyInstance]:
        stmt = (
            select(MonthlyInstance)
            .where(MonthlyInstance.parent_expense_id == parent_expense_id)
            .order_by(MonthlyInstance.month)
        )
        return list(self.session.scalars(stmt).all())

    def _window(
        self,
        start_month: Optional[str],
        end_month: Optional[str],
        today: Optional[date],
    ) -> MonthWindow:
        return resolve_window(
            start_month,
            end_month,
            today=today or local_today(),
            lookahead_months=self.settings.lookahead_months,
        )

    def _store_new(
        self, generated: Sequence[MonthlyInstance], *, commit: bool = True
    ) -> list[MonthlyInstance]:
        created = new_instances(self.stored(i.id for i in generated), generated)
        self.session.add_all(created)
        if commit:
            self.session.commit()
        return created

    def generate_for_expenses(
        self,
        expenses: Iterable[BaseExpense],
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
        *,
        today: Optional[date] = None,
        commit: bool = True,
    ) -> GenerationResult:
        window = self._window(start_month, end_month, today)
        result = self.engine.generate(expenses, window.start_month, window.end_month)
        created = self._store_new(result.instances, commit=commit)
        logger.info(
            f"instances_stored: window={window.start_month}..{window.end_month} "
            f"created={len(created)} skipped={len(result.instances) - len(created)}"
        )
        return GenerationResult(instances=created, failures=result.failures)

    def generate_for_period(
        self,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
        *,
        today: Optional[date] = None,
    ) -> GenerationResult:
        expenses = BaseExpenseService(self.session).list()
        return self.generate_for_expenses(expenses, start_month, end_month, today=today)

    def generate_budget_instances_for_period(
        self,
        budgets: Iterable[Budget],
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
        *,
        today: Optional[date] = None,
    ) -> GenerationResult:
        today = today or local_today()
        window = self._window(start_month, end_month, today)
        result = self.engine.generate_budgets(
            budgets, window.start_month, window.end_month, today=today
        )
        created = self._store_new(result.instances)
        return GenerationResult(instances=created, failures=result.failures)

    def refresh_budget_amounts(self, budgets: Iterable[Budget]) -> int:
        stmt = select(MonthlyInstance).where(
            MonthlyInstance.parent_expense_type == ExpenseType.budget
        )
        changed = refresh_budget_amounts(self.session.scalars(stmt).all(), budgets)
        self.session.commit()
        return changed

    def refresh(
        self,
        budgets: Optional[Sequence[Budget]] = None,
        *,
        today: Optional[date] = None,
    ) -> int:
        """Materialize the look-ahead window for everything that recurs."""
        created = len(self.generate_for_period(today=today).instances)
        if budgets:
            created += len(
                self.generate_budget_instances_for_period(budgets, today=today).instances
            )
            self.refresh_budget_amounts(budgets)
        return created

    def pay(self, instance_id: str, data: PaymentIn) -> MonthlyInstance:
        instance = self.get(instance_id)
        mark_paid(instance, data.amount, data.payment_date)
        self.session.commit()
        logger.info(
            f"instance_paid: id={instance_id} amount={data.amount} "
            f"budgeted={instance.amount_budgeted}"
        )
        return instance

    def unpay(self, instance_id: str) -> MonthlyInstance:
        instance = self.get(instance_id)
        mark_unpaid(instance)
        self.session.commit()
        logger.info(f"instance_unpaid: id={instance_id}")
        return instance

    def update_notes(self, instance_id: str, data: NotesIn) -> MonthlyInstance:
        instance = self.get(instance_id)
        update_notes(instance, data.notes)
        self.session.commit()
        return instance

    def status(self, instance_id: str, *, today: Optional[date] = None) -> PaymentStatus:
        return payment_status(self.get(instance_id), today)

    def completion_percentage(self, parent_expense_id: str) -> int:
        return completion_percentage(self.for_expense(parent_expense_id), parent_expense_id)

    def total_paid(self, parent_expense_id: str) -> int:
        return sum_paid(self.for_expense(parent_expense_id), parent_expense_id)

    def installment_progress(self, expense_id: str) -> InstallmentProgress:
        expense = BaseExpenseService(self.session)._get_typed(expense_id, Installment)
        return installment_progress(expense, self.for_expense(expense_id))

    def variable_stats(
        self, expense_id: str, *, today: Optional[date] = None
    ) -> VariableExpenseStats:
        expense = BaseExpenseService(self.session)._get_typed(expense_id, VariableExpense)
        return variable_expense_stats(expense, self.for_expense(expense_id), today)


class ForecastService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()

    def period(
        self,
        budgets: Sequence[Budget] = (),
        start_date: Optional[date] = None,
        months_ahead: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> ForecastPeriod:
        today = today or local_today()
        return generate_forecast_period(
            BaseExpenseService(self.session).list(),
            budgets,
            InstanceService(self.session).all(),
            start_date or today,
            months_ahead or self.settings.forecast_months,
            today=today,
        )

    def monthly_forecasts(
        self,
        budgets: Sequence[Budget] = (),
        start_date: Optional[date] = None,
        months_ahead: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> list[MonthlyForecast]:
        today = today or local_today()
        expenses = BaseExpenseService(self.session).list()
        instances = InstanceService(self.session).all()
        trends = {
            e.id: variable_expense_stats(e, instances, today).trend_percentage
            for e in expenses
            if isinstance(e, VariableExpense)
        }
        return project_monthly_forecasts(
            expenses,
            budgets,
            start_date or today,
            months_ahead or self.settings.forecast_months,
            trends=trends,
            today=today,
        )

    def yearly(
        self,
        budgets: Sequence[Budget] = (),
        start_date: Optional[date] = None,
        months_ahead: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> dict[str, YearlyProjection]:
        return yearly_projections(
            self.period(budgets, start_date, months_ahead, today=today)
        )


_INSTALLMENT_FIELDS = ("total_amount", "total_installments", "start_date")
_VARIABLE_FIELDS = ("estimated_amount", "billing_day", "category", "service_url")
_COMMON_FIELDS = (
    "id",
    "description",
    "payment_method_id",
    "is_active",
    "status",
    "created_at",
    "updated_at",
)


def _expense_from_snapshot(snapshot: BaseExpenseSnapshot) -> BaseExpense:
    if snapshot.type == ExpenseType.installment:
        cls, fields = Installment, _COMMON_FIELDS + _INSTALLMENT_FIELDS
    elif snapshot.type == ExpenseType.variable_expense:
        cls, fields = VariableExpense, _COMMON_FIELDS + _VARIABLE_FIELDS
    else:
        raise ValueError(f"Unsupported expense type in snapshot: {snapshot.type.value}")
    values = {
        name: getattr(snapshot, name)
        for name in fields
        if getattr(snapshot, name) is not None
    }
    return cls(**values)


class StateService:
    """Whole-store snapshots in the persisted state shape."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()

    def export_snapshot(self) -> dict[str, object]:
        expenses = BaseExpenseService(self.session).list()
        instances = InstanceService(self.session).all()
        state = PersistedState(
            key=self.settings.state_key,
            version=self.settings.state_version,
            base_expenses=[BaseExpenseSnapshot.model_validate(e) for e in expenses],
            monthly_instances=[InstanceSnapshot.model_validate(i) for i in instances],
        )
        return state.model_dump(mode="json", by_alias=True)

    def restore_snapshot(self, payload: Optional[dict]) -> PersistedState:
        """Replace the store with a snapshot; no snapshot means an empty store."""
        if payload is None:
            state = PersistedState(
                key=self.settings.state_key, version=self.settings.state_version
            )
        else:
            state = PersistedState.model_validate(payload)
        if state.key != self.settings.state_key:
            raise ValueError(f"Snapshot key mismatch: {state.key}")
        if state.version > self.settings.state_version:
            raise ValueError(f"Unsupported snapshot version: {state.version}")

        self.session.execute(delete(MonthlyInstance))
        self.session.execute(delete(BaseExpense))
        for snapshot in state.base_expenses:
            self.session.add(_expense_from_snapshot(snapshot))
        for snapshot in state.monthly_instances:
            values = snapshot.model_dump(exclude_none=True)
            self.session.add(MonthlyInstance(**values))
        self.session.commit()
        logger.info(
            f"state_restored: base_expenses={len(state.base_expenses)} "
            f"instances={len(state.monthly_instances)}"
        )
        return state
