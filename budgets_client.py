from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from pydantic import ValidationError

from config import get_settings
from models import round_half_up
from schemas import Budget, PaymentMethod


logger = logging.getLogger(__name__)


class BudgetsClientError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def is_auth_error(self) -> bool:
        return self.status == 401


def _budget_from_payload(item: dict[str, Any]) -> Budget:
    # The backend has served both snake_case and camelCase shapes.
    total = item.get("total_amount") or item.get("total") or 0
    spent = item.get("spent_amount") or item.get("spent") or 0
    return Budget(
        id=str(item["id"]),
        name=str(item["name"]),
        total=round_half_up(total),
        spent=round_half_up(spent),
        is_special=bool(item.get("is_special") or item.get("isSpecial") or False),
    )


class BudgetsClient:
    """Read-only client for the budgeting backend."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.budgets_api_url or "").rstrip("/")
        self.token = token or settings.budgets_api_token
        self.timeout = timeout or settings.budgets_api_timeout_secs

    def _get_json(self, path: str) -> Any:
        if not self.base_url:
            raise BudgetsClientError("Budgets API URL is not configured")
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        req = Request(f"{self.base_url}{path}", headers=headers)
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            raise BudgetsClientError(
                f"Budgets API returned {exc.code} for {path}", status=exc.code
            ) from exc
        except (URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise BudgetsClientError(f"Failed to fetch {path} from budgets API") from exc

    def fetch_budgets(self) -> list[Budget]:
        payload = self._get_json("/budgets")
        if not isinstance(payload, list):
            raise BudgetsClientError("Unexpected budgets response")
        try:
            return [_budget_from_payload(item) for item in payload]
        except (KeyError, TypeError, ValidationError) as exc:
            raise BudgetsClientError("Unexpected budgets response") from exc

    def fetch_payment_methods(self) -> list[PaymentMethod]:
        payload = self._get_json("/payment-methods")
        if not isinstance(payload, list):
            raise BudgetsClientError("Unexpected payment methods response")
        try:
            return [PaymentMethod.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise BudgetsClientError("Unexpected payment methods response") from exc


@dataclass
class BudgetFeed:
    """Last known budgets and payment methods.

    A failed refresh records the error and keeps the previous data, so
    instances already generated from it are never touched.
    """

    client: BudgetsClient
    budgets: list[Budget] = field(default_factory=list)
    payment_methods: list[PaymentMethod] = field(default_factory=list)
    error: Optional[str] = None
    fetched_at: Optional[datetime] = None

    def refresh(self) -> bool:
        try:
            budgets = self.client.fetch_budgets()
            payment_methods = self.client.fetch_payment_methods()
        except BudgetsClientError as exc:
            self.error = str(exc)
            logger.warning(f"budgets_fetch_failed: status={exc.status} error={exc}")
            return False
        self.budgets = budgets
        self.payment_methods = payment_methods
        self.error = None
        self.fetched_at = datetime.now(timezone.utc)
        logger.info(
            f"budgets_fetched: budgets={len(budgets)} "
            f"payment_methods={len(payment_methods)}"
        )
        return True

