import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        budgets_api_url: Optional[str],
        budgets_api_token: Optional[str],
        budgets_api_timeout_secs: float,
        lookahead_months: int,
        forecast_months: int,
        state_key: str,
        state_version: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.budgets_api_url = budgets_api_url
        self.budgets_api_token = budgets_api_token
        self.budgets_api_timeout_secs = budgets_api_timeout_secs
        self.lookahead_months = lookahead_months
        self.forecast_months = forecast_months
        self.state_key = state_key
        self.state_version = state_version


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("PLANNER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "planner.db"
    database_url = os.getenv("PLANNER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("PLANNER_TIMEZONE", "America/Argentina/Buenos_Aires")
    budgets_api_url = os.getenv("PLANNER_BUDGETS_API_URL") or None
    budgets_api_token = os.getenv("PLANNER_BUDGETS_API_TOKEN") or None
    budgets_api_timeout_secs = float(
        os.getenv("PLANNER_BUDGETS_API_TIMEOUT_SECS", "10")
    )
    lookahead_months = int(os.getenv("PLANNER_LOOKAHEAD_MONTHS", "12"))
    forecast_months = int(os.getenv("PLANNER_FORECAST_MONTHS", "24"))
    state_key = os.getenv("PLANNER_STATE_KEY", "monthly-instance-store")
    state_version = int(os.getenv("PLANNER_STATE_VERSION", "1"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        budgets_api_url=budgets_api_url,
        budgets_api_token=budgets_api_token,
        budgets_api_timeout_secs=budgets_api_timeout_secs,
        lookahead_months=lookahead_months,
        forecast_months=forecast_months,
        state_key=state_key,
        state_version=state_version,
    )
