import re
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional


_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def parse_month_key(key: str) -> tuple[int, int]:
    match = _MONTH_KEY_RE.match((key or "").strip())
    if not match:
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in key: {key!r}")
    return year, month


def month_start(key: str) -> date:
    year, month = parse_month_key(key)
    return date(year, month, 1)


def month_end(key: str) -> date:
    year, month = parse_month_key(key)
    return date(year, month, days_in_month(year, month))


def add_months(key: str, count: int) -> str:
    year, month = parse_month_key(key)
    month_index = (year * 12) + (month - 1) + count
    return f"{month_index // 12:04d}-{month_index % 12 + 1:02d}"


def months_between(start_key: str, end_key: str) -> int:
    """Signed number of whole months from ``start_key`` to ``end_key``."""
    start_year, start_month = parse_month_key(start_key)
    end_year, end_month = parse_month_key(end_key)
    return (end_year - start_year) * 12 + (end_month - start_month)


def clamp_day(key: str, day: int) -> date:
    """Date for ``day`` in the given month, snapped to the month's last day."""
    year, month = parse_month_key(key)
    if day < 1:
        raise ValueError(f"Invalid day of month: {day}")
    return date(year, month, min(day, days_in_month(year, month)))


@dataclass(frozen=True)
class MonthWindow:
    """Inclusive range of month keys."""

    start_month: str
    end_month: str

    def __post_init__(self) -> None:
        parse_month_key(self.start_month)
        parse_month_key(self.end_month)

    @property
    def is_empty(self) -> bool:
        return self.start_month > self.end_month

    def __contains__(self, key: str) -> bool:
        return self.start_month <= key <= self.end_month

    def __iter__(self) -> Iterator[str]:
        current = self.start_month
        while current <= self.end_month:
            yield current
            current = add_months(current, 1)

    def months(self) -> list[str]:
        return list(self)

    def intersect(self, other: "MonthWindow") -> Optional["MonthWindow"]:
        start = max(self.start_month, other.start_month)
        end = min(self.end_month, other.end_month)
        if start > end:
            return None
        return MonthWindow(start, end)

    def union(self, other: "MonthWindow") -> "MonthWindow":
        return MonthWindow(
            min(self.start_month, other.start_month),
            max(self.end_month, other.end_month),
        )


def window_around(
    today: date, *, months_back: int = 0, months_ahead: int = 0
) -> MonthWindow:
    current = month_key(today)
    return MonthWindow(
        add_months(current, -months_back), add_months(current, months_ahead)
    )


def resolve_window(
    start_month: Optional[str],
    end_month: Optional[str],
    *,
    today: Optional[date] = None,
    lookahead_months: int = 12,
) -> MonthWindow:
    today = today or date.today()
    if not start_month and not end_month:
        return window_around(today, months_ahead=lookahead_months)
    if not start_month or not end_month:
        raise ValueError("Custom window requires start and end months")
    return MonthWindow(start_month, end_month)
