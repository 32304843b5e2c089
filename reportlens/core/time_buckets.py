"""Calendar bucketing of date ranges."""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

Granularity = Literal["day", "week", "month", "quarter", "year"]

GRANULARITIES: tuple[str, ...] = ("day", "week", "month", "quarter", "year")

DEFAULT_MAX_BUCKETS = 500


def parse_datetime(value: Any) -> datetime | None:
    """Parse a date-like value into a naive UTC datetime.

    Accepts ``datetime``, ``date`` and ISO-8601 strings (``2024-03-15``,
    ``2024-03-15T10:00:00Z``). Anything else, numbers included, is not a date.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if len(text) < 10 or not text[:4].isdigit() or text[4] != "-":
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_date(value: Any) -> date | None:
    """Normalize a date-like value to a calendar day (None if unparseable)."""
    parsed = parse_datetime(value)
    return parsed.date() if parsed is not None else None


def _require_date(value: Any, name: str) -> date:
    day = to_date(value)
    if day is None:
        raise ValueError(f"Invalid {name} date: {value!r}")
    return day


def _check_granularity(granularity: str) -> None:
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity '{granularity}'. Supported: {', '.join(GRANULARITIES)}")


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's end."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def step(start: date, granularity: Granularity, count: int) -> date:
    """Return the ``count``-th bucket boundary after ``start``."""
    if granularity == "day":
        return start + timedelta(days=count)
    if granularity == "week":
        return start + timedelta(days=7 * count)
    if granularity == "month":
        return add_months(start, count)
    if granularity == "quarter":
        return add_months(start, 3 * count)
    return add_months(start, 12 * count)


def range_by_granularity(start: Any, end: Any, granularity: Granularity) -> list[date]:
    """Generate bucket boundaries from ``start`` up to and including ``end``.

    Steps are always computed from ``start`` so month-based steps never skip
    a calendar month (Jan 31 -> Feb 29 -> Mar 31).

    Args:
        start: Range start (date, datetime or ISO string)
        end: Range end (inclusive)
        granularity: day, week, month, quarter or year

    Returns:
        Monotonically increasing list of dates (empty when start > end)
    """
    _check_granularity(granularity)
    start_day = _require_date(start, "start")
    end_day = _require_date(end, "end")

    dates = []
    index = 0
    current = start_day
    while current <= end_day:
        dates.append(current)
        index += 1
        current = step(start_day, granularity, index)
    return dates


def week_start(day: date) -> date:
    """Sunday that starts the week containing ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def bucket_label(value: Any, granularity: Granularity) -> str:
    """Format a date as the label of the bucket containing it.

    Examples:
        >>> bucket_label("2024-07-15", "quarter")
        '2024-Q3'
        >>> bucket_label("2024-03-15", "week")
        '2024-03-10'
    """
    _check_granularity(granularity)
    day = _require_date(value, "bucket")

    if granularity == "day":
        return day.isoformat()
    if granularity == "week":
        return week_start(day).isoformat()
    if granularity == "month":
        return f"{day.year}-{day.month:02d}"
    if granularity == "quarter":
        return f"{day.year}-Q{(day.month - 1) // 3 + 1}"
    return f"{day.year}"


@dataclass
class BucketValidation:
    """Advisory result of a granularity/range check."""

    valid: bool
    bucket_count: int
    warning: str | None = None


def validate_granularity_range(
    start: Any, end: Any, granularity: Granularity, max_buckets: int = DEFAULT_MAX_BUCKETS
) -> BucketValidation:
    """Check that a range does not produce too many buckets.

    Exceeding ``max_buckets`` is reported, never raised; the caller decides
    whether to render anyway.
    """
    bucket_count = len(range_by_granularity(start, end, granularity))

    if bucket_count > max_buckets:
        return BucketValidation(
            valid=False,
            bucket_count=bucket_count,
            warning=(
                f"Too many data points ({bucket_count}). Maximum {max_buckets} allowed. "
                "Try a coarser granularity."
            ),
        )

    return BucketValidation(valid=True, bucket_count=bucket_count)


def suggest_granularity(start: Any, end: Any) -> Granularity:
    """Suggest a granularity from the length of a range in days."""
    start_at = parse_datetime(start)
    end_at = parse_datetime(end)
    if start_at is None or end_at is None:
        raise ValueError(f"Invalid date range: {start!r} - {end!r}")

    diff_days = (end_at - start_at).total_seconds() / 86400

    if diff_days <= 31:
        return "day"
    if diff_days <= 90:
        return "week"
    if diff_days <= 730:
        return "month"
    if diff_days <= 1825:
        return "quarter"
    return "year"
