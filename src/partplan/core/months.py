"""Month arithmetic for monthly range partitions."""
from datetime import date, datetime
from typing import Union


def month_start(value: Union[date, datetime]) -> date:
    """Truncate a date (or datetime) to the first day of its month."""
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def add_months(value: date, months: int) -> date:
    """First day of the month `months` after the month of `value`."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def partition_name(value: date, prefix: str = "p") -> str:
    """Conventional monthly partition name, e.g. p_2024_06."""
    return f"{prefix}_{value.year:04d}_{value.month:02d}"


def parse_date(text: str) -> date:
    """
    Parse a partition key value.

    Accepts 'YYYY-MM' (first of the month), 'YYYY-MM-DD' and ISO
    timestamps, which are truncated to their date.

    Raises:
        ValueError: If the text is not a recognisable date
    """
    text = text.strip()
    if len(text) == 7:
        return datetime.strptime(text, "%Y-%m").date()
    if len(text) == 10:
        return datetime.strptime(text, "%Y-%m-%d").date()
    return datetime.fromisoformat(text).date()
