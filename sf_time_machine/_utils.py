import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger("sf-time-machine")

# Name of the backup run whose task is currently logging, if any
current_run_var: ContextVar[Optional[str]] = ContextVar("current_run", default=None)


class RunContextFilter(logging.Filter):
    """Only pass records emitted while the given run is the active context."""

    def __init__(self, run_name: str):
        super().__init__()
        self.run_name = run_name

    def filter(self, record: logging.LogRecord) -> bool:
        return current_run_var.get() == self.run_name


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. A trailing ``Z`` is accepted.

    Args:
        value: ISO-8601 string or datetime

    Returns:
        Timezone-aware datetime in UTC
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision and ``Z``."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def bytes_to_mb(num_bytes: int) -> float:
    return round(num_bytes / (1024 * 1024), 2)
