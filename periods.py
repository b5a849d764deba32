from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

RELATIVE_RANGES: dict[str, int] = {
    "7days": 7,
    "30days": 30,
    "90days": 90,
    "1year": 365,
}
DEFAULT_RANGE_DAYS = 30


@dataclass(frozen=True)
class Window:
    slug: str
    start: datetime
    end: datetime

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def local_now() -> datetime:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def resolve_window(
    start: Optional[datetime],
    end: Optional[datetime],
    *,
    now: Optional[datetime] = None,
) -> Window:
    if start is not None and end is not None:
        if start > end:
            raise ValueError("Start date must be before end date")
        return Window("custom", start, end)

    now = now or local_now()
    return Window("this_month", month_start(now), now)


def previous_window(window: Window) -> Window:
    last_end = window.start - timedelta(milliseconds=1)
    last_start = last_end - window.length
    return Window("previous", last_start, last_end)


def relative_start(
    range_slug: Optional[str], *, now: Optional[datetime] = None
) -> Optional[datetime]:
    if range_slug == "all":
        return None
    now = now or local_now()
    days = RELATIVE_RANGES.get(range_slug or "", DEFAULT_RANGE_DAYS)
    return now - timedelta(days=days)
