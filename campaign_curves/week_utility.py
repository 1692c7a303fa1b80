import datetime
import logging
import math
import re
from typing import Any, Optional

import pandas as pd
from dateutil import parser as date_parser
from dateutil import relativedelta, tz

from campaign_curves.constants import (
    CAMPAIGN_TIMEZONE,
    DAYS_PER_WEEK,
    EVENT_WEEK_LABEL,
    FALSY_STRINGS,
    PROJECTION_DATE_ISO_FORMAT,
    TRUTHY_STRINGS,
    UPSTREAM_FALLBACK_DATE_FORMAT,
)

logger = logging.getLogger(__name__)

CAMPAIGN_TZ = tz.gettz(CAMPAIGN_TIMEZONE)

_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_DAY_PATTERN = re.compile(r"^\d{2}-\d{2}$")


def parse_campaign_date(value: str) -> Optional[datetime.datetime]:
    """
    Parse an upstream date string into an aware datetime in the campaign timezone.

    ISO-8601 strings carrying an offset are converted to campaign time; strings without
    one are read as campaign wall-clock time. A plain ``YYYY-MM-DD HH:MM:SS`` string is
    accepted as a fallback.

    Args:
        value (str): The raw string from the upstream API.

    Returns:
        datetime.datetime: The parsed datetime, or None if the string cannot be parsed.
    """
    trimmed = value.strip()
    if not trimmed:
        return None

    try:
        parsed = date_parser.isoparse(trimmed)
    except (ValueError, OverflowError):
        try:
            parsed = datetime.datetime.strptime(trimmed, UPSTREAM_FALLBACK_DATE_FORMAT)
        except ValueError:
            logger.debug(f"Discarding unparseable date value: {value!r}")
            return None

    return to_campaign_datetime(parsed)


def to_campaign_datetime(value: Any) -> Optional[datetime.datetime]:
    """
    Normalise any date-ish value (string, date, datetime, pandas Timestamp) to an aware
    datetime in the campaign timezone. Naive values are taken as campaign wall-clock time.
    Anything else, including NaN/NaT, gives None.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, str):
        return parse_campaign_date(value)
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=CAMPAIGN_TZ)
        return value.astimezone(CAMPAIGN_TZ)
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day, tzinfo=CAMPAIGN_TZ)
    return None


def week_ending(value: Any) -> Optional[datetime.date]:
    """
    Return the week-ending Friday for a date.

    The week ending is the Friday on or after the calendar day the value falls on in the
    campaign timezone. Calendar dates are used as they are, which makes the function
    idempotent: ``week_ending(week_ending(d)) == week_ending(d)``.

    Args:
        value: A date, datetime, pandas Timestamp or date string.

    Returns:
        datetime.date: The Friday that closes the week, or None if the value is not a date.
    """
    if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        day = value
    else:
        moment = to_campaign_datetime(value)
        if moment is None:
            return None
        day = moment.date()

    return day + relativedelta.relativedelta(weekday=relativedelta.FR)


def weeks_before_event(value: Any, event_week_ending: Any) -> Optional[int]:
    """
    Signed distance in whole weeks from the week a date falls in to the event week.

    Index 0 is the event week, positive values are weeks before the event and negative
    values weeks after it. The day difference is rounded rather than truncated so a
    sub-day drift never moves a date into the neighbouring week.

    Args:
        value: The date to index.
        event_week_ending: The event's week-ending Friday (any date is normalised to its Friday).

    Returns:
        int: The weeks-before-event index, or None if either date is missing.
    """
    friday = week_ending(value)
    anchor = week_ending(event_week_ending)
    if friday is None or anchor is None:
        return None
    return int(round((anchor - friday).days / DAYS_PER_WEEK))


def week_label(weeks_before: int) -> str:
    if weeks_before == 0:
        return EVENT_WEEK_LABEL
    if weeks_before < 0:
        return f"{abs(weeks_before)}w after"
    return f"{weeks_before}w"


def coerce_boolean(value: Any) -> Optional[bool]:
    """
    Interpret the loose boolean flags the upstream API emits (True, 1, "Y", "yes", ...).

    Returns None when the value cannot be read as a boolean.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return value == 1
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUTHY_STRINGS:
            return True
        if normalized in FALSY_STRINGS:
            return False
    return None


def to_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        as_number = float(value)
    except (TypeError, ValueError):
        return None
    return as_number if math.isfinite(as_number) else None


def parse_projection_date(value: Optional[str], target_year: int) -> Optional[datetime.date]:
    """
    Parse the projection "as of" date from the report settings.

    Accepts either an ISO date (``2025-08-15``) or a month and day (``08-15``). The year
    is always forced to the campaign year so the same setting can be reused across
    groups.

    Args:
        value (str): The raw setting value.
        target_year (int): The campaign year of the primary group.

    Returns:
        datetime.date: The projection date, or None if the value is empty or invalid.
    """
    if not value:
        return None
    trimmed = str(value).strip()

    if _ISO_DATE_PATTERN.match(trimmed):
        try:
            parsed = datetime.datetime.strptime(trimmed, PROJECTION_DATE_ISO_FORMAT).date()
            return parsed.replace(year=target_year)
        except ValueError:
            return None

    if _MONTH_DAY_PATTERN.match(trimmed):
        month, day = (int(part) for part in trimmed.split("-"))
        try:
            return datetime.date(target_year, month, day)
        except ValueError:
            return None

    return None


def campaign_today() -> datetime.date:
    return datetime.datetime.now(CAMPAIGN_TZ).date()


def format_display_date(value: Optional[datetime.date]) -> Optional[str]:
    """Render a date the way report headers show it, e.g. ``Sat 15 Mar 2025``."""
    if value is None:
        return None
    return f"{value:%a} {value.day} {value:%b %Y}"
