import datetime
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import pandas as pd

from campaign_curves.constants import (
    DAYS_PER_WEEK,
    MATCHED_DONATION_TYPE,
    MIN_WEEKLY_REGISTRATIONS_TO_START,
    PAID_DONATION_STATUS,
    SERIES_PADDING_WEEKS,
)
from campaign_curves.week_utility import (
    coerce_boolean,
    to_campaign_datetime,
    to_number,
    week_ending,
    week_label,
    weeks_before_event,
)

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or value is pd.NaT or (isinstance(value, float) and value != value)


@dataclass(frozen=True)
class RawRecord:
    """
    One paid registration or donation as seen by the curve engine.

    ``amount`` is 1 for a registration and the net amount (gross minus refund) for a
    donation. The record date is ``paid_at`` when the upstream row has one, otherwise
    ``created_at``.
    """
    paid_at: Any = None
    created_at: Any = None
    is_paid: bool = True
    amount: Any = 1.0

    def resolved_date(self) -> Optional[datetime.datetime]:
        raw_date = self.created_at if _is_missing(self.paid_at) else self.paid_at
        if _is_missing(raw_date):
            return None
        return to_campaign_datetime(raw_date)


@dataclass(frozen=True)
class WeeklyPoint:
    week_ending: datetime.date
    cumulative_value: float
    weeks_before_event: int

    @property
    def week_label(self) -> str:
        return week_label(self.weeks_before_event)


@dataclass(frozen=True)
class CumulativeSeries:
    """
    An ordered cumulative weekly curve for one campaign group and metric.

    Points are in calendar order, one per week-ending Friday, so ``weeks_before_event``
    strictly decreases along the series. ``anchor_date`` is the calendar day the index is
    measured against: the event date when one is known, otherwise the last Friday of the
    series.
    """
    points: Tuple[WeeklyPoint, ...] = ()
    total: float = 0.0
    event_date: Optional[datetime.date] = None
    anchor_date: Optional[datetime.date] = None
    last_data_week_ending: Optional[datetime.date] = None
    _lookup: Dict[int, float] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_lookup", {point.weeks_before_event: point.cumulative_value
                                             for point in self.points})

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    @property
    def first_friday(self) -> Optional[datetime.date]:
        return self.points[0].week_ending if self.points else None

    @property
    def last_friday(self) -> Optional[datetime.date]:
        return self.points[-1].week_ending if self.points else None

    @property
    def week_indices(self) -> Tuple[int, ...]:
        return tuple(point.weeks_before_event for point in self.points)

    def lookup(self) -> Dict[int, float]:
        return dict(self._lookup)

    def value_at(self, week_index: int) -> Optional[float]:
        return self._lookup.get(week_index)

    def position_of(self, week_index: int) -> Optional[int]:
        for position, point in enumerate(self.points):
            if point.weeks_before_event == week_index:
                return position
        return None

    def last_data_value(self) -> float:
        """Cumulative value in the week holding the latest record, or the series total."""
        if self.last_data_week_ending is not None:
            for point in self.points:
                if point.week_ending == self.last_data_week_ending:
                    return point.cumulative_value
        return self.total

    def reindexed(self, offset_days: int) -> "CumulativeSeries":
        """
        Return a copy of the series with ``weeks_before_event`` recomputed as if the
        anchor (event) date were ``offset_days`` later. Week-ending dates and values are
        unchanged.
        """
        if offset_days == 0 or self.anchor_date is None:
            return self

        shifted_anchor = self.anchor_date + datetime.timedelta(days=offset_days)
        anchor_week_ending = week_ending(shifted_anchor)
        points = tuple(
            WeeklyPoint(point.week_ending, point.cumulative_value,
                        weeks_before_event(point.week_ending, anchor_week_ending))
            for point in self.points
        )
        shifted_event = self.event_date + datetime.timedelta(days=offset_days) if self.event_date else None
        return replace(self, points=points, event_date=shifted_event, anchor_date=shifted_anchor)


def _dated_amounts(records: Iterable[RawRecord]) -> Iterator[Tuple[datetime.datetime, float]]:
    # Rows with an unparseable date or a non-finite or non-positive amount are skipped, not reported.
    for record in records:
        if not record.is_paid:
            continue
        amount = to_number(record.amount)
        if amount is None or amount <= 0:
            continue
        moment = record.resolved_date()
        if moment is None:
            continue
        yield moment, amount


def build_cumulative_series(records: Iterable[RawRecord], event_date: Any = None,
                            window_start: Any = None) -> CumulativeSeries:
    """
    Build the cumulative weekly curve for a set of records.

    The window runs from one week before the first record (or ``window_start`` when that
    is later) to one week after the last record (or one week after the event when that is
    later). Every Friday in the window gets a point, including weeks with no records, and
    amounts are accumulated in calendar order. Records whose week falls outside the
    window are not counted.

    Args:
        records (Iterable[RawRecord]): Registrations or donations for one campaign group.
        event_date: The event day, if known. Its week is index 0.
        window_start: Optional earliest date to include.

    Returns:
        CumulativeSeries: The curve; empty when no record qualifies or the window is inverted.
    """
    dated = list(_dated_amounts(records))
    if not dated:
        return CumulativeSeries()

    moments = [moment for moment, _ in dated]
    padding = datetime.timedelta(weeks=SERIES_PADDING_WEEKS)
    min_date = min(moments)
    max_date = max(moments)
    padded_start = min_date - padding
    padded_end = max_date + padding

    start_date = padded_start
    window_start_moment = to_campaign_datetime(window_start)
    if window_start_moment is not None and window_start_moment > padded_start:
        start_date = window_start_moment

    end_date = padded_end
    event_moment = to_campaign_datetime(event_date)
    if event_moment is not None and event_moment + padding > padded_end:
        end_date = event_moment + padding

    if end_date < start_date:
        logger.debug(f"Window ends ({end_date}) before it starts ({start_date}), returning an empty series")
        return CumulativeSeries()

    first_friday = week_ending(start_date)
    last_friday = week_ending(end_date)
    number_of_weeks = (last_friday - first_friday).days // DAYS_PER_WEEK + 1
    fridays = [first_friday + datetime.timedelta(weeks=i) for i in range(number_of_weeks)]

    # Sum per week-ending Friday, then lay the sums over the full run of Fridays so that
    # empty weeks contribute zero and weeks outside the window drop out.
    weekly_amounts = (
        pd.DataFrame({"WeekEnding": [week_ending(moment) for moment in moments],
                      "Amount": [amount for _, amount in dated]})
        .groupby("WeekEnding")["Amount"]
        .sum()
        .reindex(fridays, fill_value=0.0)
    )
    cumulative_values = weekly_amounts.cumsum().tolist()

    event_day = event_moment.date() if event_moment is not None else None
    anchor_date = event_day if event_day is not None else last_friday
    event_week_ending = week_ending(anchor_date)

    points = tuple(
        WeeklyPoint(friday, float(value), weeks_before_event(friday, event_week_ending))
        for friday, value in zip(fridays, cumulative_values)
    )

    last_data_friday = week_ending(max_date)
    return CumulativeSeries(
        points=points,
        total=points[-1].cumulative_value,
        event_date=event_day,
        anchor_date=anchor_date,
        last_data_week_ending=last_data_friday if first_friday <= last_data_friday <= last_friday else None,
    )


def registration_start_date(records: Iterable[RawRecord],
                            min_registrations: int = MIN_WEEKLY_REGISTRATIONS_TO_START) -> Optional[datetime.date]:
    """
    Find where a registration curve should start.

    Registrations trickle in long before a campaign launches. The curve starts one week
    before the first week that reaches ``min_registrations`` paid registrations.

    Returns:
        datetime.date: The start date, or None when no week reaches the threshold.
    """
    weeks = pd.Series([week_ending(moment) for moment, _ in _dated_amounts(records)], dtype=object)
    if weeks.empty:
        return None

    counts = weeks.value_counts()
    qualifying_weeks = sorted(counts[counts >= min_registrations].index)
    if not qualifying_weeks:
        return None

    return qualifying_weeks[0] - datetime.timedelta(weeks=1)


def registration_records(rows: Iterable[Mapping]) -> List[RawRecord]:
    """Convert upstream event-entry rows (date_paid, date_created, is_paid) to records."""
    return [
        RawRecord(
            paid_at=row.get("date_paid"),
            created_at=row.get("date_created"),
            is_paid=coerce_boolean(row.get("is_paid")) is True,
            amount=1.0,
        )
        for row in rows
    ]


def _net_donation_amount(row: Mapping) -> Optional[float]:
    amounts = []
    for column in ("d_amount", "d_refund_amount"):
        raw_value = row.get(column)
        if _is_missing(raw_value):
            amounts.append(0.0)
            continue
        value = to_number(raw_value)
        if value is None:
            return None
        amounts.append(value)
    return amounts[0] - amounts[1]


def donation_records(rows: Iterable[Mapping]) -> List[RawRecord]:
    """
    Convert upstream donation rows to records carrying the net donated amount.

    Only paid donations count, matched donations (an employer matching a gift) are
    excluded so money is not counted twice. Donations refunded in full, or by more than
    was given, are dropped.
    """
    records = []
    for row in rows:
        if row.get("d_status") != PAID_DONATION_STATUS:
            continue
        if row.get("donation_type") == MATCHED_DONATION_TYPE:
            continue
        amount = _net_donation_amount(row)
        if amount is None or amount <= 0:
            continue
        records.append(RawRecord(paid_at=row.get("date_paid"), created_at=row.get("date_created"),
                                 is_paid=True, amount=amount))
    return records
