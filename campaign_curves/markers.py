import datetime
import logging
from dataclasses import dataclass
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional

from campaign_curves.constants import DEFAULT_PRICE_WINDOW_LABEL, EVENT_MARKER_LABEL
from campaign_curves.week_utility import to_campaign_datetime, week_ending, weeks_before_event

logger = logging.getLogger(__name__)

SERIES_PRIMARY = "primary"
SERIES_COMPARE = "compare"
SERIES_EVENT = "event"


@dataclass(frozen=True)
class PriceWindow:
    label: Optional[str]
    starts_at: Any = None
    ends_at: Any = None

    @classmethod
    def from_row(cls, row: Mapping) -> "PriceWindow":
        return cls(label=row.get("label"), starts_at=row.get("starts_at"), ends_at=row.get("ends_at"))

    @property
    def display_label(self) -> str:
        label = self.label.strip() if isinstance(self.label, str) else ""
        return label or DEFAULT_PRICE_WINDOW_LABEL


@dataclass(frozen=True)
class ChartMarker:
    week_index: int
    value: float
    label: str
    series: str


def map_markers(windows: Iterable[PriceWindow], event_date: Any, valid_week_indexes: Collection[int],
                offset_days: int = 0) -> Dict[int, List[str]]:
    """
    Place price-window boundaries on the weeks-before-event axis.

    Each window is marked in the week its price ends. The event anchor can be shifted by
    ``offset_days`` so comparison markers line up with an offset comparison curve.

    Args:
        windows (Iterable[PriceWindow]): The group's price windows.
        event_date: The group's event date. Without one nothing can be placed.
        valid_week_indexes (Collection[int]): Indices present on the chart; markers outside
            them are dropped.
        offset_days (int): Day shift applied to the event anchor.

    Returns:
        Dict[int, List[str]]: Labels grouped by week index, in window order.
    """
    markers_by_index: Dict[int, List[str]] = {}
    event_moment = to_campaign_datetime(event_date)
    if event_moment is None:
        return markers_by_index

    event_week_ending = week_ending(event_moment + datetime.timedelta(days=offset_days))
    for window in windows:
        week_index = weeks_before_event(window.ends_at, event_week_ending)
        if week_index is None or week_index not in valid_week_indexes:
            continue
        markers_by_index.setdefault(week_index, []).append(window.display_label)

    return markers_by_index


def campaign_start(windows: Iterable[PriceWindow]) -> Optional[datetime.datetime]:
    """The earliest price-window start, which is when the campaign opened."""
    starts = [moment for moment in (to_campaign_datetime(window.starts_at) for window in windows)
              if moment is not None]
    return min(starts) if starts else None


def event_marker(rows: Iterable[Mapping], event_date: Any) -> Optional[ChartMarker]:
    """
    Marker on the event week, placed on the primary value or, failing that, the projection.

    Without an event date index 0 is only the last week of the curve, so no marker is drawn.
    """
    if to_campaign_datetime(event_date) is None:
        return None
    for row in rows:
        if row["weekIndex"] != 0:
            continue
        value = row["primary"] if row["primary"] is not None else row.get("projection")
        if value is None:
            return None
        return ChartMarker(0, value, EVENT_MARKER_LABEL, SERIES_EVENT)
    return None


def flatten_markers(rows: Iterable[Mapping]) -> List[ChartMarker]:
    """
    Turn per-row marker labels into chart markers positioned on their curve.

    Comparison markers are only drawn on weeks where the comparison curve has a value.
    """
    markers = []
    for row in rows:
        for label in row["markersPrimary"]:
            value = row["primary"] if row["primary"] is not None else row.get("projection")
            markers.append(ChartMarker(row["weekIndex"], value if value is not None else 0, label, SERIES_PRIMARY))
        if row["compare"] is None:
            continue
        for label in row["markersCompare"]:
            markers.append(ChartMarker(row["weekIndex"], row["compare"], label, SERIES_COMPARE))
    return markers
