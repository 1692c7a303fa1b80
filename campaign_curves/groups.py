import datetime
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from campaign_curves.constants import MAX_PROJECTION_SOURCES, NO_COMPARISON
from campaign_curves.markers import PriceWindow, campaign_start
from campaign_curves.week_utility import to_campaign_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupInfo:
    """An event group: one category (usually a city) in one campaign year."""
    id: str
    category_id: str
    category_name: str
    year: int

    @property
    def label(self) -> str:
        return f"{self.category_name} {self.year}"


@dataclass(frozen=True)
class GroupData:
    """Everything fetched for one group: raw entry, donation and event rows plus its price windows."""
    group: GroupInfo
    entries: List[dict] = field(default_factory=list)
    donations: List[dict] = field(default_factory=list)
    event_dates: List[object] = field(default_factory=list)
    price_windows: List[PriceWindow] = field(default_factory=list)

    @property
    def event_date(self) -> Optional[datetime.datetime]:
        """The latest parseable date among the group's events."""
        dates = [moment for moment in (to_campaign_datetime(value) for value in self.event_dates)
                 if moment is not None]
        return max(dates) if dates else None

    @property
    def campaign_start(self) -> Optional[datetime.datetime]:
        return campaign_start(self.price_windows)


def select_primary_group(catalogue: Sequence[GroupInfo], group_id: Optional[str] = None) -> GroupInfo:
    """
    Pick the group being reported on. Without an id the first catalogue entry (the most
    recent year) is used.

    Raises:
        ValueError: If the catalogue is empty or the id is not in it.
    """
    if not catalogue:
        raise ValueError("No event groups found. Create groups and map events to them first.")
    if group_id is None:
        return catalogue[0]

    for group in catalogue:
        if group.id == str(group_id):
            return group
    raise ValueError(f"Event group '{group_id}' not found.")


def _related_groups(catalogue: Sequence[GroupInfo], selected: GroupInfo) -> List[GroupInfo]:
    return [group for group in catalogue if group.category_id == selected.category_id]


def select_comparison_groups(catalogue: Sequence[GroupInfo], selected: GroupInfo,
                             compare_id: Optional[str] = None,
                             compare_id_2: Optional[str] = None) -> Tuple[Optional[GroupInfo], Optional[GroupInfo]]:
    """
    Resolve the two comparison slots for a group.

    Only groups of the same category qualify. The first slot defaults to the previous
    year, and a requested group that is not a different group of the same category falls
    back to that default. The second slot defaults to the year before the first
    comparison; an explicitly requested second group that does not qualify leaves the
    slot empty. ``"none"`` switches a slot off.

    Args:
        catalogue (Sequence[GroupInfo]): All known groups.
        selected (GroupInfo): The primary group.
        compare_id (str, optional): Requested first comparison.
        compare_id_2 (str, optional): Requested second comparison.

    Returns:
        tuple: The first and second comparison groups, either of which may be None.
    """
    related = _related_groups(catalogue, selected)
    previous_year = next((group for group in related if group.year == selected.year - 1), None)

    if compare_id == NO_COMPARISON:
        first = None
    elif compare_id is not None:
        requested = next((group for group in related
                          if group.id == str(compare_id) and group.id != selected.id), None)
        if requested is None:
            logger.warning(f"Comparison group '{compare_id}' is not another {selected.category_name} group, "
                           f"using the previous year instead.")
        first = requested or previous_year
    else:
        first = previous_year

    if compare_id_2 == NO_COMPARISON:
        second = None
    elif compare_id_2 is not None:
        excluded = {selected.id, first.id if first else None}
        second = next((group for group in related
                       if group.id == str(compare_id_2) and group.id not in excluded), None)
    else:
        fallback_year = first.year - 1 if first else selected.year - 2
        second = next((group for group in related if group.year == fallback_year), None)

    return first, second


def select_projection_groups(catalogue: Sequence[GroupInfo], selected: GroupInfo,
                             limit: int = MAX_PROJECTION_SOURCES) -> List[GroupInfo]:
    """The most recent prior years of the same category, last year first."""
    prior = [group for group in _related_groups(catalogue, selected) if group.year < selected.year]
    prior.sort(key=lambda group: group.year, reverse=True)
    return prior[:limit]
