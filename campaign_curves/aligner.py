import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from campaign_curves.constants import MAX_COMPARISON_SERIES
from campaign_curves.series_builder import CumulativeSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlignedRow:
    """
    One week of the merged chart: the primary value and the value of every comparison
    slot at the same weeks-before-event index. ``None`` means the comparison has no point
    at this index, which is different from a cumulative value of zero.
    """
    week_index: int
    week_label: str
    primary: Optional[float]
    comparisons: Tuple[Optional[float], ...]


def apply_offset(series: Optional[CumulativeSeries], offset_days: int = 0) -> Optional[CumulativeSeries]:
    if series is None:
        return None
    return series.reindexed(offset_days)


def align_series(primary: CumulativeSeries,
                 comparisons: Sequence[Optional[CumulativeSeries]],
                 offset_days: int = 0) -> List[AlignedRow]:
    """
    Put comparison curves on the primary curve's weeks-before-event axis.

    Each comparison is first re-indexed with ``offset_days`` applied to its event anchor
    (for "what if last year's event had been N days later" views), then looked up by index
    for every primary week. Calendar dates play no part once the index is computed.

    Args:
        primary (CumulativeSeries): The curve being reported on. Its weeks define the rows.
        comparisons (Sequence[Optional[CumulativeSeries]]): Ordered comparison slots. A slot
            holding None is an inactive comparison and yields None on every row.
        offset_days (int): Day shift applied to every comparison before alignment.

    Returns:
        List[AlignedRow]: One row per primary week, in primary (calendar) order.
    """
    lookups: List[Optional[Dict[int, float]]] = []
    for comparison in comparisons:
        shifted = apply_offset(comparison, offset_days)
        lookups.append(shifted.lookup() if shifted is not None else None)

    rows = []
    for point in primary.points:
        index = point.weeks_before_event
        values = tuple(lookup.get(index) if lookup is not None else None for lookup in lookups)
        rows.append(AlignedRow(index, point.week_label, point.cumulative_value, values))

    logger.debug(f"Aligned {len(lookups)} comparison(s) over {len(rows)} primary weeks")
    return rows


def comparison_slots(*series: Optional[CumulativeSeries],
                     size: int = MAX_COMPARISON_SERIES) -> List[Optional[CumulativeSeries]]:
    """Pad or trim comparison series to the fixed number of chart slots."""
    slots = list(series[:size])
    slots.extend([None] * (size - len(slots)))
    return slots


def value_at_position(rows: Sequence[AlignedRow], position: int, slot: int) -> Optional[float]:
    if position < 0 or position >= len(rows):
        return None
    comparisons = rows[position].comparisons
    return comparisons[slot] if slot < len(comparisons) else None
