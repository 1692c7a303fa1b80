import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from campaign_curves.constants import (
    COMBINE_MODES,
    PROJECTION_RAMP_WEEKS,
    RECENT_TREND_WINDOW_WEEKS,
    REGISTRATION_RECENT_SCALE_BOUNDS,
    WEIGHTED_AVERAGE,
    WEIGHTED_MEDIAN,
)
from campaign_curves.series_builder import CumulativeSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeightedSource:
    series: CumulativeSeries
    weight: float

    def __post_init__(self):
        assert self.weight >= 0, f"Projection source weight must be non-negative, got {self.weight}"


@dataclass(frozen=True)
class ProjectionResult:
    """
    Forward projection of the primary curve.

    ``per_week_projection`` has an entry for every primary week when a projection exists
    (None after the pivot or where the baseline has no value) and is empty when it does
    not. ``projected_final_total`` is None whenever there is no basis to project from.
    """
    per_week_projection: Dict[int, Optional[float]] = field(default_factory=dict)
    projected_final_total: Optional[float] = None
    scale_at_pivot: float = 1.0
    scale_recent_trend: float = 1.0
    clamped_recent_trend: float = 1.0
    pivot_index: Optional[int] = None
    baseline_final_total: Optional[float] = None

    @property
    def available(self) -> bool:
        return self.projected_final_total is not None


def weighted_average(values_and_weights: Sequence[Tuple[float, float]]) -> Optional[float]:
    weighted_sum = 0.0
    weight_total = 0.0
    for value, weight in values_and_weights:
        weighted_sum += value * weight
        weight_total += weight
    if weight_total == 0:
        return None
    return weighted_sum / weight_total


def weighted_median(values: Sequence[float]) -> Optional[float]:
    # Weights select the sources but do not skew the median; an even count averages the
    # two middle values.
    if len(values) == 0:
        return None
    return float(np.median(sorted(values)))


class BaselineProjector:
    """
    Projects the current campaign forward using prior years as the shape template.

    Attributes:
        primary (CumulativeSeries): The current year's curve.
        sources (list): Prior-year WeightedSources with a positive weight.
        pivot_index (int): The weeks-before-event index treated as "today".
        combine_mode (str): ``weighted-average`` or ``weighted-median``.
        recent_scale_bounds (tuple): Clamp applied to the recent-trend scale.
        total_cap_multiplier (float): Optional cap on the projected total as a multiple of
            the baseline total.
        baseline (list): Baseline value per primary week, None where no source has data.
        baseline_final_total (float): Last non-null baseline value, the baseline's implied
            final total.
    """

    def __init__(self, primary: CumulativeSeries, sources: Sequence[WeightedSource],
                 pivot_index: Optional[int] = None, combine_mode: str = WEIGHTED_AVERAGE,
                 recent_scale_bounds: Tuple[float, float] = REGISTRATION_RECENT_SCALE_BOUNDS,
                 total_cap_multiplier: Optional[float] = None,
                 recent_window: int = RECENT_TREND_WINDOW_WEEKS,
                 ramp_weeks: int = PROJECTION_RAMP_WEEKS):
        if combine_mode not in COMBINE_MODES:
            raise ValueError(f"Unsupported combine mode: {combine_mode}. Supported modes are: {list(COMBINE_MODES)}")

        self.primary = primary
        self.sources = [source for source in sources if source.weight > 0]
        self.pivot_index = pivot_index
        self.combine_mode = combine_mode
        self.recent_scale_bounds = recent_scale_bounds
        self.total_cap_multiplier = total_cap_multiplier
        self.recent_window = recent_window
        self.ramp_weeks = ramp_weeks

        self.baseline = self.build_baseline()
        self.baseline_final_total = next((value for value in reversed(self.baseline) if value is not None), None)

    def build_baseline(self) -> List[Optional[float]]:
        """
        Combine the sources into one baseline value per primary week.

        A source missing a week is left out of that week's combination entirely rather
        than counted as zero.
        """
        lookups = [(source.series.lookup(), source.weight) for source in self.sources]
        baseline = []
        for index in self.primary.week_indices:
            present = [(lookup[index], weight) for lookup, weight in lookups if lookup.get(index) is not None]
            if not present:
                baseline.append(None)
            elif self.combine_mode == WEIGHTED_MEDIAN:
                baseline.append(weighted_median([value for value, _ in present]))
            else:
                baseline.append(weighted_average(present))
        return baseline

    def baseline_by_week(self) -> Dict[int, Optional[float]]:
        return dict(zip(self.primary.week_indices, self.baseline))

    def project(self) -> ProjectionResult:
        """
        Build the projection.

        1. Scale the baseline to the actual curve at the pivot (whole-campaign ratio).
        2. Scale it again over the trailing window ending at the pivot (recent momentum),
           clamped to ``recent_scale_bounds``.
        3. From the pivot towards the event, follow the baseline's shape from the actual
           value at the pivot, ramping in over ``ramp_weeks`` so there is no seam.
        4. Floor every week at the previous projected week and at the actual pivot value.

        Returns:
            ProjectionResult: The projection, or an empty result when there is no basis.
        """
        unavailable = ProjectionResult(pivot_index=self.pivot_index, baseline_final_total=self.baseline_final_total)
        if self.pivot_index is None or self.baseline_final_total is None:
            return unavailable

        pivot_position = self.primary.position_of(self.pivot_index)
        if pivot_position is None:
            logger.info(f"Pivot week {self.pivot_index} is outside the primary series, no projection")
            return unavailable

        actual_at_pivot = self.primary.points[pivot_position].cumulative_value
        baseline_at_pivot = self.baseline[pivot_position]
        if baseline_at_pivot is None or baseline_at_pivot <= 0:
            logger.info(f"No positive baseline at pivot week {self.pivot_index}, no projection")
            return unavailable

        scale_at_pivot = actual_at_pivot / baseline_at_pivot
        projected_total = self.baseline_final_total * scale_at_pivot
        if self.total_cap_multiplier is not None:
            projected_total = min(projected_total, self.baseline_final_total * self.total_cap_multiplier)

        scale_recent = self._recent_trend_scale(pivot_position, actual_at_pivot, baseline_at_pivot)
        clamped_recent = float(np.clip(scale_recent, *self.recent_scale_bounds))

        per_week: Dict[int, Optional[float]] = {}
        last_projection = None
        for point, baseline_value in zip(self.primary.points, self.baseline):
            index = point.weeks_before_event
            if index > self.pivot_index or baseline_value is None:
                per_week[index] = None
                continue

            anchor = actual_at_pivot if index == self.pivot_index else baseline_at_pivot * scale_at_pivot
            base_projection = (baseline_value - baseline_at_pivot) * clamped_recent + anchor

            ramp = self._ramp(index)
            blended = point.cumulative_value * (1 - ramp) + base_projection * ramp

            floor_candidates = [blended]
            if last_projection is not None:
                floor_candidates.append(last_projection)
            if index == self.pivot_index:
                floor_candidates.append(actual_at_pivot)
            last_projection = max(floor_candidates)
            per_week[index] = last_projection

        return ProjectionResult(
            per_week_projection=per_week,
            projected_final_total=projected_total,
            scale_at_pivot=scale_at_pivot,
            scale_recent_trend=scale_recent,
            clamped_recent_trend=clamped_recent,
            pivot_index=self.pivot_index,
            baseline_final_total=self.baseline_final_total,
        )

    def _recent_trend_scale(self, pivot_position: int, actual_at_pivot: float, baseline_at_pivot: float) -> float:
        start_position = max(pivot_position - self.recent_window, 0)
        baseline_start = self.baseline[start_position]
        if baseline_start is None:
            return 1.0

        baseline_delta = baseline_at_pivot - baseline_start
        if baseline_delta <= 0:
            return 1.0

        actual_delta = actual_at_pivot - self.primary.points[start_position].cumulative_value
        return actual_delta / baseline_delta

    def _ramp(self, index: int) -> float:
        # 0 at the pivot (all actual), 1 once ramp_weeks closer to the event (all projection)
        if index >= self.pivot_index - self.ramp_weeks:
            progress = (self.pivot_index - index) / self.ramp_weeks
        else:
            progress = 1.0
        return float(np.clip(progress, 0.0, 1.0))
