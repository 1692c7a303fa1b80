import datetime
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from campaign_curves.aligner import align_series, comparison_slots, value_at_position
from campaign_curves.constants import (
    DEFAULT_PROJECTION_WEIGHTS,
    DONATION_RECENT_SCALE_BOUNDS,
    DONATION_TOTAL_CAP_MULTIPLIER,
    METRIC_DONATIONS,
    METRIC_REGISTRATIONS,
    PROJECTION_FLAG_STRINGS,
    REGISTRATION_RECENT_SCALE_BOUNDS,
    WEIGHTED_AVERAGE,
    WEIGHTED_MEDIAN,
)
from campaign_curves.groups import (
    GroupData,
    GroupInfo,
    select_comparison_groups,
    select_primary_group,
    select_projection_groups,
)
from campaign_curves.markers import ChartMarker, event_marker, flatten_markers, map_markers
from campaign_curves.projector import BaselineProjector, ProjectionResult, WeightedSource
from campaign_curves.series_builder import (
    CumulativeSeries,
    RawRecord,
    build_cumulative_series,
    donation_records,
    registration_records,
    registration_start_date,
)
from campaign_curves.week_utility import campaign_today, parse_projection_date, weeks_before_event

logger = logging.getLogger(__name__)


def _optional_id(value) -> Optional[str]:
    return None if value is None or value == "" else str(value)


def _projection_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value if value is not None else "").strip().lower() in PROJECTION_FLAG_STRINGS


@dataclass(frozen=True)
class ReportSettings:
    """The report options read from the ``setup`` section of a report config."""
    group_id: Optional[str] = None
    compare_group_id: Optional[str] = None
    compare_group_id_2: Optional[str] = None
    offset_days: int = 0
    projection_enabled: bool = False
    projection_date: Optional[str] = None
    projection_source_weights: Tuple[float, ...] = DEFAULT_PROJECTION_WEIGHTS
    registrations_combine_mode: str = WEIGHTED_AVERAGE
    donations_combine_mode: str = WEIGHTED_MEDIAN

    @classmethod
    def from_config(cls, cfg: dict) -> "ReportSettings":
        setup = cfg.get("setup") or {}
        projection_date = setup.get("projection_date")
        weights = setup.get("projection_source_weights")
        return cls(
            group_id=_optional_id(setup.get("group")),
            compare_group_id=_optional_id(setup.get("compare_group")),
            compare_group_id_2=_optional_id(setup.get("compare_group_2")),
            offset_days=int(setup.get("offset_days") or 0),
            projection_enabled=_projection_flag(setup.get("projection", False)),
            # YAML reads an unquoted ISO date as a date object
            projection_date=str(projection_date) if projection_date is not None else None,
            projection_source_weights=tuple(float(weight) for weight in weights)
            if weights is not None else DEFAULT_PROJECTION_WEIGHTS,
            registrations_combine_mode=setup.get("registrations_combine_mode") or WEIGHTED_AVERAGE,
            donations_combine_mode=setup.get("donations_combine_mode") or WEIGHTED_MEDIAN,
        )

    def combine_mode_for(self, metric: str) -> str:
        if metric == METRIC_DONATIONS:
            return self.donations_combine_mode
        return self.registrations_combine_mode

    def resolve_projection_date(self, target_year: int, today: datetime.date = None) -> Optional[datetime.date]:
        """The projection "as of" date moved into the campaign year. Defaults to today."""
        if not self.projection_enabled:
            return None
        value = self.projection_date or (today or campaign_today()).isoformat()
        return parse_projection_date(value, target_year)


@dataclass(frozen=True)
class MetricProfile:
    """How one metric turns group data into a curve and how cautiously it is projected."""
    name: str
    title: str
    value_format: str
    records: Callable[[GroupData], List[RawRecord]]
    starts_at_registration_threshold: bool
    recent_scale_bounds: Tuple[float, float]
    total_cap_multiplier: Optional[float] = None

    def build_series(self, group_data: Optional[GroupData]) -> Optional[CumulativeSeries]:
        if group_data is None:
            return None
        records = self.records(group_data)
        window_start = registration_start_date(records) if self.starts_at_registration_threshold else None
        return build_cumulative_series(records, group_data.event_date, window_start)


REGISTRATIONS = MetricProfile(
    name=METRIC_REGISTRATIONS,
    title="Registrations",
    value_format="number",
    records=lambda group_data: registration_records(group_data.entries),
    starts_at_registration_threshold=True,
    recent_scale_bounds=REGISTRATION_RECENT_SCALE_BOUNDS,
)

DONATIONS = MetricProfile(
    name=METRIC_DONATIONS,
    title="Donations",
    value_format="currency",
    records=lambda group_data: donation_records(group_data.donations),
    starts_at_registration_threshold=False,
    recent_scale_bounds=DONATION_RECENT_SCALE_BOUNDS,
    total_cap_multiplier=DONATION_TOTAL_CAP_MULTIPLIER,
)

METRIC_PROFILES = (REGISTRATIONS, DONATIONS)


@dataclass(frozen=True)
class ReportPlan:
    """The groups one report needs: the primary, two comparison slots and the projection sources."""
    primary: GroupInfo
    comparisons: Tuple[Optional[GroupInfo], Optional[GroupInfo]] = (None, None)
    projection_sources: Tuple[GroupInfo, ...] = ()

    @property
    def groups_to_fetch(self) -> List[GroupInfo]:
        groups = [self.primary]
        groups.extend(group for group in self.comparisons if group is not None)
        groups.extend(self.projection_sources)
        return groups


def plan_report(catalogue: Sequence[GroupInfo], settings: ReportSettings) -> ReportPlan:
    primary = select_primary_group(catalogue, settings.group_id)
    comparisons = select_comparison_groups(catalogue, primary, settings.compare_group_id,
                                           settings.compare_group_id_2)
    projection_sources = tuple(select_projection_groups(catalogue, primary)) if settings.projection_enabled else ()
    logger.info(f"Reporting on {primary.label} against "
                f"{[group.label for group in comparisons if group is not None]}, "
                f"projecting from {[group.label for group in projection_sources]}")
    return ReportPlan(primary, comparisons, projection_sources)


@dataclass(frozen=True)
class MetricCurves:
    """
    One metric's chart: the merged rows, markers, projection and summary scalars.

    ``rows`` are dicts keyed the way the chart consumes them: ``weekIndex``,
    ``weekLabel``, ``primary``, ``compare``, ``compare2``, ``projection``,
    ``markersPrimary`` and ``markersCompare``.
    """
    profile: MetricProfile
    rows: List[dict] = field(default_factory=list)
    markers: List[ChartMarker] = field(default_factory=list)
    projection: ProjectionResult = field(default_factory=ProjectionResult)
    projection_date: Optional[datetime.date] = None
    summary: Dict[str, Optional[float]] = field(default_factory=dict)


def build_metric_curves(profile: MetricProfile, plan: ReportPlan, group_data: Dict[str, GroupData],
                        settings: ReportSettings, today: datetime.date = None) -> MetricCurves:
    """
    Run one metric through the engine: build the curves, align the comparisons, map the
    price-window markers and, when enabled, project the primary curve.

    Args:
        profile (MetricProfile): The metric to chart.
        plan (ReportPlan): The groups taking part.
        group_data (dict): Fetched data keyed by group id.
        settings (ReportSettings): Report options.
        today (datetime.date, optional): Default projection date, campaign-local today if omitted.

    Returns:
        MetricCurves: The assembled chart data.
    """
    primary_data = group_data.get(plan.primary.id) or GroupData(plan.primary)
    comparison_data = [group_data.get(group.id) if group is not None else None for group in plan.comparisons]

    primary_series = profile.build_series(primary_data)
    comparison_series = comparison_slots(*(profile.build_series(data) for data in comparison_data))
    aligned = align_series(primary_series, comparison_series, settings.offset_days)

    valid_indexes = set(primary_series.week_indices)
    primary_markers = map_markers(primary_data.price_windows, primary_data.event_date, valid_indexes)
    compare_markers = {}
    if comparison_data[0] is not None:
        compare_markers = map_markers(comparison_data[0].price_windows, comparison_data[0].event_date,
                                      valid_indexes, settings.offset_days)

    projection_date = settings.resolve_projection_date(plan.primary.year, today)
    pivot_index = None
    if projection_date is not None and primary_data.event_date is not None:
        pivot_index = weeks_before_event(projection_date, primary_data.event_date)

    projection = ProjectionResult(pivot_index=pivot_index)
    if settings.projection_enabled:
        sources = [
            WeightedSource(profile.build_series(group_data.get(group.id) or GroupData(group)), weight)
            for group, weight in zip(plan.projection_sources, settings.projection_source_weights)
        ]
        projection = BaselineProjector(
            primary_series, sources, pivot_index,
            combine_mode=settings.combine_mode_for(profile.name),
            recent_scale_bounds=profile.recent_scale_bounds,
            total_cap_multiplier=profile.total_cap_multiplier,
        ).project()

    rows = []
    for row in aligned:
        primary_value = row.primary
        projected_value = None
        if projection.available:
            projected_value = projection.per_week_projection.get(row.week_index)
            # Weeks after the pivot show the projection instead of actuals
            if row.week_index < pivot_index:
                primary_value = None
        rows.append({
            "weekIndex": row.week_index,
            "weekLabel": row.week_label,
            "primary": primary_value,
            "compare": row.comparisons[0],
            "compare2": row.comparisons[1],
            "projection": projected_value,
            "markersPrimary": primary_markers.get(row.week_index, []),
            "markersCompare": compare_markers.get(row.week_index, []),
        })

    markers = flatten_markers(rows)
    marker = event_marker(rows, primary_data.event_date)
    if marker is not None:
        markers.append(marker)

    summary = _summarise(primary_series, comparison_series, aligned, projection,
                         pivot_index if settings.projection_enabled else None)
    logger.info(f"Built {profile.name} curves for {plan.primary.label}: {len(rows)} weeks, "
                f"projection {'available' if projection.available else 'unavailable'}")
    return MetricCurves(profile, rows, markers, projection, projection_date, summary)


def _summarise(primary: CumulativeSeries, comparisons: Sequence[Optional[CumulativeSeries]], aligned,
               projection: ProjectionResult, pivot_index: Optional[int]) -> dict:
    """
    Headline numbers. "Current" is the pivot week when projecting from a week on the
    chart, otherwise the week of the latest record.
    """
    current_position = primary.position_of(pivot_index) if pivot_index is not None else None
    if current_position is not None:
        current_total = primary.points[current_position].cumulative_value
    else:
        current_total = primary.last_data_value()
        current_position = next((position for position, point in enumerate(primary.points)
                                 if point.week_ending == primary.last_data_week_ending), len(primary.points) - 1)

    return {
        "currentTotal": current_total,
        "projectedTotal": projection.projected_final_total,
        "primaryTotal": primary.total,
        "compareTotal": comparisons[0].total if comparisons[0] is not None else None,
        "compare2Total": comparisons[1].total if comparisons[1] is not None else None,
        "currentCompare": value_at_position(aligned, current_position, 0),
        "currentCompare2": value_at_position(aligned, current_position, 1),
        "baselineTotal": projection.baseline_final_total,
        "scaleAtPivot": projection.scale_at_pivot if projection.available else None,
        "scaleRecentTrend": projection.scale_recent_trend if projection.available else None,
        "pivotIndex": projection.pivot_index,
    }
