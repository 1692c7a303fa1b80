import datetime
import logging
import traceback
from json import JSONEncoder
from typing import Dict, List, Optional

import requests
import yaml
from yaml import SafeLoader
from yaml.scanner import ScannerError

from campaign_curves.groups import GroupData, GroupInfo
from campaign_curves.report import (
    METRIC_PROFILES,
    MetricCurves,
    ReportPlan,
    ReportSettings,
    build_metric_curves,
)
from campaign_curves.week_utility import format_display_date, week_ending

logger = logging.getLogger(__name__)


class CurveChart:
    def __init__(self):
        self.plotStyle = "cumulative_curve"
        self.metric = ""
        self.title = ""
        self.valueFormat = "number"
        self.primaryLabel = ""
        self.compareLabel = None
        self.compare2Label = None
        self.projectionLabel = None
        self.data = []
        self.markers = []
        self.summary = {}


class ComparisonHeader:
    def __init__(self):
        self.groupId = ""
        self.label = ""
        self.eventDate = None
        self.eventDateLabel = None
        self.alignedEventDateLabel = None


class EventReport:
    def __init__(self):
        self.charts: List[CurveChart] = list()
        self.title = ""
        self.groupId = ""
        self.eventDate = None
        self.eventDateLabel = None
        self.campaignStart = None
        self.comparisons: List[ComparisonHeader] = list()
        self.offsetDays = 0
        self.projectionEnabled = False
        self.projectionDate = None
        self.projectionDateLabel = None


class Encoder(JSONEncoder):
    def default(self, o):
        if isinstance(o, datetime.date):
            return o.isoformat()
        return o.__dict__


class SafeLineLoader(SafeLoader):
    def construct_mapping(self, node, deep=False):
        mapping = super(SafeLineLoader, self).construct_mapping(node, deep=deep)
        # Add 1 so line numbering starts at 1
        mapping['__line__'] = node.start_mark.line + 1
        return mapping


def _label_or_none(group: Optional[GroupInfo]) -> Optional[str]:
    return str(group.year) if group is not None else None


def build_curve_chart(curves: MetricCurves, plan: ReportPlan) -> CurveChart:
    chart = CurveChart()
    chart.metric = curves.profile.name
    chart.title = f"{plan.primary.label} {curves.profile.title}"
    chart.valueFormat = curves.profile.value_format
    chart.primaryLabel = str(plan.primary.year)
    chart.compareLabel = _label_or_none(plan.comparisons[0])
    chart.compare2Label = _label_or_none(plan.comparisons[1])
    chart.projectionLabel = "Projection" if curves.projection.available else None
    chart.data = curves.rows
    chart.markers = [
        {"weekIndex": marker.week_index, "value": marker.value, "label": marker.label, "series": marker.series}
        for marker in curves.markers
    ]
    chart.summary = curves.summary
    return chart


def _comparison_header(group: GroupInfo, data: Optional[GroupData], offset_days: int) -> ComparisonHeader:
    header = ComparisonHeader()
    header.groupId = group.id
    header.label = group.label
    event_date = data.event_date if data is not None else None
    if event_date is not None:
        header.eventDate = event_date.date()
        header.eventDateLabel = format_display_date(event_date.date())
        if offset_days:
            aligned = (event_date + datetime.timedelta(days=offset_days)).date()
            header.alignedEventDateLabel = format_display_date(aligned)
    return header


def get_event_report(plan: ReportPlan, group_data: Dict[str, GroupData], settings: ReportSettings,
                     today: datetime.date = None) -> EventReport:
    """
    Assemble the report for a planned set of groups: one cumulative chart per metric and
    the header details the dashboard shows above them.

    Args:
        plan (ReportPlan): The primary, comparison and projection-source groups.
        group_data (dict): Fetched data keyed by group id.
        settings (ReportSettings): Report options.
        today (datetime.date, optional): Default projection date.

    Returns:
        EventReport: The report, ready to serialize with ``Encoder``.
    """
    report = EventReport()
    report.title = plan.primary.label
    report.groupId = plan.primary.id
    report.offsetDays = settings.offset_days
    report.projectionEnabled = settings.projection_enabled

    primary_data = group_data.get(plan.primary.id)
    if primary_data is not None and primary_data.event_date is not None:
        report.eventDate = primary_data.event_date.date()
        report.eventDateLabel = format_display_date(report.eventDate)
    if primary_data is not None and primary_data.campaign_start is not None:
        report.campaignStart = primary_data.campaign_start.date()

    report.comparisons = [_comparison_header(group, group_data.get(group.id), settings.offset_days)
                          for group in plan.comparisons if group is not None]

    for profile in METRIC_PROFILES:
        curves = build_metric_curves(profile, plan, group_data, settings, today)
        if curves.projection_date is not None:
            report.projectionDate = curves.projection_date
            report.projectionDateLabel = f"Week ending {format_display_date(week_ending(curves.projection_date))}"
        report.charts.append(build_curve_chart(curves, plan))

    logger.info(f"Assembled report for {plan.primary.label} with {len(report.charts)} charts")
    return report


def load_yaml_from_stream(config_file):
    try:
        # Load the YAML configuration from the open file
        return yaml.load(config_file, SafeLineLoader)
    except (ScannerError, yaml.YAMLError) as e:
        logger.error(e, exc_info=True)
        error_message = traceback.format_exc().split('.yaml')[-1].replace(',', '').replace('"', '')
        raise ValueError(f"Could not build the report due to incorrect yaml, caused due to error in {error_message}")


def load_yaml_from_url(url: str):
    # Retrieve the file content from the URL
    response = requests.get(url, allow_redirects=True)
    response.raise_for_status()
    content = response.content.decode("utf-8")
    try:
        return yaml.load(content, SafeLineLoader)
    except (ScannerError, yaml.YAMLError) as e:
        logger.error(e, exc_info=True)
        error_message = traceback.format_exc().split('.yaml')[-1].replace(',', '').replace('"', '')
        raise ValueError(f"Could not build the report due to incorrect yaml, caused due to error in {error_message}")
