# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures for the campaign curve test suite.

Provides builders for records and ready-made cumulative series, and the path to the
sample CSV campaign in tests/sample_campaign used by the end-to-end report tests.
"""
import datetime
import os
from pathlib import Path

import pytest
import yaml

from campaign_curves.controller_utility import SafeLineLoader
from campaign_curves.series_builder import CumulativeSeries, RawRecord, WeeklyPoint

SAMPLE_DIR = Path(os.path.dirname(__file__)) / "sample_campaign"

# A Friday, the event week of the sample 2025 campaign
EVENT_FRIDAY = datetime.date(2025, 3, 14)


def registration(when, paid=True, created=None):
    return RawRecord(paid_at=when, created_at=created, is_paid=paid, amount=1.0)


def donation(when, amount):
    return RawRecord(paid_at=when, created_at=None, is_paid=True, amount=amount)


def series_from_weekly(values_by_index, event_friday=EVENT_FRIDAY):
    """Build a CumulativeSeries directly from {weeks_before_event: cumulative value}.

    Points are laid out in calendar order (largest index first) on the Fridays counted
    back from ``event_friday``.
    """
    points = tuple(
        WeeklyPoint(event_friday - datetime.timedelta(weeks=index), float(value), index)
        for index, value in sorted(values_by_index.items(), reverse=True)
    )
    return CumulativeSeries(
        points=points,
        total=points[-1].cumulative_value if points else 0.0,
        event_date=event_friday,
        anchor_date=event_friday,
        last_data_week_ending=points[-1].week_ending if points else None,
    )


def load_sample_config(name="config.yaml"):
    """Load a sample report config, pointing its CSV data source at the sample directory."""
    with open(SAMPLE_DIR / name) as config_file:
        config = yaml.load(config_file, SafeLineLoader)
    config["data_source"]["config"]["path"] = str(SAMPLE_DIR)
    return config


@pytest.fixture
def event_friday():
    return EVENT_FRIDAY


@pytest.fixture
def sample_config():
    return load_sample_config()
