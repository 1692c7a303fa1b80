# SPDX-License-Identifier: Apache-2.0
"""
Tests for group selection, report settings and metric assembly.

The scenario tests run the sample campaign in tests/sample_campaign end to end through
the CSV connector. Its Sydney groups hold:

    registrations by weeks before event   4   3   2   1   0  -1
    2025 (primary)                        0   2   5   6   6   6
    2024                                  0   1   3   5   6   6
    2023                                  0   2   2   4   4   4
"""
import datetime

import pytest

from campaign_curves.data_loader import DataLoader
from campaign_curves.groups import (
    GroupData,
    GroupInfo,
    select_comparison_groups,
    select_primary_group,
    select_projection_groups,
)
from campaign_curves.report import (
    DONATIONS,
    REGISTRATIONS,
    ReportPlan,
    ReportSettings,
    build_metric_curves,
    plan_report,
)
from conftest import load_sample_config

SYDNEY_2025 = GroupInfo("g2025", "c1", "Sydney", 2025)
MELBOURNE_2025 = GroupInfo("gmel", "c2", "Melbourne", 2025)
SYDNEY_2024 = GroupInfo("g2024", "c1", "Sydney", 2024)
SYDNEY_2023 = GroupInfo("g2023", "c1", "Sydney", 2023)
SYDNEY_2022 = GroupInfo("g2022", "c1", "Sydney", 2022)
SYDNEY_2021 = GroupInfo("g2021", "c1", "Sydney", 2021)
CATALOGUE = [SYDNEY_2025, MELBOURNE_2025, SYDNEY_2024, SYDNEY_2023, SYDNEY_2022, SYDNEY_2021]


def _scenario(**setup_overrides):
    cfg = load_sample_config()
    cfg["setup"].update(setup_overrides)
    settings = ReportSettings.from_config(cfg)
    loader = DataLoader(cfg)
    plan = plan_report(loader.load_catalogue(), settings)
    return plan, loader.fetch_groups(plan.groups_to_fetch), settings


def _column(curves, key):
    return [row[key] for row in curves.rows]


# ---------------------------------------------------------------------------
# Group selection
# ---------------------------------------------------------------------------

class TestGroupSelection:
    def test_primary_defaults_to_first_group(self):
        assert select_primary_group(CATALOGUE) == SYDNEY_2025
        assert select_primary_group(CATALOGUE, "g2023") == SYDNEY_2023

    def test_unknown_or_missing_primary(self):
        with pytest.raises(ValueError, match="not found"):
            select_primary_group(CATALOGUE, "nope")
        with pytest.raises(ValueError, match="No event groups"):
            select_primary_group([])

    def test_default_comparisons_are_previous_two_years(self):
        assert select_comparison_groups(CATALOGUE, SYDNEY_2025) == (SYDNEY_2024, SYDNEY_2023)

    def test_second_comparison_follows_the_first(self):
        assert select_comparison_groups(CATALOGUE, SYDNEY_2025, "g2022") == (SYDNEY_2022, SYDNEY_2021)

    def test_other_category_falls_back_to_previous_year(self):
        assert select_comparison_groups(CATALOGUE, SYDNEY_2025, "gmel")[0] == SYDNEY_2024
        assert select_comparison_groups(CATALOGUE, SYDNEY_2025, "g2025")[0] == SYDNEY_2024

    def test_explicit_second_comparison(self):
        assert select_comparison_groups(CATALOGUE, SYDNEY_2025, None, "g2022") == (SYDNEY_2024, SYDNEY_2022)
        # Repeating the first comparison leaves the slot empty
        assert select_comparison_groups(CATALOGUE, SYDNEY_2025, None, "g2024") == (SYDNEY_2024, None)

    def test_none_switches_a_slot_off(self):
        assert select_comparison_groups(CATALOGUE, SYDNEY_2025, "none", "none") == (None, None)

    def test_missing_previous_year(self):
        catalogue = [SYDNEY_2025, SYDNEY_2023]
        assert select_comparison_groups(catalogue, SYDNEY_2025) == (None, SYDNEY_2023)

    def test_projection_sources_are_three_most_recent_prior_years(self):
        assert select_projection_groups(CATALOGUE, SYDNEY_2025) == [SYDNEY_2024, SYDNEY_2023, SYDNEY_2022]
        assert select_projection_groups(CATALOGUE, SYDNEY_2021) == []


# ---------------------------------------------------------------------------
# ReportSettings
# ---------------------------------------------------------------------------

class TestReportSettings:
    def test_defaults(self):
        settings = ReportSettings.from_config({"setup": {"__line__": 1}})

        assert settings.group_id is None
        assert settings.offset_days == 0
        assert settings.projection_enabled is False
        assert settings.projection_source_weights == (0.6, 0.3, 0.1)
        assert settings.combine_mode_for("registrations") == "weighted-average"
        assert settings.combine_mode_for("donations") == "weighted-median"

    def test_values_are_normalised(self):
        settings = ReportSettings.from_config({"setup": {
            "group": 2025,
            "offset_days": 7,
            "projection": "Yes",
            "projection_date": datetime.date(2023, 8, 15),
            "projection_source_weights": [1, 0],
        }})

        assert settings.group_id == "2025"
        assert settings.offset_days == 7
        assert settings.projection_enabled is True
        assert settings.projection_date == "2023-08-15"
        assert settings.projection_source_weights == (1.0, 0.0)

    @pytest.mark.parametrize("flag, expected", [
        (True, True), ("on", True), ("1", True), (False, False), ("off", False), (None, False),
    ])
    def test_projection_flag(self, flag, expected):
        assert ReportSettings.from_config({"setup": {"projection": flag}}).projection_enabled is expected

    def test_projection_date_defaults_to_today_in_campaign_year(self):
        settings = ReportSettings(projection_enabled=True)
        assert settings.resolve_projection_date(2025, today=datetime.date(2026, 3, 1)) == datetime.date(2025, 3, 1)

    def test_no_projection_date_when_disabled(self):
        settings = ReportSettings(projection_date="03-01")
        assert settings.resolve_projection_date(2025) is None


# ---------------------------------------------------------------------------
# Sample campaign, without projection
# ---------------------------------------------------------------------------

class TestSampleCampaignCurves:
    def test_plan(self):
        plan, group_data, _ = _scenario()

        assert plan.primary.label == "Sydney 2025"
        assert [group.label for group in plan.comparisons] == ["Sydney 2024", "Sydney 2023"]
        assert plan.projection_sources == ()
        assert set(group_data) == {"g2025", "g2024", "g2023"}

    def test_registration_rows(self):
        plan, group_data, settings = _scenario()
        curves = build_metric_curves(REGISTRATIONS, plan, group_data, settings)

        assert _column(curves, "weekIndex") == [4, 3, 2, 1, 0, -1]
        assert _column(curves, "weekLabel") == ["4w", "3w", "2w", "1w", "Event", "1w after"]
        assert _column(curves, "primary") == [0, 2, 5, 6, 6, 6]
        assert _column(curves, "compare") == [0, 1, 3, 5, 6, 6]
        assert _column(curves, "compare2") == [0, 2, 2, 4, 4, 4]
        assert _column(curves, "projection") == [None] * 6

    def test_price_window_markers(self):
        plan, group_data, settings = _scenario()
        curves = build_metric_curves(REGISTRATIONS, plan, group_data, settings)

        markers = {row["weekIndex"]: (row["markersPrimary"], row["markersCompare"]) for row in curves.rows}
        assert markers[3] == (["Early bird"], ["Early bird"])
        assert markers[0] == (["Price change"], [])
        event = [marker for marker in curves.markers if marker.series == "event"]
        assert [(marker.week_index, marker.value) for marker in event] == [(0, 6)]

    def test_summary_uses_latest_data_week(self):
        plan, group_data, settings = _scenario()
        summary = build_metric_curves(REGISTRATIONS, plan, group_data, settings).summary

        assert summary["currentTotal"] == 6
        assert summary["currentCompare"] == 5
        assert summary["currentCompare2"] == 4
        assert summary["primaryTotal"] == 6
        assert summary["compareTotal"] == 6
        assert summary["compare2Total"] == 4
        assert summary["projectedTotal"] is None

    def test_donations(self):
        plan, group_data, settings = _scenario()
        curves = build_metric_curves(DONATIONS, plan, group_data, settings)

        assert _column(curves, "primary") == [0, 100, 100, 140, 140, 140]
        assert _column(curves, "compare") == [0, 80, 80, 120, 120, 120]
        # No donations in 2023: the slot is active but has no weeks
        assert _column(curves, "compare2") == [None] * 6

    def test_offset_shifts_comparison_and_its_markers(self):
        plan, group_data, settings = _scenario(offset_days=7)
        curves = build_metric_curves(REGISTRATIONS, plan, group_data, settings)

        assert _column(curves, "primary") == [0, 2, 5, 6, 6, 6]
        assert _column(curves, "compare") == [1, 3, 5, 6, 6, None]
        compare_markers = {row["weekIndex"]: row["markersCompare"] for row in curves.rows}
        assert compare_markers[4] == ["Early bird"]
        assert compare_markers[3] == []


# ---------------------------------------------------------------------------
# Sample campaign, projected from two weeks out
# ---------------------------------------------------------------------------

class TestSampleCampaignProjection:
    def test_registration_projection(self):
        plan, group_data, settings = _scenario(projection=True, projection_date="02-28")
        curves = build_metric_curves(REGISTRATIONS, plan, group_data, settings)

        assert [group.label for group in plan.projection_sources] == ["Sydney 2024", "Sydney 2023", "Sydney 2022"]
        assert curves.projection_date == datetime.date(2025, 2, 28)
        assert curves.projection.pivot_index == 2
        # Actuals after the pivot give way to the projection
        assert _column(curves, "primary") == [0, 2, 5, None, None, None]

        projection = _column(curves, "projection")
        assert projection[:2] == [None, None]
        assert projection[2] == pytest.approx(5)
        assert all(later >= earlier for earlier, later in zip(projection[2:], projection[3:]))

        # Baseline 0.6 * 2024 + 0.3 * 2023 + 0.1 * 2022: 2.4 at the pivot and 4.9 at the end
        assert curves.summary["projectedTotal"] == pytest.approx(4.9 * 5 / 2.4)
        assert curves.summary["currentTotal"] == 5
        assert curves.summary["currentCompare"] == 3
        assert curves.summary["currentCompare2"] == 2

    def test_donation_projection_is_capped(self):
        plan, group_data, settings = _scenario(projection=True, projection_date="2024-02-28")
        curves = build_metric_curves(DONATIONS, plan, group_data, settings)

        # 2024 alone has donations: 80 at the pivot, 120 final, so 150 capped at 1.1 * 120
        assert curves.summary["scaleAtPivot"] == pytest.approx(1.25)
        assert curves.summary["projectedTotal"] == pytest.approx(132)

    def test_projection_without_prior_years(self):
        plan, group_data, settings = _scenario(group="g2022", projection=True, projection_date="03-04")
        curves = build_metric_curves(REGISTRATIONS, plan, group_data, settings)

        assert plan.projection_sources == ()
        assert curves.summary["projectedTotal"] is None
        assert _column(curves, "projection") == [None] * len(curves.rows)
        assert None not in _column(curves, "primary")


# ---------------------------------------------------------------------------
# Event marker and repeatability
# ---------------------------------------------------------------------------

class TestEventMarkerAndRepeatability:
    def test_no_event_marker_without_an_event_date(self):
        entries = [{"event_id": "e1", "date_created": None, "date_paid": f"2025-02-{day:02d}T09:00:00",
                    "is_paid": "true"} for day in (5, 12, 19)]
        group_data = {"g2025": GroupData(SYDNEY_2025, entries=entries)}

        curves = build_metric_curves(REGISTRATIONS, ReportPlan(SYDNEY_2025), group_data, ReportSettings())

        assert _column(curves, "primary")[-1] == 3
        assert [marker for marker in curves.markers if marker.series == "event"] == []

    @pytest.mark.parametrize("profile", [REGISTRATIONS, DONATIONS])
    def test_identical_inputs_give_identical_curves(self, profile):
        today = datetime.date(2026, 3, 1)
        runs = []
        for _ in range(2):
            plan, group_data, settings = _scenario(offset_days=7, projection=True, projection_date="02-28")
            runs.append(build_metric_curves(profile, plan, group_data, settings, today))
        first, second = runs

        assert first.projection.available
        assert first.rows == second.rows
        assert first.summary == second.summary
        assert first.markers == second.markers
        assert first.projection == second.projection
