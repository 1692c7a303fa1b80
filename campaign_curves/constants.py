# SPDX-License-Identifier: Apache-2.0
"""
Named constants for the campaign curve engine.

These constants replace magic numbers throughout the codebase so the rules of
weekly bucketing, cross-year alignment and projection are self-documenting.
"""

# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------
CAMPAIGN_TIMEZONE = "Australia/Sydney"
DAYS_PER_WEEK = 7
SERIES_PADDING_WEEKS = 1  # one empty week either side of the data
PY_WEEKLY_OFFSET_DAYS = 364  # 52 weeks exactly, preserves weekday alignment

PROJECTION_DATE_ISO_FORMAT = "%Y-%m-%d"
PROJECTION_DATE_MONTH_DAY_FORMAT = "%m-%d"
UPSTREAM_FALLBACK_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# ---------------------------------------------------------------------------
# Week labels
# ---------------------------------------------------------------------------
EVENT_WEEK_LABEL = "Event"
DEFAULT_PRICE_WINDOW_LABEL = "Price change"
EVENT_MARKER_LABEL = "Event day"

# ---------------------------------------------------------------------------
# Registration window
# ---------------------------------------------------------------------------
MIN_WEEKLY_REGISTRATIONS_TO_START = 10

# ---------------------------------------------------------------------------
# Projection
#
# Projection sources are the most recent prior years of the same category,
# weighted in recency order (last year first).
# ---------------------------------------------------------------------------
MAX_COMPARISON_SERIES = 2
MAX_PROJECTION_SOURCES = 3
DEFAULT_PROJECTION_WEIGHTS = (0.6, 0.3, 0.1)
RECENT_TREND_WINDOW_WEEKS = 4
PROJECTION_RAMP_WEEKS = 3

WEIGHTED_AVERAGE = "weighted-average"
WEIGHTED_MEDIAN = "weighted-median"
COMBINE_MODES = (WEIGHTED_AVERAGE, WEIGHTED_MEDIAN)

# Multiplicative clamp on the recent-trend scale. Donations move in lumps, so
# their band is tighter.
REGISTRATION_RECENT_SCALE_BOUNDS = (0.6, 1.6)
DONATION_RECENT_SCALE_BOUNDS = (0.8, 1.2)

# Donation projections never exceed the baseline total by more than this.
DONATION_TOTAL_CAP_MULTIPLIER = 1.1

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
METRIC_REGISTRATIONS = "registrations"
METRIC_DONATIONS = "donations"

PAID_DONATION_STATUS = "paid"
MATCHED_DONATION_TYPE = "matched"

TRUTHY_STRINGS = ("y", "yes", "true", "1")
FALSY_STRINGS = ("n", "no", "false", "0")
PROJECTION_FLAG_STRINGS = ("1", "true", "on", "yes")

# ---------------------------------------------------------------------------
# Data loading
# ---------------------------------------------------------------------------
MAX_FETCH_WORKERS = 6
UNKNOWN_CATEGORY_NAME = "Event"

TABLE_COLUMNS = {
    "event_category": ["id", "display_name"],
    "event_group": ["id", "event_category_id", "year"],
    "event_group_event": ["event_group_id", "event_id", "include_in_reporting"],
    "events": ["event_id", "event_date"],
    "event_entries": ["event_id", "date_created", "date_paid", "is_paid"],
    "donations": ["event_id", "d_amount", "d_refund_amount", "d_status", "donation_type", "date_created",
                  "date_paid"],
    "event_group_discount": ["event_group_id", "label", "starts_at", "ends_at"],
}

# Setting value that switches a comparison slot off.
NO_COMPARISON = "none"
