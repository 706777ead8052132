# File: const.py
"""Constants for the taskcadence recurrence library.

This file centralizes task data keys, defaults, limits, rule vocabulary and
log message helpers so every engine module reads the same values.
"""

import logging

# Logger
LOGGER = logging.getLogger(__package__)

# ------------------------------------------------------------------------------------------------
# Task Data Keys
# ------------------------------------------------------------------------------------------------
DATA_TASK_ANCHOR = "anchor"
DATA_TASK_CREATED_AT = "created_at"
DATA_TASK_DUE_DATE = "due_date"
DATA_TASK_FREQUENCY = "frequency"
DATA_TASK_ID = "id"
DATA_TASK_MODE = "mode"
DATA_TASK_RRULE = "rrule"
DATA_TASK_TIME = "time"
DATA_TASK_TIMEZONE = "timezone"

# Anchor fallbacks, in resolution order
TASK_ANCHOR_KEYS = (DATA_TASK_ANCHOR, DATA_TASK_DUE_DATE, DATA_TASK_CREATED_AT)

# ------------------------------------------------------------------------------------------------
# Scheduling Modes
# ------------------------------------------------------------------------------------------------
MODE_FIXED = "fixed"
MODE_WHEN_DONE = "when_done"

MODE_OPTIONS = (MODE_FIXED, MODE_WHEN_DONE)

# ------------------------------------------------------------------------------------------------
# Missed Occurrence Policies
# ------------------------------------------------------------------------------------------------
MISS_POLICY_CATCH_UP = "catch-up"
MISS_POLICY_COUNT_ONLY = "count-only"
MISS_POLICY_SKIP = "skip"

MISS_POLICY_OPTIONS = (MISS_POLICY_SKIP, MISS_POLICY_CATCH_UP, MISS_POLICY_COUNT_ONLY)

# ------------------------------------------------------------------------------------------------
# RRULE Vocabulary
# ------------------------------------------------------------------------------------------------
RRULE_PREFIX = "RRULE:"

FREQ_YEARLY = "YEARLY"
FREQ_MONTHLY = "MONTHLY"
FREQ_WEEKLY = "WEEKLY"
FREQ_DAILY = "DAILY"
FREQ_HOURLY = "HOURLY"
FREQ_MINUTELY = "MINUTELY"
FREQ_SECONDLY = "SECONDLY"

FREQUENCY_OPTIONS = (
    FREQ_YEARLY,
    FREQ_MONTHLY,
    FREQ_WEEKLY,
    FREQ_DAILY,
    FREQ_HOURLY,
    FREQ_MINUTELY,
    FREQ_SECONDLY,
)
SUB_DAILY_FREQUENCIES = frozenset({FREQ_HOURLY, FREQ_MINUTELY, FREQ_SECONDLY})

# Singular unit word per frequency ("every 3 days")
FREQUENCY_UNITS = {
    FREQ_YEARLY: "year",
    FREQ_MONTHLY: "month",
    FREQ_WEEKLY: "week",
    FREQ_DAILY: "day",
    FREQ_HOURLY: "hour",
    FREQ_MINUTELY: "minute",
    FREQ_SECONDLY: "second",
}

RRULE_PART_BYDAY = "BYDAY"
RRULE_PART_BYMONTH = "BYMONTH"
RRULE_PART_BYMONTHDAY = "BYMONTHDAY"
RRULE_PART_BYSETPOS = "BYSETPOS"
RRULE_PART_COUNT = "COUNT"
RRULE_PART_FREQ = "FREQ"
RRULE_PART_INTERVAL = "INTERVAL"
RRULE_PART_UNTIL = "UNTIL"
RRULE_PART_WKST = "WKST"

RRULE_PARTS = frozenset(
    {
        RRULE_PART_BYDAY,
        RRULE_PART_BYMONTH,
        RRULE_PART_BYMONTHDAY,
        RRULE_PART_BYSETPOS,
        RRULE_PART_COUNT,
        RRULE_PART_FREQ,
        RRULE_PART_INTERVAL,
        RRULE_PART_UNTIL,
        RRULE_PART_WKST,
    }
)

# Weekday tokens, Monday first (index == datetime.weekday())
WEEKDAY_TOKENS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
WEEKDAY_INDEXES_WORKWEEK = (0, 1, 2, 3, 4)
WEEKDAY_INDEXES_WEEKEND = (5, 6)

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

# Days per month in a non-leap year (index 0 = January)
DAYS_IN_MONTH_NON_LEAP = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

# Longest each month ever gets (February 29 in leap years)
DAYS_IN_MONTH_MAX = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

# Ordinal words used by the phrase dialect
ORDINAL_WORDS = {
    1: "first",
    2: "second",
    3: "third",
    4: "fourth",
    -1: "last",
}

# ------------------------------------------------------------------------------------------------
# Limits and Defaults
# ------------------------------------------------------------------------------------------------
DEFAULT_CACHE_SIZE = 1000
DEFAULT_MAX_MISSED = 100

# Hard ceiling on preview-style enumeration
MAX_PREVIEW_LIMIT = 500

# Validator thresholds
HIGH_COUNT_THRESHOLD = 1000

# Month-day values that do not exist in every month
SHORT_MONTH_DAYS = frozenset({29, 30, 31})
LAST_DAY_OF_MONTH = -1

# Cache key separator (never produced by percent-encoding)
CACHE_KEY_SEPARATOR = "::"

# ------------------------------------------------------------------------------------------------
# Explanation / Display Text
# ------------------------------------------------------------------------------------------------
DISPLAY_NO_FURTHER_OCCURRENCES = "No further occurrences (series ended or no valid occurrence)"
DISPLAY_SERIES_ENDED = "Series has ended (UNTIL date is before reference date)"
DISPLAY_NO_FUTURE_OCCURRENCES = "No future occurrences available"
DISPLAY_NO_RRULE = "Task has no RRULE configured"
