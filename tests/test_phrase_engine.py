"""Unit tests for phrase_engine.py phrase <-> rule translation.

Tests:
- Phrase grammar (intervals, weekday lists, irregulars, ordinal weekdays)
- Fail-closed parsing with reasons
- describe_rule / stringify_rule inverse and fallback
- Round-trip: parse -> stringify -> parse yields the same rule
- Legacy structured rules and 29-31 clamping
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from taskcadence import const
from taskcadence.engines.phrase_engine import (
    RawRule,
    StructuredRule,
    describe_rule,
    parse_phrase,
    stringify_rule,
    to_expression,
)
from taskcadence.engines.rule_engine import MalformedRule
from taskcadence.engines.rule_validator import RuleValidator

ANCHOR = datetime(2024, 1, 1, 9, 0, 0, tzinfo=ZoneInfo("UTC"))

ACCEPTED_PHRASES = [
    "every day",
    "every 3 days",
    "every week",
    "every 2 weeks",
    "every week on monday and friday",
    "every 2 weeks on mon, wed and fri",
    "every month",
    "every 6 months",
    "every month on the 15th",
    "every month on the 31st",
    "every month on the last day",
    "every 2 months on the second tuesday",
    "every year",
    "every year on january 15th",
    "every 2 years on the last day of february",
    "every month on the 1st and 15th",
    "every month on the 1st, 15th and last day",
    "every 15th",
    "every weekday",
    "every weekends",
    "every monday",
    "every tuesdays and thursdays",
    "every 3rd friday",
    "every last sunday of the month",
    "every second Friday of the month when done",
    "Every  2   weeks on Saturday when due",
]


class TestParsePhrase:
    """Test phrase -> rule translation."""

    @pytest.mark.parametrize(
        ("phrase", "rule"),
        [
            ("every day", "FREQ=DAILY"),
            ("every 3 days", "FREQ=DAILY;INTERVAL=3"),
            ("every 2 weeks on monday and friday", "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,FR"),
            ("every friday, monday", "FREQ=WEEKLY;BYDAY=MO,FR"),
            ("every weekday", "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR"),
            ("every weekends", "FREQ=WEEKLY;BYDAY=SA,SU"),
            ("every month on the 15th", "FREQ=MONTHLY;BYMONTHDAY=15"),
            ("every month on the last day", "FREQ=MONTHLY;BYMONTHDAY=-1"),
            ("every year", "FREQ=YEARLY"),
            ("every year on january 15th", "FREQ=YEARLY;BYMONTH=1;BYMONTHDAY=15"),
            ("every year on Dec 25", "FREQ=YEARLY;BYMONTH=12;BYMONTHDAY=25"),
            ("every year on the 4th of july", "FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=4"),
            ("every year on the last day of february", "FREQ=YEARLY;BYMONTH=2;BYMONTHDAY=-1"),
            ("every 2 years on march 30th", "FREQ=YEARLY;INTERVAL=2;BYMONTH=3;BYMONTHDAY=-1"),
            ("every month on the 1st and 15th", "FREQ=MONTHLY;BYMONTHDAY=1,15"),
            ("every month on the 15th and the 1st", "FREQ=MONTHLY;BYMONTHDAY=1,15"),
            (
                "every month on the last day, 1st and 15th",
                "FREQ=MONTHLY;BYMONTHDAY=1,15,-1",
            ),
            ("every month on the 30th and 31st", "FREQ=MONTHLY;BYMONTHDAY=-1"),
            ("every 15th", "FREQ=MONTHLY;BYMONTHDAY=15"),
            ("every 1st and 15th of the month", "FREQ=MONTHLY;BYMONTHDAY=1,15"),
            ("every last friday of the month", "FREQ=MONTHLY;BYDAY=FR;BYSETPOS=-1"),
            (
                "every 2 months on the first monday",
                "FREQ=MONTHLY;INTERVAL=2;BYDAY=MO;BYSETPOS=1",
            ),
        ],
    )
    def test_phrases(self, phrase: str, rule: str) -> None:
        """Recognized phrases map to canonical rules."""
        result = parse_phrase(phrase)

        assert result.is_valid is True
        assert result.error is None
        assert result.rule == rule

    def test_third_friday(self) -> None:
        """"every 3rd Friday" is the third Friday of each month."""
        result = parse_phrase("every 3rd Friday")

        assert result.rule == "FREQ=MONTHLY;BYDAY=FR;BYSETPOS=3"

    @pytest.mark.parametrize("day", [29, 30, 31])
    def test_late_month_days_clamp_to_last_day(self, day: int) -> None:
        """Days 29-31 become the last day of the month."""
        suffix = {29: "th", 30: "th", 31: "st"}[day]

        result = parse_phrase(f"every month on the {day}{suffix}")

        assert result.rule == "FREQ=MONTHLY;BYMONTHDAY=-1"

    def test_when_done_suffix(self) -> None:
        """"when done" selects completion-based scheduling."""
        result = parse_phrase("every second Friday of the month when done")

        assert result.rule == "FREQ=MONTHLY;BYDAY=FR;BYSETPOS=2"
        assert result.when_done is True
        assert result.mode == const.MODE_WHEN_DONE

    def test_when_due_suffix(self) -> None:
        """"when due" keeps fixed scheduling."""
        result = parse_phrase("EVERY   3 Days  when due")

        assert result.rule == "FREQ=DAILY;INTERVAL=3"
        assert result.when_done is False
        assert result.mode == const.MODE_FIXED

    @pytest.mark.parametrize(
        ("phrase", "fragment"),
        [
            ("", "empty"),
            ("daily", "must start with 'every'"),
            ("every blue moon", "Unrecognized"),
            ("every 0 days", "Interval"),
            ("every 5th friday", "Unsupported ordinal"),
            ("every week on the 15th", "Unrecognized weekdays"),
            ("every day on monday", "only supported"),
            ("every year on smarch 3rd", "Unrecognized date"),
            ("every year on monday", "Unrecognized date"),
            ("every 32nd", "out of range"),
            ("every month on the 32nd", "out of range"),
            ("every other week", "Unrecognized"),
        ],
    )
    def test_rejected_phrases(self, phrase: str, fragment: str) -> None:
        """Unrecognized input fails closed with a reason."""
        result = parse_phrase(phrase)

        assert result.is_valid is False
        assert result.rule is None
        assert result.error is not None
        assert fragment in result.error


class TestDescribeRule:
    """Test rule -> phrase translation."""

    @pytest.mark.parametrize(
        ("rule", "phrase"),
        [
            ("FREQ=DAILY", "every day"),
            ("FREQ=DAILY;INTERVAL=3", "every 3 days"),
            ("FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR", "every weekday"),
            ("FREQ=WEEKLY;BYDAY=SA,SU", "every weekend"),
            ("FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE,FR", "every 2 weeks on Monday, Wednesday and Friday"),
            ("FREQ=MONTHLY;BYMONTHDAY=-1", "every month on the last day"),
            ("FREQ=MONTHLY;BYMONTHDAY=2", "every month on the 2nd"),
            ("FREQ=MONTHLY;BYDAY=FR;BYSETPOS=3", "every third Friday"),
            ("FREQ=MONTHLY;INTERVAL=2;BYDAY=TU;BYSETPOS=-1", "every 2 months on the last Tuesday"),
            ("RRULE:FREQ=YEARLY", "every year"),
            ("FREQ=YEARLY;BYMONTH=1;BYMONTHDAY=15", "every year on January 15th"),
            ("FREQ=YEARLY;INTERVAL=2;BYMONTH=2;BYMONTHDAY=-1", "every 2 years on the last day of February"),
            ("FREQ=MONTHLY;BYMONTHDAY=1,15", "every month on the 1st and 15th"),
            ("FREQ=MONTHLY;BYMONTHDAY=1,15,-1", "every month on the 1st, 15th and last day"),
        ],
    )
    def test_describable_rules(self, rule: str, phrase: str) -> None:
        """Rules the dialect can express get their exact phrase."""
        assert describe_rule(rule) == phrase

    @pytest.mark.parametrize(
        "rule",
        [
            "FREQ=DAILY;COUNT=5",
            "FREQ=HOURLY",
            "FREQ=YEARLY;BYMONTH=3",
            "FREQ=MONTHLY;BYMONTHDAY=31",
            "FREQ=MONTHLY;BYMONTHDAY=15,1",
            "FREQ=YEARLY;BYMONTH=1,7;BYMONTHDAY=1",
            "FREQ=YEARLY;BYMONTH=1;BYMONTHDAY=30",
            "FREQ=MONTHLY;BYDAY=2TU",
            "FREQ=MONTHLY;BYDAY=FR;BYSETPOS=5",
        ],
    )
    def test_undescribable_rules(self, rule: str) -> None:
        """Rules without an exact phrase return None."""
        assert describe_rule(rule) is None

    def test_when_done_suffix(self) -> None:
        """The when_done flag appends the suffix."""
        assert describe_rule("FREQ=DAILY;INTERVAL=2", when_done=True) == (
            "every 2 days when done"
        )

    def test_stringify_fallback(self) -> None:
        """Rules without a phrase fall back to "every N <unit>s"."""
        assert stringify_rule("FREQ=HOURLY;INTERVAL=4;COUNT=3") == "every 4 hours"
        assert stringify_rule("FREQ=YEARLY;BYMONTH=3") == "every year"
        assert stringify_rule("FREQ=MINUTELY;INTERVAL=15", when_done=True) == (
            "every 15 minutes when done"
        )

    def test_stringify_third_friday(self) -> None:
        """The formal inverse of "every 3rd Friday"."""
        assert stringify_rule("FREQ=MONTHLY;BYDAY=FR;BYSETPOS=3") == "every third Friday"

    def test_unparseable_rule_raises(self) -> None:
        """Describing garbage raises MalformedRule."""
        with pytest.raises(MalformedRule):
            stringify_rule("FREQ=SOMETIMES")


class TestRoundTrip:
    """parse -> stringify -> parse is stable for every accepted phrase."""

    @pytest.mark.parametrize("phrase", ACCEPTED_PHRASES)
    def test_round_trip(self, phrase: str) -> None:
        """The stringified phrase parses back to the same rule and mode."""
        first = parse_phrase(phrase)
        assert first.is_valid is True, first.error
        assert first.rule is not None

        restated = stringify_rule(first.rule, when_done=first.when_done)
        second = parse_phrase(restated)

        assert second.is_valid is True, second.error
        assert second.rule == first.rule
        assert second.when_done == first.when_done

    @pytest.mark.parametrize("phrase", ACCEPTED_PHRASES)
    def test_produced_rules_validate(self, phrase: str) -> None:
        """Every produced rule passes validation without errors."""
        rule = parse_phrase(phrase).rule
        assert rule is not None

        result = RuleValidator.validate(rule, ANCHOR)

        assert result["valid"] is True
        assert result["errors"] == []


class TestStructuredRules:
    """Test legacy structured rule translation."""

    def test_raw_rule_passes_through(self) -> None:
        """Raw expressions are returned unchanged."""
        assert to_expression(RawRule("FREQ=DAILY;INTERVAL=1")) == "FREQ=DAILY;INTERVAL=1"

    @pytest.mark.parametrize(
        ("rule", "expression"),
        [
            (StructuredRule("daily"), "FREQ=DAILY"),
            (StructuredRule("weekly", interval=2, weekdays=(4, 0)), "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,FR"),
            (StructuredRule("monthly", day_of_month=15), "FREQ=MONTHLY;BYMONTHDAY=15"),
            (StructuredRule("monthly", day_of_month=31), "FREQ=MONTHLY;BYMONTHDAY=-1"),
            (StructuredRule("yearly", day_of_month=29, month=2), "FREQ=YEARLY;BYMONTH=2;BYMONTHDAY=-1"),
        ],
    )
    def test_structured_to_expression(self, rule: StructuredRule, expression: str) -> None:
        """Structured fields translate to canonical RRULE text."""
        assert to_expression(rule) == expression

    def test_structured_yearly_stringifies_with_date(self) -> None:
        """A yearly structured rule keeps its month and day when phrased."""
        expression = to_expression(StructuredRule("yearly", day_of_month=15, month=1))

        assert expression == "FREQ=YEARLY;BYMONTH=1;BYMONTHDAY=15"
        assert stringify_rule(expression) == "every year on January 15th"

    def test_from_mapping(self) -> None:
        """Task mappings build StructuredRule values."""
        rule = StructuredRule.from_mapping(
            {"frequency": "weekly", "interval": 1, "weekdays": [0, 2]}
        )

        assert to_expression(rule) == "FREQ=WEEKLY;BYDAY=MO,WE"

    @pytest.mark.parametrize(
        "rule",
        [
            StructuredRule("fortnightly"),
            StructuredRule("weekly", weekdays=(7,)),
            StructuredRule("monthly", day_of_month=40),
            StructuredRule("yearly", month=13),
            StructuredRule("daily", interval=0),
        ],
    )
    def test_invalid_structured_rules(self, rule: StructuredRule) -> None:
        """Out-of-range structured rules raise MalformedRule."""
        with pytest.raises(MalformedRule):
            to_expression(rule)
