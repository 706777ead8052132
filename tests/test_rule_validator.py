"""Unit tests for rule_validator.py RuleValidator."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from taskcadence.engines.rule_validator import RuleValidator

UTC = ZoneInfo("UTC")
ANCHOR = datetime(2024, 1, 1, 9, 0, 0, tzinfo=UTC)  # Monday


class TestFatalErrors:
    """Fatal checks short-circuit at the first failure."""

    def test_count_and_until_together(self) -> None:
        """COUNT with UNTIL is an error naming both parts."""
        result = RuleValidator.validate(
            "FREQ=DAILY;COUNT=5;UNTIL=20241231T000000Z", ANCHOR
        )

        assert result["valid"] is False
        assert len(result["errors"]) == 1
        assert "COUNT" in result["errors"][0]
        assert "UNTIL" in result["errors"][0]

    def test_empty_expression(self) -> None:
        """Blank expressions are rejected first."""
        result = RuleValidator.validate("  ", "not-a-date")

        assert result["valid"] is False
        assert result["errors"] == ["RRULE expression is empty"]

    def test_invalid_anchor(self) -> None:
        """Unparseable anchors are reported."""
        result = RuleValidator.validate("FREQ=DAILY", "not-a-date")

        assert result["valid"] is False
        assert "Invalid anchor date" in result["errors"][0]

    def test_grammar_error(self) -> None:
        """Grammar errors are reported, not raised."""
        result = RuleValidator.validate("FREQ=DAILY;BOGUS=1", ANCHOR)

        assert result["valid"] is False
        assert result["errors"][0].startswith("Invalid RRULE syntax")

    def test_until_before_anchor(self) -> None:
        """UNTIL must not precede the anchor."""
        result = RuleValidator.validate(
            "FREQ=DAILY;UNTIL=20231231T000000Z", ANCHOR
        )

        assert result["valid"] is False
        assert "before the anchor" in result["errors"][0]

    @pytest.mark.parametrize(
        ("expression", "fragment"),
        [
            ("FREQ=DAILY;COUNT=0", "COUNT must be at least 1"),
            ("FREQ=DAILY;INTERVAL=0", "INTERVAL must be at least 1"),
            ("FREQ=YEARLY;BYMONTH=13", "BYMONTH"),
            ("FREQ=MONTHLY;BYSETPOS=2", "BYSETPOS requires BYDAY"),
        ],
    )
    def test_value_errors(self, expression: str, fragment: str) -> None:
        """Range and consistency errors carry a specific message."""
        result = RuleValidator.validate(expression, ANCHOR)

        assert result["valid"] is False
        assert fragment in result["errors"][0]

    def test_unknown_timezone(self) -> None:
        """Unknown timezones are errors."""
        result = RuleValidator.validate("FREQ=DAILY", ANCHOR, "Nowhere/Land")

        assert result["valid"] is False
        assert "Unknown timezone" in result["errors"][0]


class TestWarnings:
    """Non-fatal findings leave the rule valid."""

    def test_clean_rule(self) -> None:
        """A plain weekly rule has neither errors nor warnings."""
        result = RuleValidator.validate("FREQ=WEEKLY;BYDAY=MO", ANCHOR)

        assert result == {"valid": True, "errors": [], "warnings": []}

    def test_day_missing_from_month(self) -> None:
        """Each impossible (month, day) pair is reported."""
        result = RuleValidator.validate("FREQ=YEARLY;BYMONTH=2,4;BYMONTHDAY=30", ANCHOR)

        assert result["valid"] is True
        assert result["warnings"] == [
            "Day 30 does not exist in February (max 28 days)"
        ]

    def test_rule_that_never_matches(self) -> None:
        """February 30 never occurs."""
        result = RuleValidator.validate("FREQ=YEARLY;BYMONTH=2;BYMONTHDAY=30", ANCHOR)

        assert result["valid"] is True
        assert "Rule may not generate any valid occurrences" in result["warnings"]

    def test_negative_day_missing_from_month(self) -> None:
        """Days counted from the month end are checked too."""
        result = RuleValidator.validate("FREQ=YEARLY;BYMONTH=2;BYMONTHDAY=-31", ANCHOR)

        assert result["valid"] is True
        assert result["warnings"] == [
            "Day -31 does not exist in February (max 28 days)",
            "Rule may not generate any valid occurrences",
        ]

    def test_leap_day_is_only_a_month_warning(self) -> None:
        """February 29 exists in leap years, so the rule can still occur."""
        result = RuleValidator.validate("FREQ=YEARLY;BYMONTH=2;BYMONTHDAY=29", ANCHOR)

        assert result["warnings"] == ["Day 29 does not exist in February (max 28 days)"]

    def test_expired_rule(self) -> None:
        """No occurrence before an UNTIL in the past means expired."""
        expression = "FREQ=WEEKLY;BYDAY=FR;UNTIL=20240103"

        result = RuleValidator.validate(
            expression, ANCHOR, now=datetime(2024, 6, 1, tzinfo=UTC)
        )

        assert result["valid"] is True
        assert result["warnings"] == ["Rule has expired (UNTIL date is in the past)"]

    def test_empty_series_not_yet_expired(self) -> None:
        """The same rule checked before UNTIL may simply never occur."""
        result = RuleValidator.validate(
            "FREQ=WEEKLY;BYDAY=FR;UNTIL=20240103",
            ANCHOR,
            now=datetime(2023, 12, 1, tzinfo=UTC),
        )

        assert result["warnings"] == ["Rule may not generate any valid occurrences"]

    def test_sub_daily_frequency(self) -> None:
        """Hourly rules carry a performance warning."""
        result = RuleValidator.validate("FREQ=HOURLY", ANCHOR)

        assert result["valid"] is True
        assert any("High-frequency" in warning for warning in result["warnings"])

    def test_high_count(self) -> None:
        """Large COUNT values carry a performance warning."""
        result = RuleValidator.validate("FREQ=DAILY;COUNT=5000", ANCHOR)

        assert result["warnings"] == [
            "High COUNT value (5000) may cause performance issues"
        ]

    def test_monthly_byday_without_bysetpos(self) -> None:
        """Plain weekdays in a MONTHLY rule match every such weekday."""
        plain = RuleValidator.validate("FREQ=MONTHLY;BYDAY=MO", ANCHOR)
        ordinal = RuleValidator.validate("FREQ=MONTHLY;BYDAY=2MO", ANCHOR)

        assert any("BYSETPOS" in warning for warning in plain["warnings"])
        assert ordinal["warnings"] == []

    def test_monthly_short_month_day(self) -> None:
        """BYMONTHDAY=31 in a MONTHLY rule skips short months."""
        result = RuleValidator.validate("FREQ=MONTHLY;BYMONTHDAY=31", ANCHOR)

        assert result["valid"] is True
        assert len(result["warnings"]) == 1
        assert "does not exist in every month" in result["warnings"][0]


class TestIsExpired:
    """Test expiry checks."""

    def test_count_series_expires(self) -> None:
        """A COUNT series is expired once its last occurrence passed."""
        expression = "FREQ=DAILY;COUNT=3"

        assert RuleValidator.is_expired(
            expression, ANCHOR, now=datetime(2024, 6, 1, tzinfo=UTC)
        )
        assert not RuleValidator.is_expired(
            expression, ANCHOR, now=datetime(2024, 1, 2, tzinfo=UTC)
        )

    def test_unbounded_never_expires(self) -> None:
        """Rules without a terminator never expire."""
        assert not RuleValidator.is_expired(
            "FREQ=YEARLY", ANCHOR, now=datetime(2099, 1, 1, tzinfo=UTC)
        )

    def test_unparseable_is_not_expired(self) -> None:
        """Malformed rules report False."""
        assert not RuleValidator.is_expired("FREQ=SOMETIMES", ANCHOR)
