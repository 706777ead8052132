"""Rule Validator - syntactic and semantic checks for recurrence rules.

ARCHITECTURE: Pure logic engine. Problems are returned as data
(ValidationResult), never raised. The validator parses through rule_engine
but never touches the RuleCache.

Fatal errors short-circuit at the first failure; warnings are only collected
for rules that can actually be evaluated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .. import const
from ..utils.dt_utils import as_utc, dt_now_utc, dt_parse, dt_to_iso, resolve_timezone
from .rule_engine import MalformedRule, check_spec, parse, parse_spec

if TYPE_CHECKING:
    from datetime import date, datetime, tzinfo

    from ..type_defs import ValidationResult
    from .rule_engine import RuleHandle, RuleSpec


class RuleValidator:
    """Stateless validation of rule expressions.

    All methods are static; there is no per-instance state.
    """

    @staticmethod
    def validate(
        expression: str,
        anchor: datetime | date | str,
        timezone: tzinfo | str | None = None,
        now: datetime | None = None,
    ) -> ValidationResult:
        """Validate a rule expression against an anchor.

        Args:
            expression: RRULE text
            anchor: Anchor instant (DTSTART)
            timezone: Rule timezone (IANA name or tzinfo)
            now: Reference "current time" for expiry checks (defaults to now)

        Returns:
            ValidationResult with `valid` False when any error is present.
        """
        errors: list[str] = []
        warnings: list[str] = []

        handle = RuleValidator._check_fatal(expression, anchor, timezone, errors)
        if handle is None:
            return {"valid": False, "errors": errors, "warnings": warnings}

        spec = handle.spec
        warnings.extend(RuleValidator._month_day_warnings(spec))
        warnings.extend(RuleValidator._occurrence_warnings(handle, now))

        if spec.freq in const.SUB_DAILY_FREQUENCIES:
            warnings.append(
                "High-frequency rules (hourly/minutely/secondly) may cause "
                "performance issues"
            )
        if spec.count is not None and spec.count > const.HIGH_COUNT_THRESHOLD:
            warnings.append(
                f"High COUNT value ({spec.count}) may cause performance issues"
            )
        if (
            spec.freq == const.FREQ_MONTHLY
            and spec.byday
            and not spec.bysetpos
            and any(token.ordinal is None for token in spec.byday)
        ):
            warnings.append(
                "MONTHLY with BYDAY but no BYSETPOS may produce unexpected results"
            )

        return {"valid": True, "errors": errors, "warnings": warnings}

    @staticmethod
    def is_expired(
        expression: str,
        anchor: datetime | date | str,
        now: datetime | None = None,
        timezone: tzinfo | str | None = None,
    ) -> bool:
        """Whether a rule produces no occurrence strictly after `now`.

        Unbounded rules never expire. Unparseable rules return False; use
        validate() to learn why they are unusable.
        """
        try:
            handle = parse(expression, anchor, timezone)
        except MalformedRule:
            return False
        if not handle.spec.has_terminator:
            return False
        return handle.after(now or dt_now_utc()) is None

    # =========================================================================
    # Private: fatal checks
    # =========================================================================

    @staticmethod
    def _check_fatal(
        expression: str,
        anchor: datetime | date | str,
        timezone: tzinfo | str | None,
        errors: list[str],
    ) -> RuleHandle | None:
        """Run fatal checks in order; append the first failure to `errors`."""
        if not isinstance(expression, str) or not expression.strip():
            errors.append("RRULE expression is empty")
            return None

        try:
            tz = resolve_timezone(timezone)
        except ValueError as err:
            errors.append(str(err))
            return None

        anchor_dt = dt_parse(anchor, tz)
        if anchor_dt is None:
            errors.append(f"Invalid anchor date: {anchor!r}")
            return None

        try:
            spec = parse_spec(expression)
        except MalformedRule as err:
            errors.append(f"Invalid RRULE syntax: {err}")
            return None

        if spec.count is not None and spec.until is not None:
            errors.append("Cannot specify both COUNT and UNTIL in the same rule")
            return None

        until = spec.until_in(tz)
        if until is not None and as_utc(until) < as_utc(anchor_dt.replace(microsecond=0)):
            errors.append(
                f"UNTIL date ({dt_to_iso(until)}) is before the anchor date "
                f"({dt_to_iso(anchor_dt)})"
            )
            return None

        if spec.count is not None and spec.count < 1:
            errors.append(f"COUNT must be at least 1, got {spec.count}")
            return None

        if spec.interval < 1:
            errors.append(f"INTERVAL must be at least 1, got {spec.interval}")
            return None

        try:
            check_spec(spec, expression)
            return parse(expression, anchor_dt, tz)
        except MalformedRule as err:
            errors.append(str(err))
            return None

    # =========================================================================
    # Private: warnings
    # =========================================================================

    @staticmethod
    def _month_day_warnings(spec: RuleSpec) -> list[str]:
        """Warn about month days that some months do not have."""
        warnings: list[str] = []
        positive_days = [day for day in spec.bymonthday if day > 0]

        for month in spec.bymonth:
            max_days = const.DAYS_IN_MONTH_NON_LEAP[month - 1]
            for day in spec.bymonthday:
                if abs(day) > max_days:
                    warnings.append(
                        f"Day {day} does not exist in {const.MONTH_NAMES[month - 1]} "
                        f"(max {max_days} days)"
                    )

        if spec.freq == const.FREQ_MONTHLY and not spec.bymonth:
            for day in positive_days:
                if day in const.SHORT_MONTH_DAYS:
                    warnings.append(
                        f"Day {day} does not exist in every month; months without "
                        "it are skipped (use BYMONTHDAY=-1 for the last day)"
                    )
        return warnings

    @staticmethod
    def _occurrence_warnings(handle: RuleHandle, now: datetime | None) -> list[str]:
        """Look for a first occurrence and classify its absence."""
        spec = handle.spec
        if handle.never_occurs:
            return ["Rule may not generate any valid occurrences"]

        if handle.after(handle.anchor, inclusive=True) is not None:
            return []

        until = spec.until_in(handle.timezone)
        if until is not None and as_utc(until) < (now or dt_now_utc()):
            return ["Rule has expired (UNTIL date is in the past)"]
        return ["Rule may not generate any valid occurrences"]
