"""Rule Explainer - audit narratives for recurrence decisions.

ARCHITECTURE: Pure logic engine. explain() describes a result that the
RecurrenceEngine has ALREADY computed; it never recomputes the next
occurrence itself. explain_date() and summarize() are read-only helpers
built on RuleHandle and the phrase engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .. import const
from ..utils.dt_utils import (
    as_local,
    as_utc,
    dt_parse,
    dt_to_iso,
    resolve_timezone,
    timezone_name,
)
from .phrase_engine import describe_rule, join_words, ordinal_suffix
from .rule_engine import MalformedRule, check_spec, parse_spec

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import date, datetime, tzinfo

    from ..type_defs import Explanation, ExplanationStep
    from .rule_engine import DayToken, RuleHandle, RuleSpec


class RuleExplainer:
    """Stateless builders for explanations and rule summaries."""

    @staticmethod
    def explain(
        expression: str,
        anchor: datetime | date | str | None,
        mode: str,
        result: datetime | None,
        *,
        reference: datetime,
        timezone: tzinfo | str | None = None,
        task_id: str = "",
        fixed_time: str | None = None,
    ) -> Explanation:
        """Build the step-by-step explanation of a next-occurrence result.

        Args:
            expression: RRULE text the result was computed from
            anchor: Task anchor (DTSTART)
            mode: const.MODE_FIXED or const.MODE_WHEN_DONE
            result: The already computed next occurrence (None if none)
            reference: Reference instant the result was computed against
            timezone: Rule timezone
            task_id: Task identifier for the audit record
            fixed_time: "HH:MM" applied to the result, if any

        Returns:
            Explanation record.
        """
        steps: list[ExplanationStep] = []
        warnings: list[str] = []
        try:
            tz = resolve_timezone(timezone)
        except ValueError as err:
            tz = resolve_timezone(None)
            warnings.append(f"{err}; explained in {timezone_name(tz)}")
        reference_utc = as_utc(reference)

        def add(description: str, value: str | None = None) -> None:
            step: ExplanationStep = {"step": len(steps) + 1, "description": description}
            if value is not None:
                step["value"] = value
            steps.append(step)

        if mode == const.MODE_WHEN_DONE:
            add(f"Recurrence mode: {mode}", "Series re-anchors at the completion date")
        else:
            add(f"Recurrence mode: {mode}", "Series follows the anchor and rule")
        add("Reference date", dt_to_iso(reference_utc))
        add("RRULE string", expression)

        try:
            spec = parse_spec(expression)
            check_spec(spec, expression)
        except MalformedRule as err:
            add("Invalid rule", str(err))
            warnings.append(f"Rule could not be parsed: {err}")
            spec = None

        anchor_dt = dt_parse(anchor, tz) if anchor is not None else None
        if mode == const.MODE_WHEN_DONE:
            add("Series start (DTSTART)", dt_to_iso(reference_utc))
        elif anchor_dt is not None:
            add("Series start (DTSTART)", dt_to_iso(anchor_dt))

        if spec is not None:
            RuleExplainer._add_rule_facets(spec, tz, reference_utc, add, warnings)

        add("Timezone", timezone_name(tz))
        add(
            "Calculate next occurrence after reference date",
            f"Next occurrence: {dt_to_iso(result)}"
            if result is not None
            else const.DISPLAY_NO_FURTHER_OCCURRENCES,
        )

        if fixed_time and result is not None:
            add("Apply fixed time", f"Time set to {fixed_time}")

        if result is None:
            add("Result", const.DISPLAY_NO_FURTHER_OCCURRENCES)
            if const.DISPLAY_SERIES_ENDED not in warnings:
                warnings.append(const.DISPLAY_NO_FUTURE_OCCURRENCES)
        else:
            add("Result", f"Next due date: {dt_to_iso(result)}")

        return {
            "task_id": task_id,
            "reference_date": dt_to_iso(reference_utc),
            "rule": expression,
            "mode": mode,
            "result_date": dt_to_iso(result) if result is not None else None,
            "evaluation_steps": steps,
            "timezone": timezone_name(tz),
            "warnings": warnings,
        }

    @staticmethod
    def explain_date(handle: RuleHandle, candidate: datetime | date | str) -> str:
        """Explain whether a candidate's calendar day is an occurrence.

        Args:
            handle: Parsed rule
            candidate: Instant whose day (in the rule timezone) is checked

        Returns:
            Multi-line text: a verdict line followed by matches or a reason.
        """
        candidate_dt = dt_parse(candidate, handle.timezone)
        if candidate_dt is None:
            return f"✗ {candidate!r} is not a valid date"

        day = as_local(candidate_dt, handle.timezone).date()
        matches = handle.occurrences_on(candidate_dt)
        if matches:
            lines = [
                f"✓ {day.isoformat()} IS a valid occurrence",
                f"  Matched {len(matches)} time(s) on this date",
            ]
            lines.extend(
                f"  [{index}] {dt_to_iso(match)}"
                for index, match in enumerate(matches, start=1)
            )
            return "\n".join(lines)

        lines = [f"✗ {day.isoformat()} is NOT a valid occurrence"]
        lines.append(f"  Reason: {RuleExplainer._mismatch_reason(handle, day)}")
        return "\n".join(lines)

    @staticmethod
    def summarize(expression: str, anchor: datetime | date | str | None = None) -> str:
        """One-sentence summary of a rule.

        Uses the exact phrase when the phrase dialect can express the rule;
        otherwise describes frequency, qualifiers and terminator. Unparseable
        input is returned unchanged.
        """
        try:
            spec = parse_spec(expression)
            check_spec(spec, expression)
            phrase = describe_rule(expression)
        except MalformedRule as err:
            const.LOGGER.warning("Failed to summarize rule %r: %s", expression, err)
            return expression

        if phrase is None:
            phrase = RuleExplainer._generic_sentence(spec)

        anchor_dt = dt_parse(anchor) if anchor is not None else None
        if anchor_dt is not None:
            phrase = f"{phrase}, starting {anchor_dt.date().isoformat()}"
        return phrase[0].upper() + phrase[1:]

    # =========================================================================
    # Private helpers
    # =========================================================================

    @staticmethod
    def _add_rule_facets(
        spec: RuleSpec,
        tz: tzinfo,
        reference_utc: datetime,
        add: Callable[[str, str | None], None],
        warnings: list[str],
    ) -> None:
        """Append one step per rule facet that is present."""
        frequency = spec.freq
        if spec.interval > 1:
            frequency = f"{spec.freq} (every {spec.interval} {spec.unit}s)"
        add("Frequency", frequency)

        if spec.byday:
            add("By weekday", ", ".join(_day_token_label(token) for token in spec.byday))
        if spec.bymonthday:
            add("By month day", ", ".join(_month_day_label(day) for day in spec.bymonthday))
        if spec.bymonth:
            add(
                "By month",
                ", ".join(const.MONTH_NAMES[month - 1] for month in spec.bymonth),
            )
        if spec.bysetpos:
            add("By set position", ", ".join(_position_label(n) for n in spec.bysetpos))

        until = spec.until_in(tz)
        if until is not None:
            add("UNTIL (series ends)", dt_to_iso(until))
            if as_utc(until) < reference_utc:
                warnings.append(const.DISPLAY_SERIES_ENDED)
        if spec.count is not None:
            add("COUNT (max occurrences)", str(spec.count))

    @staticmethod
    def _mismatch_reason(handle: RuleHandle, day: date) -> str:
        """First applicable reason a day has no occurrence."""
        spec = handle.spec
        if day < handle.anchor.date():
            return f"Date is before DTSTART ({dt_to_iso(handle.anchor)})"

        if spec.has_terminator:
            last = handle.last()
            last_day = as_local(last, handle.timezone).date() if last else None
            if last_day is None or day > last_day:
                until = spec.until_in(handle.timezone)
                if until is not None:
                    return f"Date is after UNTIL ({dt_to_iso(until)})"
                return f"Date is after the last of {spec.count} occurrences"

        weekdays = {token.weekday for token in spec.byday}
        if weekdays and day.weekday() not in weekdays:
            return (
                f"Day of week ({const.WEEKDAY_NAMES[day.weekday()]}) "
                "not in BYDAY constraint"
            )
        return "Date does not match the RRULE pattern"

    @staticmethod
    def _generic_sentence(spec: RuleSpec) -> str:
        if spec.interval == 1:
            sentence = f"every {spec.unit}"
        else:
            sentence = f"every {spec.interval} {spec.unit}s"

        if spec.byday:
            labels = [_day_token_label(token) for token in spec.byday]
            sentence += f" on {join_words(labels)}"
        if spec.bymonthday:
            labels = [_month_day_label(day) for day in spec.bymonthday]
            sentence += f" on the {join_words(labels)}"
        if spec.bymonth:
            months = [const.MONTH_NAMES[month - 1] for month in spec.bymonth]
            sentence += f" in {join_words(months)}"
        if spec.bysetpos:
            positions = [_position_label(n) for n in spec.bysetpos]
            sentence += f" (only the {join_words(positions)} match)"

        if spec.count is not None:
            sentence += f", {spec.count} time{'s' if spec.count != 1 else ''}"
        elif spec.until is not None:
            sentence += f", until {spec.until.date().isoformat()}"
        return sentence


def _position_label(n: int) -> str:
    if n in const.ORDINAL_WORDS:
        return const.ORDINAL_WORDS[n]
    if n > 0:
        return ordinal_suffix(n)
    return f"{ordinal_suffix(-n)} to last"


def _day_token_label(token: DayToken) -> str:
    name = const.WEEKDAY_NAMES[token.weekday]
    if token.ordinal is None:
        return name
    return f"{_position_label(token.ordinal)} {name}"


def _month_day_label(day: int) -> str:
    if day == const.LAST_DAY_OF_MONTH:
        return "last day"
    if day > 0:
        return ordinal_suffix(day)
    return f"{ordinal_suffix(-day)} to last day"
