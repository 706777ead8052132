"""Rule Engine - the single parsing authority for recurrence rules.

Turns RFC 5545 RRULE text into:
- RuleSpec: the decoded, immutable grammar (used as vocabulary elsewhere)
- RuleHandle: a RuleSpec bound to an anchor and timezone, backed by
  `dateutil.rrule`, answering after / between / occurs_on queries

Semantics are RFC 5545 as implemented by `dateutil.rrule`. Notably,
month days that do not exist in a month (29-31) are SKIPPED for that month,
never clamped (BYMONTHDAY=31 yields Jan 31, Mar 31, May 31, ...).

IMPORTANT: This is the ONLY module that builds `dateutil.rrule` objects.
Validator, explainer, cache and phrase engine call parse_spec() / parse()
instead of decoding rules themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import re
from typing import TYPE_CHECKING, Any, ClassVar, NamedTuple

from dateutil.rrule import (
    DAILY,
    FR,
    HOURLY,
    MINUTELY,
    MO,
    MONTHLY,
    SA,
    SECONDLY,
    SU,
    TH,
    TU,
    WE,
    WEEKLY,
    YEARLY,
    rrule,
)

from .. import const
from ..utils.dt_utils import (
    as_local,
    as_utc,
    dt_parse,
    format_rrule_datetime,
    localize_rrule_datetime,
    parse_rrule_datetime,
    resolve_timezone,
    start_of_local_day,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import date, tzinfo


# =============================================================================
# Exceptions
# =============================================================================


class RecurrenceError(Exception):
    """Base class for recurrence rule failures."""


class MalformedRule(RecurrenceError):
    """Raised when a rule expression violates the supported grammar.

    Attributes:
        expression: The offending expression (if known)
    """

    def __init__(self, message: str, expression: str | None = None) -> None:
        """Initialize MalformedRule.

        Args:
            message: Human-readable reason
            expression: The offending expression (if known)
        """
        self.expression = expression
        super().__init__(message)


class EmptyRuleSet(MalformedRule):
    """Raised when an expression yields no usable rule at all."""


# =============================================================================
# Rule Structures
# =============================================================================


class DayToken(NamedTuple):
    """One BYDAY entry: weekday index (0=Monday) and optional ordinal."""

    weekday: int
    ordinal: int | None = None

    def __str__(self) -> str:
        """Render back to RRULE form ("2TU", "-1FR", "MO")."""
        prefix = str(self.ordinal) if self.ordinal else ""
        return f"{prefix}{const.WEEKDAY_TOKENS[self.weekday]}"


@dataclass(frozen=True)
class RuleSpec:
    """Decoded recurrence rule, independent of any anchor.

    Attributes:
        freq: FREQ value (const.FREQ_*)
        interval: INTERVAL (defaults to 1)
        count: COUNT terminator, if present
        until: UNTIL terminator as parsed (naive when floating)
        until_is_date: Whether UNTIL was a DATE rather than a DATE-TIME
        byday: BYDAY tokens
        bymonthday: BYMONTHDAY values (negative count from month end)
        bymonth: BYMONTH values (1-12)
        bysetpos: BYSETPOS values (negative count from period end)
        wkst: WKST weekday index, if present
    """

    freq: str
    interval: int = 1
    count: int | None = None
    until: datetime | None = None
    until_is_date: bool = False
    byday: tuple[DayToken, ...] = ()
    bymonthday: tuple[int, ...] = ()
    bymonth: tuple[int, ...] = ()
    bysetpos: tuple[int, ...] = ()
    wkst: int | None = None

    @property
    def has_terminator(self) -> bool:
        """True when the series ends (COUNT or UNTIL present)."""
        return self.count is not None or self.until is not None

    @property
    def never_matches(self) -> bool:
        """True when no BYMONTH x BYMONTHDAY pair exists in any year (Feb 30).

        dateutil would scan every period up to year 9999 looking for one.
        """
        if not self.bymonth or not self.bymonthday:
            return False
        return all(
            abs(day) > const.DAYS_IN_MONTH_MAX[month - 1]
            for month in self.bymonth
            for day in self.bymonthday
        )

    @property
    def unit(self) -> str:
        """Singular unit word for FREQ ("day", "week", ...)."""
        return const.FREQUENCY_UNITS[self.freq]

    def until_in(self, tz: tzinfo | None = None) -> datetime | None:
        """Return UNTIL as an aware datetime, reading floating values in `tz`."""
        if self.until is None:
            return None
        return localize_rrule_datetime(self.until, self.until_is_date, tz)

    def to_expression(self) -> str:
        """Render the canonical RRULE text (no prefix, INTERVAL only if > 1)."""
        parts = [f"{const.RRULE_PART_FREQ}={self.freq}"]
        if self.interval != 1:
            parts.append(f"{const.RRULE_PART_INTERVAL}={self.interval}")
        if self.bymonth:
            parts.append(f"{const.RRULE_PART_BYMONTH}={_join(self.bymonth)}")
        if self.bymonthday:
            parts.append(f"{const.RRULE_PART_BYMONTHDAY}={_join(self.bymonthday)}")
        if self.byday:
            parts.append(f"{const.RRULE_PART_BYDAY}={_join(self.byday)}")
        if self.bysetpos:
            parts.append(f"{const.RRULE_PART_BYSETPOS}={_join(self.bysetpos)}")
        if self.wkst is not None:
            parts.append(f"{const.RRULE_PART_WKST}={const.WEEKDAY_TOKENS[self.wkst]}")
        if self.count is not None:
            parts.append(f"{const.RRULE_PART_COUNT}={self.count}")
        if self.until is not None:
            parts.append(f"{const.RRULE_PART_UNTIL}={self._until_text()}")
        return ";".join(parts)

    def _until_text(self) -> str:
        assert self.until is not None
        if self.until_is_date:
            return self.until.strftime("%Y%m%d")
        if self.until.tzinfo is not None:
            return format_rrule_datetime(self.until)
        return self.until.strftime("%Y%m%dT%H%M%S")


def _join(values: tuple[Any, ...]) -> str:
    return ",".join(str(value) for value in values)


# =============================================================================
# Grammar Decoding
# =============================================================================

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_DAY_TOKEN_PATTERN = re.compile(r"^(?P<ordinal>[+-]?\d{1,2})?(?P<day>MO|TU|WE|TH|FR|SA|SU)$")


def parse_spec(expression: str) -> RuleSpec:
    """Decode RRULE text into a RuleSpec (grammar only).

    Cross-field invariants (COUNT vs UNTIL, value ranges) are NOT enforced
    here; see check_spec(). This split lets the validator report each
    problem with its own message.

    Args:
        expression: RRULE text, e.g. "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,FR"

    Returns:
        Decoded RuleSpec.

    Raises:
        EmptyRuleSet: If the expression is blank or has no parts.
        MalformedRule: On any grammar violation.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise EmptyRuleSet("Rule expression is empty", expression)

    text = expression.strip()
    if text.upper().startswith(const.RRULE_PREFIX):
        text = text[len(const.RRULE_PREFIX) :]

    parts: dict[str, str] = {}
    for chunk in text.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, value = chunk.partition("=")
        name = name.strip().upper()
        value = value.strip().upper()
        if not sep or not name or not value:
            raise MalformedRule(f"Malformed rule part: {chunk!r}", expression)
        if name not in const.RRULE_PARTS:
            raise MalformedRule(f"Unsupported rule part: {name}", expression)
        if name in parts:
            raise MalformedRule(f"Duplicate rule part: {name}", expression)
        parts[name] = value

    if not parts:
        raise EmptyRuleSet("Rule expression contains no rule parts", expression)

    freq = parts.get(const.RRULE_PART_FREQ)
    if freq is None:
        raise MalformedRule("Rule is missing FREQ", expression)
    if freq not in const.FREQUENCY_OPTIONS:
        raise MalformedRule(f"Unknown FREQ: {freq}", expression)

    until: datetime | None = None
    until_is_date = False
    if const.RRULE_PART_UNTIL in parts:
        try:
            until, until_is_date = parse_rrule_datetime(parts[const.RRULE_PART_UNTIL])
        except ValueError as err:
            raise MalformedRule(str(err), expression) from err

    wkst: int | None = None
    if const.RRULE_PART_WKST in parts:
        wkst_token = _parse_day_token(parts[const.RRULE_PART_WKST], expression)
        if wkst_token.ordinal is not None:
            raise MalformedRule("WKST cannot carry an ordinal", expression)
        wkst = wkst_token.weekday

    count_values = _parse_int_list(parts, const.RRULE_PART_COUNT, expression)
    interval_values = _parse_int_list(parts, const.RRULE_PART_INTERVAL, expression)
    if len(count_values) > 1 or len(interval_values) > 1:
        raise MalformedRule("COUNT and INTERVAL take a single value", expression)

    return RuleSpec(
        freq=freq,
        interval=interval_values[0] if interval_values else 1,
        count=count_values[0] if count_values else None,
        until=until,
        until_is_date=until_is_date,
        byday=tuple(
            _parse_day_token(token, expression)
            for token in _split_list(parts.get(const.RRULE_PART_BYDAY))
        ),
        bymonthday=_parse_int_list(parts, const.RRULE_PART_BYMONTHDAY, expression),
        bymonth=_parse_int_list(parts, const.RRULE_PART_BYMONTH, expression),
        bysetpos=_parse_int_list(parts, const.RRULE_PART_BYSETPOS, expression),
        wkst=wkst,
    )


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_int_list(
    parts: dict[str, str], name: str, expression: str
) -> tuple[int, ...]:
    values: list[int] = []
    for item in _split_list(parts.get(name)):
        if not _INTEGER_PATTERN.match(item):
            raise MalformedRule(f"{name} must be an integer, got {item!r}", expression)
        values.append(int(item))
    return tuple(values)


def _parse_day_token(token: str, expression: str) -> DayToken:
    match = _DAY_TOKEN_PATTERN.match(token)
    if not match:
        raise MalformedRule(f"Invalid weekday token: {token!r}", expression)
    ordinal = match.group("ordinal")
    return DayToken(
        weekday=const.WEEKDAY_TOKENS.index(match.group("day")),
        ordinal=int(ordinal) if ordinal else None,
    )


def check_spec(spec: RuleSpec, expression: str | None = None) -> None:
    """Enforce cross-field invariants on a decoded rule.

    Args:
        spec: Result of parse_spec()
        expression: Original text, attached to the raised error

    Raises:
        MalformedRule: On the first violated invariant.
    """
    if spec.count is not None and spec.until is not None:
        raise MalformedRule(
            "Cannot specify both COUNT and UNTIL in the same rule", expression
        )
    if spec.interval < 1:
        raise MalformedRule("INTERVAL must be at least 1", expression)
    if spec.count is not None and spec.count < 1:
        raise MalformedRule("COUNT must be at least 1", expression)
    if spec.bysetpos and not spec.byday:
        raise MalformedRule("BYSETPOS requires BYDAY", expression)

    for month in spec.bymonth:
        if not 1 <= month <= 12:
            raise MalformedRule(f"BYMONTH value out of range: {month}", expression)
    for day in spec.bymonthday:
        if day == 0 or not -31 <= day <= 31:
            raise MalformedRule(f"BYMONTHDAY value out of range: {day}", expression)
    for position in spec.bysetpos:
        if position == 0 or not -366 <= position <= 366:
            raise MalformedRule(f"BYSETPOS value out of range: {position}", expression)

    for token in spec.byday:
        if token.ordinal is None:
            continue
        if spec.freq not in (const.FREQ_MONTHLY, const.FREQ_YEARLY):
            raise MalformedRule(
                f"Ordinal BYDAY ({token}) requires MONTHLY or YEARLY frequency",
                expression,
            )
        limit = 5 if spec.freq == const.FREQ_MONTHLY else 53
        if token.ordinal == 0 or abs(token.ordinal) > limit:
            raise MalformedRule(f"BYDAY ordinal out of range: {token}", expression)


# =============================================================================
# Rule Handle
# =============================================================================


@dataclass(frozen=True)
class RuleHandle:
    """A parsed rule bound to its anchor and timezone.

    Immutable once constructed; safe to share between callers. All query
    results are UTC datetimes. Query arguments may be aware (any zone) or
    naive (read in the rule's timezone).

    Attributes:
        expression: Original expression text
        spec: Decoded rule
        anchor: DTSTART, aware in `timezone`, microseconds dropped
        timezone: Timezone the rule is evaluated in
    """

    expression: str
    spec: RuleSpec
    anchor: datetime
    timezone: tzinfo
    _rule: rrule = field(repr=False, compare=False)

    @property
    def never_occurs(self) -> bool:
        """True when the rule can never produce an occurrence."""
        return self.spec.never_matches

    def after(self, instant: datetime | date, inclusive: bool = False) -> datetime | None:
        """Smallest occurrence after (or at, if inclusive) an instant."""
        if self.never_occurs:
            return None
        result = self._rule.after(self._to_rule_time(instant), inc=inclusive)
        return as_utc(result) if result is not None else None

    def between(
        self,
        start: datetime | date,
        end: datetime | date,
        inclusive: bool = True,
    ) -> list[datetime]:
        """Ordered occurrences within [start, end] (or (start, end))."""
        start_local = self._to_rule_time(start)
        end_local = self._to_rule_time(end)
        if start_local > end_local or self.never_occurs:
            return []
        # Nonexistent local times in a DST gap map onto an existing instant
        results: list[datetime] = []
        for occurrence in self._rule.between(start_local, end_local, inc=inclusive):
            instant = as_utc(occurrence)
            if not results or instant > results[-1]:
                results.append(instant)
        return results

    def iter_after(
        self, instant: datetime | date, inclusive: bool = False
    ) -> Iterator[datetime]:
        """Lazily yield occurrences after (or at) an instant, in order."""
        if self.never_occurs:
            return
        for occurrence in self._rule.xafter(self._to_rule_time(instant), inc=inclusive):
            yield as_utc(occurrence)

    def occurrences_on(self, instant: datetime | date) -> list[datetime]:
        """All occurrences on the instant's calendar day (rule timezone)."""
        if self.never_occurs:
            return []
        day_start, day_end = self._local_day_bounds(instant)
        return [
            as_utc(occurrence)
            for occurrence in self._rule.between(day_start, day_end, inc=True)
            if occurrence < day_end
        ]

    def occurs_on(self, instant: datetime | date) -> bool:
        """Whether any occurrence falls on the instant's calendar day."""
        if self.never_occurs:
            return False
        day_start, day_end = self._local_day_bounds(instant)
        first = self._rule.after(day_start, inc=True)
        return first is not None and first < day_end

    def last(self) -> datetime | None:
        """Final occurrence of a terminated series (None if unbounded or empty)."""
        if self.never_occurs:
            return None
        if self.spec.until is not None:
            until_local = as_local(self.spec.until_in(self.timezone), self.timezone)
            result = self._rule.before(until_local, inc=True)
            return as_utc(result) if result is not None else None
        if self.spec.count is not None:
            result = None
            for occurrence in self._rule:
                result = occurrence
            return as_utc(result) if result is not None else None
        return None

    def rebased(self, anchor: datetime | date | str) -> RuleHandle:
        """Same rule re-anchored at a new DTSTART (used for when_done mode)."""
        anchor_local = _anchor_in(anchor, self.timezone, self.expression)
        return RuleHandle(
            expression=self.expression,
            spec=self.spec,
            anchor=anchor_local,
            timezone=self.timezone,
            _rule=_build_rrule(self.spec, anchor_local, self.timezone, self.expression),
        )

    def _to_rule_time(self, instant: datetime | date) -> datetime:
        parsed = dt_parse(instant, self.timezone)
        if parsed is None:
            raise ValueError(f"Invalid instant: {instant!r}")
        return as_local(parsed, self.timezone)

    def _local_day_bounds(self, instant: datetime | date) -> tuple[datetime, datetime]:
        day_start = start_of_local_day(self._to_rule_time(instant), self.timezone)
        # Wall-clock arithmetic: next local midnight, DST-safe
        return day_start, day_start + timedelta(days=1)


# =============================================================================
# Parsing Entry Point
# =============================================================================


class _RRuleVocabulary:
    """Mapping from RRULE tokens to dateutil constants."""

    FREQUENCIES: ClassVar[dict[str, int]] = {
        const.FREQ_YEARLY: YEARLY,
        const.FREQ_MONTHLY: MONTHLY,
        const.FREQ_WEEKLY: WEEKLY,
        const.FREQ_DAILY: DAILY,
        const.FREQ_HOURLY: HOURLY,
        const.FREQ_MINUTELY: MINUTELY,
        const.FREQ_SECONDLY: SECONDLY,
    }
    WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)


def parse(
    expression: str,
    anchor: datetime | date | str,
    timezone: tzinfo | str | None = None,
) -> RuleHandle:
    """Parse a rule expression into a RuleHandle.

    Args:
        expression: RRULE text
        anchor: DTSTART; naive values are read in `timezone`
        timezone: IANA name or tzinfo (defaults to dt_utils default)

    Returns:
        Immutable RuleHandle.

    Raises:
        EmptyRuleSet: If the expression yields no rule.
        MalformedRule: On grammar/invariant violations, an unknown timezone
            or an unusable anchor.
    """
    spec = parse_spec(expression)
    check_spec(spec, expression)

    try:
        tz = resolve_timezone(timezone)
    except ValueError as err:
        raise MalformedRule(str(err), expression) from err

    anchor_local = _anchor_in(anchor, tz, expression)
    return RuleHandle(
        expression=expression,
        spec=spec,
        anchor=anchor_local,
        timezone=tz,
        _rule=_build_rrule(spec, anchor_local, tz, expression),
    )


def _anchor_in(anchor: datetime | date | str, tz: tzinfo, expression: str) -> datetime:
    parsed = dt_parse(anchor, tz)
    if parsed is None:
        raise MalformedRule(f"Invalid anchor: {anchor!r}", expression)
    # dateutil drops microseconds from DTSTART; do the same for the anchor
    return as_local(parsed, tz).replace(microsecond=0)


def _build_rrule(
    spec: RuleSpec, anchor_local: datetime, tz: tzinfo, expression: str
) -> rrule:
    kwargs: dict[str, Any] = {"dtstart": anchor_local, "interval": spec.interval}
    if spec.count is not None:
        kwargs["count"] = spec.count
    if spec.until is not None:
        kwargs["until"] = spec.until_in(tz)
    if spec.byday:
        kwargs["byweekday"] = [
            _RRuleVocabulary.WEEKDAYS[token.weekday](token.ordinal)
            if token.ordinal
            else _RRuleVocabulary.WEEKDAYS[token.weekday]
            for token in spec.byday
        ]
    if spec.bymonthday:
        kwargs["bymonthday"] = list(spec.bymonthday)
    if spec.bymonth:
        kwargs["bymonth"] = list(spec.bymonth)
    if spec.bysetpos:
        kwargs["bysetpos"] = list(spec.bysetpos)
    if spec.wkst is not None:
        kwargs["wkst"] = spec.wkst

    try:
        return rrule(_RRuleVocabulary.FREQUENCIES[spec.freq], **kwargs)
    except (ValueError, TypeError) as err:
        raise MalformedRule(f"Rule rejected: {err}", expression) from err
