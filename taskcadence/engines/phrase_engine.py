"""Phrase Engine - natural-language phrases <-> recurrence rules.

Phrase dialect (case and whitespace insensitive):
    every [N] <day|week|month|year>[s] [on <weekdays>] [when done|when due]
    every [N] month[s] on the <Nth|last day|ordinal weekday>
    every [N] month[s] on the <Nth>, <Nth> and last day
    every [N] year[s] on <month> <Nth>
    every [N] year[s] on the <Nth|last day> of <month>
    every <Nth>[ and <Nth>] [of the month]
                                     -> FREQ=MONTHLY;BYMONTHDAY=<n>[,<n>]
    every weekday[s]                 -> Monday..Friday
    every weekend[s]                 -> Saturday, Sunday
    every <weekdays>                 -> weekly on those days
    every <first..fourth|last|1st..4th> <weekday> [of the month]
                                     -> FREQ=MONTHLY;BYDAY=<WD>;BYSETPOS=<n>

Parsing fails closed: unrecognized input yields an invalid PhraseResult with
a reason, never a guess.

Month-day construction clamps: a requested day 29-31 becomes the last day of
the month (BYMONTHDAY=-1). The same rule applies to legacy structured rules
(StructuredRule), so those always land on a date every month. Raw rule
expressions are never rewritten.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import TYPE_CHECKING

from .. import const
from .rule_engine import DayToken, MalformedRule, RuleSpec, check_spec, parse_spec

if TYPE_CHECKING:
    from ..type_defs import StructuredFrequency


@dataclass(frozen=True)
class PhraseResult:
    """Outcome of parse_phrase().

    Attributes:
        rule: RRULE expression (None when invalid)
        is_valid: Whether the phrase was recognized
        error: Reason the phrase was rejected
        when_done: Whether the phrase asked for completion-based scheduling
    """

    rule: str | None
    is_valid: bool
    error: str | None = None
    when_done: bool = False

    @property
    def mode(self) -> str:
        """Scheduling mode implied by the phrase."""
        return const.MODE_WHEN_DONE if self.when_done else const.MODE_FIXED


class PhraseError(ValueError):
    """Internal signal for a rejected phrase (surfaced as PhraseResult.error)."""


# =============================================================================
# Vocabulary
# =============================================================================

_WEEKDAY_WORDS: dict[str, int] = {
    word: index
    for index, name in enumerate(const.WEEKDAY_NAMES)
    for word in (name.lower(), name.lower()[:3])
}

_ORDINAL_LOOKUP: dict[str, int] = {word: n for n, word in const.ORDINAL_WORDS.items()}

_MONTH_WORDS: dict[str, int] = {
    word: index
    for index, name in enumerate(const.MONTH_NAMES, start=1)
    for word in (name.lower(), name.lower()[:3])
}

_UNIT_FREQUENCIES = {
    "day": const.FREQ_DAILY,
    "week": const.FREQ_WEEKLY,
    "month": const.FREQ_MONTHLY,
    "year": const.FREQ_YEARLY,
}

_WHEN_SUFFIX = re.compile(r"\s+when\s+(?P<kind>done|due)$")
_INTERVAL_FORM = re.compile(
    r"^(?:(?P<interval>\d+)\s+)?(?P<unit>day|week|month|year)s?(?:\s+on\s+(?P<on>.+))?$"
)
_ORDINAL_WEEKDAY_FORM = re.compile(
    r"^(?P<ordinal>\w+)\s+(?P<weekday>[a-z]+?)s?(?:\s+of\s+the\s+month)?$"
)
_NUMERIC_ORDINAL = re.compile(r"^(?P<number>\d+)(?:st|nd|rd|th)$")
_MONTH_DAY_ITEM = re.compile(
    r"^(?:the\s+)?(?:(?P<day>\d+)(?:st|nd|rd|th)?|(?P<last>last))(?:\s+day)?$"
)
_MONTH_DAY_SHORTHAND = re.compile(
    r"^(?P<days>\d+(?:st|nd|rd|th)(?:(?:\s*,\s*|\s+and\s+)\d+(?:st|nd|rd|th))*)"
    r"(?:\s+of\s+the\s+month)?$"
)
_YEARLY_MONTH_FIRST = re.compile(r"^(?P<month>[a-z]+)\s+(?P<day>\d+)(?:st|nd|rd|th)?$")
_YEARLY_DAY_FIRST = re.compile(
    r"^the\s+(?:(?P<day>\d+)(?:st|nd|rd|th)?|(?P<last>last)\s+day)\s+of\s+(?P<month>[a-z]+)$"
)
_LIST_SEPARATOR = re.compile(r"\s*(?:,|\band\b)\s*")


# =============================================================================
# Phrase -> Rule
# =============================================================================


def parse_phrase(phrase: str) -> PhraseResult:
    """Translate a phrase into an RRULE expression.

    Args:
        phrase: Phrase such as "every 2 weeks on monday and friday when done"

    Returns:
        PhraseResult; `is_valid` False with `error` set when unrecognized.

    Examples:
        "every 3 days"        -> FREQ=DAILY;INTERVAL=3
        "every 3rd Friday"    -> FREQ=MONTHLY;BYDAY=FR;BYSETPOS=3
        "every weekday"       -> FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR
    """
    if not isinstance(phrase, str) or not phrase.strip():
        return PhraseResult(rule=None, is_valid=False, error="Phrase is empty")

    text = " ".join(phrase.lower().split()).rstrip(".")
    when_done = False
    suffix = _WHEN_SUFFIX.search(text)
    if suffix:
        when_done = suffix.group("kind") == "done"
        text = text[: suffix.start()]

    if not text.startswith("every "):
        return PhraseResult(
            rule=None, is_valid=False, error="Phrase must start with 'every'"
        )

    try:
        spec = _parse_body(text[len("every ") :].strip())
        check_spec(spec)
    except (PhraseError, MalformedRule) as err:
        return PhraseResult(rule=None, is_valid=False, error=str(err))

    return PhraseResult(rule=spec.to_expression(), is_valid=True, when_done=when_done)


def _parse_body(body: str) -> RuleSpec:
    """Parse the part of the phrase following "every"."""
    if body in ("weekday", "weekdays"):
        return RuleSpec(
            freq=const.FREQ_WEEKLY,
            byday=tuple(DayToken(day) for day in const.WEEKDAY_INDEXES_WORKWEEK),
        )
    if body in ("weekend", "weekends"):
        return RuleSpec(
            freq=const.FREQ_WEEKLY,
            byday=tuple(DayToken(day) for day in const.WEEKDAY_INDEXES_WEEKEND),
        )

    match = _INTERVAL_FORM.match(body)
    if match:
        interval = int(match.group("interval") or 1)
        if interval < 1:
            raise PhraseError("Interval must be at least 1")
        freq = _UNIT_FREQUENCIES[match.group("unit")]
        spec = RuleSpec(freq=freq, interval=interval)
        if match.group("on"):
            spec = _apply_on_clause(spec, match.group("on"))
        return spec

    match = _ORDINAL_WEEKDAY_FORM.match(body)
    if match and match.group("weekday") in _WEEKDAY_WORDS:
        return _ordinal_weekday_spec(
            match.group("ordinal"), match.group("weekday"), interval=1
        )

    match = _MONTH_DAY_SHORTHAND.match(body)
    if match:
        return RuleSpec(
            freq=const.FREQ_MONTHLY, bymonthday=_try_month_day_list(match.group("days"))
        )

    weekdays = _try_weekday_list(body)
    if weekdays:
        return RuleSpec(freq=const.FREQ_WEEKLY, byday=weekdays)

    raise PhraseError(f"Unrecognized recurrence phrase: 'every {body}'")


def _apply_on_clause(spec: RuleSpec, clause: str) -> RuleSpec:
    """Refine an interval rule with its "on ..." qualifier."""
    if spec.freq == const.FREQ_WEEKLY:
        weekdays = _try_weekday_list(clause)
        if not weekdays:
            raise PhraseError(f"Unrecognized weekdays: '{clause}'")
        return RuleSpec(freq=spec.freq, interval=spec.interval, byday=weekdays)

    if spec.freq == const.FREQ_MONTHLY:
        days = _try_month_day_list(clause)
        if days:
            return RuleSpec(freq=spec.freq, interval=spec.interval, bymonthday=days)
        ordinal_match = _ORDINAL_WEEKDAY_FORM.match(clause.removeprefix("the "))
        if ordinal_match and ordinal_match.group("weekday") in _WEEKDAY_WORDS:
            return _ordinal_weekday_spec(
                ordinal_match.group("ordinal"),
                ordinal_match.group("weekday"),
                interval=spec.interval,
            )
        raise PhraseError(f"Unrecognized day of month: '{clause}'")

    if spec.freq == const.FREQ_YEARLY:
        month, day = _parse_month_date(clause)
        return RuleSpec(
            freq=spec.freq,
            interval=spec.interval,
            bymonth=(month,),
            bymonthday=(day,),
        )

    raise PhraseError(
        f"'on ...' is only supported for weeks, months and years, not {spec.unit}s"
    )


def _parse_month_date(clause: str) -> tuple[int, int]:
    """Parse "january 15th" or "the last day of february" to (month, day)."""
    match = _YEARLY_MONTH_FIRST.match(clause) or _YEARLY_DAY_FIRST.match(clause)
    if match is None or match.group("month") not in _MONTH_WORDS:
        raise PhraseError(f"Unrecognized date: '{clause}'")
    month = _MONTH_WORDS[match.group("month")]
    if match.groupdict().get("last"):
        return month, const.LAST_DAY_OF_MONTH
    return month, clamp_month_day(int(match.group("day")))


def _ordinal_weekday_spec(ordinal_text: str, weekday_text: str, interval: int) -> RuleSpec:
    return RuleSpec(
        freq=const.FREQ_MONTHLY,
        interval=interval,
        byday=(DayToken(_WEEKDAY_WORDS[weekday_text]),),
        bysetpos=(_parse_ordinal(ordinal_text),),
    )


def _parse_ordinal(text: str) -> int:
    if text in _ORDINAL_LOOKUP:
        return _ORDINAL_LOOKUP[text]
    match = _NUMERIC_ORDINAL.match(text)
    if match:
        number = int(match.group("number"))
        if number in const.ORDINAL_WORDS:
            return number
    raise PhraseError(f"Unsupported ordinal: '{text}' (use first-fourth or last)")


def _try_weekday_list(text: str) -> tuple[DayToken, ...]:
    """Parse "monday, wed and friday" into sorted tokens; () if not a list."""
    words = [word for word in _LIST_SEPARATOR.split(text) if word]
    indexes: set[int] = set()
    for word in words:
        singular = word[:-1] if word.endswith("s") and word[:-1] in _WEEKDAY_WORDS else word
        if singular not in _WEEKDAY_WORDS:
            return ()
        indexes.add(_WEEKDAY_WORDS[singular])
    return tuple(DayToken(day) for day in sorted(indexes))


def _try_month_day_list(text: str) -> tuple[int, ...]:
    """Parse "the 1st, 15th and last day" into rule values; () if not a list.

    Values are clamped, deduplicated and ordered with the last day at the end.
    """
    words = [
        word for word in _LIST_SEPARATOR.split(text.removesuffix(" of the month")) if word
    ]
    days: set[int] = set()
    for word in words:
        match = _MONTH_DAY_ITEM.match(word)
        if match is None:
            return ()
        if match.group("last"):
            days.add(const.LAST_DAY_OF_MONTH)
        else:
            days.add(clamp_month_day(int(match.group("day"))))
    return _month_day_order(days)


def _month_day_order(days: set[int] | tuple[int, ...]) -> tuple[int, ...]:
    return tuple(sorted(set(days), key=lambda day: (day < 0, day)))


def clamp_month_day(day: int) -> int:
    """Map a requested day of month to a rule value (29-31 -> last day).

    Raises:
        MalformedRule: If the day is outside 1-31.
    """
    if not 1 <= day <= 31:
        raise MalformedRule(f"Day of month out of range: {day}")
    if day in const.SHORT_MONTH_DAYS:
        return const.LAST_DAY_OF_MONTH
    return day


# =============================================================================
# Rule -> Phrase
# =============================================================================


def describe_rule(expression: str, when_done: bool = False) -> str | None:
    """Exact phrase for a rule, or None if the dialect cannot express it.

    Every phrase returned here parses back to the same rule.

    Raises:
        MalformedRule: If the expression cannot be parsed.
    """
    spec = parse_spec(expression)
    check_spec(spec, expression)

    phrase = _describe_spec(spec)
    if phrase is None:
        return None
    return f"{phrase} when done" if when_done else phrase


def stringify_rule(expression: str, when_done: bool = False) -> str:
    """Phrase for a rule, falling back to "every N <unit>s".

    Raises:
        MalformedRule: If the expression cannot be parsed.
    """
    phrase = describe_rule(expression, when_done)
    if phrase is not None:
        return phrase

    spec = parse_spec(expression)
    fallback = _every(spec)
    return f"{fallback} when done" if when_done else fallback


def _every(spec: RuleSpec) -> str:
    if spec.interval == 1:
        return f"every {spec.unit}"
    return f"every {spec.interval} {spec.unit}s"


def _describe_spec(spec: RuleSpec) -> str | None:
    if spec.has_terminator or spec.wkst is not None:
        return None
    if spec.bymonth and spec.freq != const.FREQ_YEARLY:
        return None
    if spec.freq not in _UNIT_FREQUENCIES.values():
        return None
    if any(token.ordinal is not None for token in spec.byday):
        return None

    weekdays = tuple(token.weekday for token in spec.byday)

    if spec.freq == const.FREQ_WEEKLY and not spec.bymonthday and not spec.bysetpos:
        if not weekdays:
            return _every(spec)
        if list(weekdays) != sorted(set(weekdays)):
            return None
        if spec.interval == 1 and weekdays == const.WEEKDAY_INDEXES_WORKWEEK:
            return "every weekday"
        if spec.interval == 1 and weekdays == const.WEEKDAY_INDEXES_WEEKEND:
            return "every weekend"
        return f"{_every(spec)} on {join_words(_weekday_names(weekdays))}"

    if spec.freq == const.FREQ_MONTHLY:
        if not spec.byday and not spec.bymonthday:
            return _every(spec)
        if len(weekdays) == 1 and len(spec.bysetpos) == 1 and not spec.bymonthday:
            ordinal = const.ORDINAL_WORDS.get(spec.bysetpos[0])
            if ordinal is None:
                return None
            weekday = const.WEEKDAY_NAMES[weekdays[0]]
            if spec.interval == 1:
                return f"every {ordinal} {weekday}"
            return f"{_every(spec)} on the {ordinal} {weekday}"
        if spec.bymonthday and not spec.byday and not spec.bysetpos:
            days = _month_day_words(spec.bymonthday)
            if days is None:
                return None
            return f"{_every(spec)} on the {join_words(days)}"
        return None

    if spec.freq == const.FREQ_YEARLY and spec.bymonth:
        if spec.byday or spec.bysetpos:
            return None
        if len(spec.bymonth) != 1 or len(spec.bymonthday) != 1:
            return None
        month = const.MONTH_NAMES[spec.bymonth[0] - 1]
        day = spec.bymonthday[0]
        if day == const.LAST_DAY_OF_MONTH:
            return f"{_every(spec)} on the last day of {month}"
        if 1 <= day < min(const.SHORT_MONTH_DAYS):
            return f"{_every(spec)} on {month} {ordinal_suffix(day)}"
        return None

    if spec.byday or spec.bymonthday or spec.bysetpos:
        return None
    return _every(spec)


def _month_day_words(days: tuple[int, ...]) -> list[str] | None:
    """"1st", "15th", "last day" for canonical month days; None otherwise."""
    if days != _month_day_order(days):
        return None
    words = []
    for day in days:
        if day == const.LAST_DAY_OF_MONTH:
            words.append("last day")
        elif 1 <= day < min(const.SHORT_MONTH_DAYS):
            words.append(ordinal_suffix(day))
        else:
            return None
    return words


def _weekday_names(weekdays: tuple[int, ...]) -> list[str]:
    return [const.WEEKDAY_NAMES[day] for day in weekdays]


def join_words(words: list[str]) -> str:
    """Join words as "a", "a and b" or "a, b and c"."""
    if len(words) <= 1:
        return "".join(words)
    return f"{', '.join(words[:-1])} and {words[-1]}"


def ordinal_suffix(number: int) -> str:
    """Render 1 -> "1st", 2 -> "2nd", 11 -> "11th", 23 -> "23rd"."""
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


# =============================================================================
# Legacy structured rules
# =============================================================================


@dataclass(frozen=True)
class RawRule:
    """A rule already expressed as RRULE text."""

    expression: str


@dataclass(frozen=True)
class StructuredRule:
    """A legacy structured rule (frequency + fields).

    Attributes:
        frequency: "daily" | "weekly" | "monthly" | "yearly"
        interval: Step between periods (>= 1)
        weekdays: Weekday indexes, 0=Monday .. 6=Sunday
        day_of_month: 1-31 (29-31 clamp to the last day of the month)
        month: 1-12 (yearly rules only)
    """

    frequency: str
    interval: int = 1
    weekdays: tuple[int, ...] = ()
    day_of_month: int | None = None
    month: int | None = None

    @classmethod
    def from_mapping(cls, data: StructuredFrequency) -> StructuredRule:
        """Build from the `frequency` mapping stored on a task."""
        return cls(
            frequency=str(data.get("frequency", "")),
            interval=int(data.get("interval") or 1),
            weekdays=tuple(data.get("weekdays", ())),
            day_of_month=data.get("day_of_month"),
            month=data.get("month"),
        )


def to_expression(source: RawRule | StructuredRule) -> str:
    """Translate a rule source into RRULE text.

    Raw rules pass through unchanged; structured rules are translated once.

    Raises:
        MalformedRule: If a structured rule has an unknown frequency or
            out-of-range fields.
    """
    if isinstance(source, RawRule):
        return source.expression

    freq = source.frequency.upper()
    if freq not in _UNIT_FREQUENCIES.values():
        raise MalformedRule(f"Unknown structured frequency: {source.frequency!r}")

    for day in source.weekdays:
        if not 0 <= day <= 6:
            raise MalformedRule(f"Weekday index out of range: {day}")
    byday = tuple(DayToken(day) for day in sorted(set(source.weekdays)))

    bymonthday: tuple[int, ...] = ()
    bymonth: tuple[int, ...] = ()
    if freq in (const.FREQ_MONTHLY, const.FREQ_YEARLY) and source.day_of_month:
        bymonthday = (clamp_month_day(source.day_of_month),)
    if freq == const.FREQ_YEARLY and source.month:
        bymonth = (source.month,)

    spec = RuleSpec(
        freq=freq,
        interval=source.interval,
        byday=byday if freq in (const.FREQ_DAILY, const.FREQ_WEEKLY) else (),
        bymonthday=bymonthday,
        bymonth=bymonth,
    )
    check_spec(spec)
    return spec.to_expression()
