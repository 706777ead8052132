"""taskcadence - recurrence evaluation for recurring tasks.

Computes when a recurring task is next due, previews upcoming occurrences,
validates RFC 5545 RRULE definitions, explains scheduling decisions and
translates between rules and a small natural-language phrase dialect.

Usage:
    from taskcadence import RecurrenceEngine

    engine = RecurrenceEngine(default_timezone="Europe/Berlin")
    engine.next({"id": "t1", "rrule": "FREQ=DAILY", "anchor": "2024-01-01T09:00"})
"""

from .engines import (
    EmptyRuleSet,
    MalformedRule,
    PhraseResult,
    RawRule,
    RecurrenceEngine,
    RecurrenceError,
    StructuredRule,
    calculate_next_occurrence,
    parse_phrase,
    stringify_rule,
    to_expression,
)

__all__ = [
    "EmptyRuleSet",
    "MalformedRule",
    "PhraseResult",
    "RawRule",
    "RecurrenceEngine",
    "RecurrenceError",
    "StructuredRule",
    "calculate_next_occurrence",
    "parse_phrase",
    "stringify_rule",
    "to_expression",
]
