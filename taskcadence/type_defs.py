"""Type definitions for taskcadence data structures.

ARCHITECTURE DECISION: TypedDict FOR RECORDS CROSSING THE LIBRARY BOUNDARY
==========================================================================

Everything a caller hands in (tasks) or gets back as plain data (validation
results, explanations, cache statistics, missed occurrence reports) is a
TypedDict. Callers keep working with ordinary dicts and JSON-friendly values,
while engines get static key checking.

Internal, immutable values (RuleSpec, RuleHandle, CacheEntry) are frozen
dataclasses living next to the engine that owns them.

IMPORTANT: This file must NOT import from engines/ to avoid circular
dependencies. Only import from typing (type machinery) and the stdlib.

NOTE: TypedDict is STATIC ANALYSIS ONLY. Runtime handling of missing keys
(.get() defaults, fallbacks) remains in the engines.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, NotRequired, TypedDict

# =============================================================================
# Type Aliases (for readability)
# =============================================================================

TaskId = str
RuleExpression = str  # RFC 5545 RRULE text, "RRULE:" prefix optional
ISODatetime = str  # ISO 8601 datetime string "2026-01-18T12:30:00+00:00"
AnchorInput = datetime | date | str  # Anything dt_parse() accepts
RecurrenceMode = Literal["fixed", "when_done"]
MissPolicy = Literal["skip", "catch-up", "count-only"]


# =============================================================================
# Task Input
# =============================================================================


class StructuredFrequency(TypedDict, total=False):
    """Legacy structured rule stored on older tasks.

    Translated once into a raw expression by phrase_engine.to_expression().
    """

    frequency: str  # "daily" | "weekly" | "monthly" | "yearly"
    interval: int
    weekdays: list[int]  # 0=Monday .. 6=Sunday
    day_of_month: int  # 1..31, 29-31 clamp to last day of month
    month: int  # 1..12 (yearly only)


class TaskData(TypedDict, total=False):
    """A task as seen by the RecurrenceEngine.

    Only `id` plus one rule source (`rrule` or `frequency`) and one anchor
    source (`anchor`, `due_date` or `created_at`) are needed; everything
    else is optional. Extra caller keys are ignored.
    """

    id: TaskId
    rrule: RuleExpression
    frequency: StructuredFrequency
    mode: RecurrenceMode
    anchor: AnchorInput
    due_date: AnchorInput
    created_at: AnchorInput
    time: str  # Fixed time of day, "HH:MM"
    timezone: str  # IANA name, overrides the engine default


# =============================================================================
# Result Records
# =============================================================================


class ValidationResult(TypedDict):
    """Outcome of RuleValidator.validate()."""

    valid: bool
    errors: list[str]  # Rule is unusable
    warnings: list[str]  # Legal but suspicious


class ExplanationStep(TypedDict):
    """Single step in the recurrence calculation trace."""

    step: int
    description: str
    value: NotRequired[str]


class Explanation(TypedDict):
    """Audit trail of a next-occurrence calculation."""

    task_id: TaskId
    reference_date: ISODatetime
    rule: RuleExpression
    mode: RecurrenceMode
    result_date: ISODatetime | None
    evaluation_steps: list[ExplanationStep]
    timezone: str
    warnings: list[str]


class CacheStats(TypedDict):
    """RuleCache statistics (tuning only, never correctness)."""

    size: int
    capacity: int
    hit_rate: float  # 0.0 - 1.0
    total_hits: int
    total_misses: int


class MissedOccurrencesResult(TypedDict):
    """Outcome of RecurrenceEngine.get_missed_occurrences()."""

    missed_dates: list[datetime]
    count: int  # Total missed before max_missed was applied
    limit_reached: bool
    warnings: list[str]
