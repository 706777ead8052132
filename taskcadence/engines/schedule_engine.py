"""Schedule Engine for taskcadence.

Orchestration facade over the recurrence subsystem:
- rule_engine: RRULE parsing and evaluation (`dateutil.rrule`)
- rule_cache: LRU memo of parsed rules, owned by one RecurrenceEngine
- rule_validator / rule_explainer / phrase_engine: on-demand helpers

Tasks are plain mappings (TaskData). The engine resolves the task's rule
source (raw `rrule` or legacy structured `frequency`), anchor, timezone,
mode and fixed time, then delegates to the evaluator.

Error boundary: parse failures (MalformedRule) raised on a cache miss
propagate to the caller. Any other failure during computation is logged
with the task id and operation and converted to the operation's empty
result (None, [] or False).
"""

from __future__ import annotations

from datetime import timedelta
from itertools import islice
from typing import TYPE_CHECKING

from .. import const
from ..utils.dt_utils import (
    apply_time_of_day,
    as_local,
    as_utc,
    dt_now_utc,
    dt_parse,
    dt_to_iso,
    get_default_timezone,
    is_date_only,
    parse_time_of_day,
    resolve_timezone,
    timezone_name,
)
from .phrase_engine import StructuredRule, to_expression
from .rule_cache import RuleCache, make_cache_key
from .rule_engine import MalformedRule
from .rule_explainer import RuleExplainer
from .rule_validator import RuleValidator

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from datetime import date, datetime, tzinfo

    from ..type_defs import (
        CacheStats,
        Explanation,
        MissedOccurrencesResult,
        TaskData,
        ValidationResult,
    )
    from .rule_engine import RuleHandle

# Covers a full local day on either side, including 25-hour DST days
_FIXED_TIME_MARGIN = timedelta(days=2)


class RecurrenceEngine:
    """Computes next, preview and range occurrences for recurring tasks.

    Modes:
    - fixed: occurrences derive from the anchor and rule alone
    - when_done: next() re-anchors the series at the reference instant
      (the completion time), sliding the schedule forward

    Each engine owns exactly one RuleCache; it is never shared.
    """

    def __init__(
        self,
        cache_size: int = const.DEFAULT_CACHE_SIZE,
        default_timezone: tzinfo | str | None = None,
    ) -> None:
        """Initialize the recurrence engine.

        Args:
            cache_size: Maximum number of cached rule handles
            default_timezone: Timezone for tasks without their own. When
                None, dt_utils.get_default_timezone() is used at call time.

        Raises:
            ValueError: If cache_size < 1 or the timezone is unknown.
        """
        self._cache = RuleCache(cache_size)
        self._default_timezone = (
            resolve_timezone(default_timezone) if default_timezone else None
        )

    # =========================================================================
    # Occurrence queries
    # =========================================================================

    def next(
        self, task: TaskData, reference: datetime | date | str | None = None
    ) -> datetime | None:
        """Calculate the next occurrence strictly after a reference instant.

        Args:
            task: Task mapping
            reference: Reference instant (completion time for when_done).
                Defaults to now.

        Returns:
            Next occurrence as UTC datetime, or None if the series has no
            further occurrence or the task has no rule.

        Raises:
            MalformedRule: If the task's rule cannot be parsed.
        """
        handle = self._get_handle(task)
        if handle is None:
            return None

        try:
            reference_utc = self._reference(reference, handle.timezone)
            if self._mode(task) == const.MODE_WHEN_DONE:
                handle = handle.rebased(reference_utc)
            return next(self._iter_occurrences(task, handle, reference_utc), None)
        except Exception:
            const.LOGGER.exception(
                "RecurrenceEngine: next() failed for task %s", self._task_id(task)
            )
            return None

    def preview(
        self,
        task: TaskData,
        start: datetime | date | str | None = None,
        limit: int = 10,
    ) -> list[datetime]:
        """List upcoming occurrences strictly after `start`.

        Args:
            task: Task mapping
            start: Exclusive lower bound (defaults to now)
            limit: Maximum occurrences, capped at const.MAX_PREVIEW_LIMIT

        Returns:
            Ordered UTC datetimes; [] for a non-positive limit.

        Raises:
            MalformedRule: If the task's rule cannot be parsed.
        """
        if limit <= 0:
            return []
        if limit > const.MAX_PREVIEW_LIMIT:
            const.LOGGER.warning(
                "RecurrenceEngine: preview limit %d for task %s capped at %d",
                limit,
                self._task_id(task),
                const.MAX_PREVIEW_LIMIT,
            )
            limit = const.MAX_PREVIEW_LIMIT

        handle = self._get_handle(task)
        if handle is None:
            return []

        try:
            start_utc = self._reference(start, handle.timezone)
            return list(islice(self._iter_occurrences(task, handle, start_utc), limit))
        except Exception:
            const.LOGGER.exception(
                "RecurrenceEngine: preview() failed for task %s", self._task_id(task)
            )
            return []

    def between(
        self,
        task: TaskData,
        start: datetime | date | str,
        end: datetime | date | str,
    ) -> list[datetime]:
        """List occurrences within [start, end] (inclusive).

        Naive and date-only bounds are read in the task's timezone; a
        date-only `end` covers its whole day.

        Raises:
            MalformedRule: If the task's rule cannot be parsed.
        """
        handle = self._get_handle(task)
        if handle is None:
            return []

        try:
            start_utc = self._reference(start, handle.timezone)
            end_utc = self._range_end(end, handle.timezone)
            fixed_time = self._fixed_time(task)
            if fixed_time is None:
                return handle.between(start_utc, end_utc, inclusive=True)
            # The fixed time moves an occurrence within its local day, so
            # candidates come from a window wide enough to hold that day
            candidates = handle.between(
                start_utc - _FIXED_TIME_MARGIN,
                end_utc + _FIXED_TIME_MARGIN,
                inclusive=True,
            )
            adjusted = {
                apply_time_of_day(occurrence, *fixed_time, handle.timezone)
                for occurrence in candidates
            }
            return sorted(d for d in adjusted if start_utc <= d <= end_utc)
        except Exception:
            const.LOGGER.exception(
                "RecurrenceEngine: between() failed for task %s", self._task_id(task)
            )
            return []

    def is_occurrence_on(self, task: TaskData, instant: datetime | date | str) -> bool:
        """Whether the task occurs on the instant's calendar day (task timezone).

        Raises:
            MalformedRule: If the task's rule cannot be parsed.
        """
        handle = self._get_handle(task)
        if handle is None:
            return False

        try:
            return handle.occurs_on(self._reference(instant, handle.timezone))
        except Exception:
            const.LOGGER.exception(
                "RecurrenceEngine: is_occurrence_on() failed for task %s",
                self._task_id(task),
            )
            return False

    def get_missed_occurrences(
        self,
        task: TaskData,
        last_checked: datetime | date | str,
        now: datetime | date | str | None = None,
        policy: str = const.MISS_POLICY_SKIP,
        max_missed: int = const.DEFAULT_MAX_MISSED,
        on_missed: Callable[[str, datetime], None] | None = None,
    ) -> MissedOccurrencesResult:
        """Report occurrences that fell strictly between two checks.

        Args:
            task: Task mapping
            last_checked: Previous check time (exclusive)
            now: Current check time (exclusive, defaults to now)
            policy: "skip", "catch-up" or "count-only"
            max_missed: Maximum dates returned
            on_missed: Called as on_missed(task_id, date) per returned date;
                its exceptions are logged and do not stop the others

        Returns:
            MissedOccurrencesResult; `count` is the total before capping.

        Raises:
            ValueError: If the policy is unknown.
            MalformedRule: If the task's rule cannot be parsed.
        """
        if policy not in const.MISS_POLICY_OPTIONS:
            raise ValueError(
                f"Unknown missed occurrence policy: {policy!r} "
                f"(expected one of {', '.join(const.MISS_POLICY_OPTIONS)})"
            )

        if policy == const.MISS_POLICY_SKIP:
            return {
                "missed_dates": [],
                "count": 0,
                "limit_reached": False,
                "warnings": ["Skip policy: missed occurrences are not tracked"],
            }

        task_id = self._task_id(task)
        handle = self._get_handle(task)
        if handle is None:
            return {
                "missed_dates": [],
                "count": 0,
                "limit_reached": False,
                "warnings": [],
            }
        last_checked_utc = self._reference(last_checked, handle.timezone)
        now_utc = self._reference(now, handle.timezone)
        missed = [
            occurrence
            for occurrence in self.between(task, last_checked_utc, now_utc)
            if last_checked_utc < occurrence < now_utc
        ]

        warnings: list[str] = []
        total = len(missed)
        limit_reached = total > max_missed
        if limit_reached:
            warnings.append(
                f"Missed occurrence limit reached: {total} missed, "
                f"returning the first {max_missed}"
            )
            missed = missed[:max_missed]

        if on_missed is not None:
            for occurrence in missed:
                try:
                    on_missed(task_id, occurrence)
                except Exception:
                    const.LOGGER.exception(
                        "RecurrenceEngine: on_missed callback failed for task %s at %s",
                        task_id,
                        dt_to_iso(occurrence),
                    )

        return {
            "missed_dates": missed,
            "count": total,
            "limit_reached": limit_reached,
            "warnings": warnings,
        }

    # =========================================================================
    # Validation, explanation, phrasing
    # =========================================================================

    def is_valid(
        self,
        expression: str,
        anchor: datetime | date | str,
        timezone: tzinfo | str | None = None,
    ) -> ValidationResult:
        """Validate a rule expression (never touches the cache)."""
        return RuleValidator.validate(
            expression, anchor, timezone or self._fallback_timezone()
        )

    def explain(
        self, task: TaskData, reference: datetime | date | str | None = None
    ) -> Explanation:
        """Explain how the next occurrence after `reference` is determined.

        An unknown task timezone is reported as a warning and the
        explanation falls back to the engine's timezone.
        """
        task_id = self._task_id(task)
        tz, tz_warning = self._explain_timezone(task)
        reference_utc = self._reference(reference, tz)
        leading_warnings = [tz_warning] if tz_warning else []

        expression = self._resolve_expression(task)
        if expression is None:
            return {
                "task_id": task_id,
                "reference_date": dt_to_iso(reference_utc),
                "rule": "",
                "mode": self._mode(task),
                "result_date": None,
                "evaluation_steps": [{"step": 1, "description": const.DISPLAY_NO_RRULE}],
                "timezone": timezone_name(tz),
                "warnings": [*leading_warnings, const.DISPLAY_NO_RRULE],
            }

        try:
            result = self.next(task, reference_utc)
        except MalformedRule as err:
            const.LOGGER.warning(
                "RecurrenceEngine: explaining unparseable rule for task %s: %s",
                task_id,
                err,
            )
            result = None

        explanation = RuleExplainer.explain(
            expression,
            self._resolve_anchor(task),
            self._mode(task),
            result,
            reference=reference_utc,
            timezone=tz,
            task_id=task_id,
            fixed_time=task.get(const.DATA_TASK_TIME),
        )
        explanation["warnings"][:0] = leading_warnings
        return explanation

    def explain_date(self, task: TaskData, candidate: datetime | date | str) -> str:
        """Explain why a candidate day is or is not an occurrence.

        Raises:
            MalformedRule: If the task's rule cannot be parsed.
        """
        handle = self._get_handle(task)
        if handle is None:
            return const.DISPLAY_NO_RRULE
        return RuleExplainer.explain_date(handle, candidate)

    def to_natural_language(
        self, expression: str, anchor: datetime | date | str | None = None
    ) -> str:
        """Human-readable summary of a rule expression."""
        return RuleExplainer.summarize(expression, anchor)

    # =========================================================================
    # Cache management
    # =========================================================================

    def clear_cache(self) -> None:
        """Drop every cached rule and reset statistics."""
        self._cache.clear()

    def invalidate_task(self, task_id: str) -> int:
        """Drop every cached rule of a task. Returns the number removed."""
        return self._cache.invalidate_task(task_id)

    def cache_stats(self) -> CacheStats:
        """Return cache statistics."""
        return self._cache.stats()

    # =========================================================================
    # Private: task resolution
    # =========================================================================

    def _get_handle(self, task: TaskData) -> RuleHandle | None:
        """Resolve the task's rule to a (cached) handle; None if it has none."""
        expression = self._resolve_expression(task)
        if expression is None:
            const.LOGGER.warning(
                "RecurrenceEngine: task %s has no recurrence rule", self._task_id(task)
            )
            return None

        anchor = self._resolve_anchor(task)
        if anchor is None:
            raise MalformedRule(
                f"Task {self._task_id(task)} has no anchor, due date or creation date",
                expression,
            )

        key = make_cache_key(self._task_id(task), expression)
        return self._cache.get_or_parse(key, expression, anchor, self._timezone(task))

    @staticmethod
    def _resolve_expression(task: TaskData) -> str | None:
        expression = task.get(const.DATA_TASK_RRULE)
        if expression:
            return expression
        structured = task.get(const.DATA_TASK_FREQUENCY)
        if structured:
            return to_expression(StructuredRule.from_mapping(structured))
        return None

    @staticmethod
    def _resolve_anchor(task: TaskData) -> datetime | date | str | None:
        for key in const.TASK_ANCHOR_KEYS:
            value = task.get(key)
            if value:
                return value
        return None

    def _timezone(self, task: TaskData) -> tzinfo | str:
        return task.get(const.DATA_TASK_TIMEZONE) or self._fallback_timezone()

    def _fallback_timezone(self) -> tzinfo:
        return self._default_timezone or get_default_timezone()

    @staticmethod
    def _mode(task: TaskData) -> str:
        mode = task.get(const.DATA_TASK_MODE) or const.MODE_FIXED
        if mode not in const.MODE_OPTIONS:
            const.LOGGER.warning(
                "RecurrenceEngine: unknown mode %r for task %s, using %s",
                mode,
                task.get(const.DATA_TASK_ID, ""),
                const.MODE_FIXED,
            )
            return const.MODE_FIXED
        return mode

    @staticmethod
    def _fixed_time(task: TaskData) -> tuple[int, int] | None:
        return parse_time_of_day(task.get(const.DATA_TASK_TIME))

    @staticmethod
    def _task_id(task: TaskData) -> str:
        return str(task.get(const.DATA_TASK_ID, ""))

    def _explain_timezone(self, task: TaskData) -> tuple[tzinfo, str | None]:
        """Task timezone for explanations, with a warning when it is unknown."""
        try:
            return resolve_timezone(self._timezone(task)), None
        except ValueError as err:
            fallback = self._fallback_timezone()
            const.LOGGER.warning(
                "RecurrenceEngine: task %s: %s, explaining in %s",
                self._task_id(task),
                err,
                timezone_name(fallback),
            )
            return fallback, f"{err}; explained in {timezone_name(fallback)}"

    @staticmethod
    def _reference(
        value: datetime | date | str | None, tz: tzinfo | None = None
    ) -> datetime:
        """Query instant as UTC; naive and date-only values are read in `tz`."""
        if value is None:
            return dt_now_utc()
        parsed = dt_parse(value, tz)
        if parsed is None:
            raise ValueError(f"Invalid reference date: {value!r}")
        return as_utc(parsed)

    @staticmethod
    def _range_end(value: datetime | date | str, tz: tzinfo) -> datetime:
        """Inclusive range end; a date-only value covers its whole local day."""
        end = RecurrenceEngine._reference(value, tz)
        if is_date_only(value):
            next_day = as_local(end, tz) + timedelta(days=1)
            return as_utc(next_day) - timedelta(microseconds=1)
        return end

    def _iter_occurrences(
        self, task: TaskData, handle: RuleHandle, after: datetime
    ) -> Iterator[datetime]:
        """Occurrences strictly after `after`, with the fixed time applied.

        Applying a fixed time can move an occurrence to or before `after`,
        or onto an already produced instant; such values are skipped so the
        output stays strictly increasing.
        """
        fixed_time = self._fixed_time(task)
        last = after
        for occurrence in handle.iter_after(after):
            if fixed_time is not None:
                occurrence = apply_time_of_day(occurrence, *fixed_time, handle.timezone)
            if occurrence > last:
                last = occurrence
                yield occurrence


def calculate_next_occurrence(
    expression: str,
    anchor: datetime | date | str,
    reference: datetime | date | str | None = None,
    timezone: tzinfo | str | None = None,
) -> datetime | None:
    """Calculate the next occurrence of a rule using RecurrenceEngine.

    Convenience function for one-off calculations without a task.

    Args:
        expression: RRULE text
        anchor: Anchor instant (DTSTART)
        reference: Exclusive lower bound (defaults to now)
        timezone: Rule timezone

    Returns:
        Next occurrence as UTC datetime, or None.

    Raises:
        MalformedRule: If the expression cannot be parsed.
    """
    task: TaskData = {
        "id": "",
        "rrule": expression,
        "anchor": anchor,
    }
    if timezone is not None:
        task["timezone"] = timezone_name(resolve_timezone(timezone))

    engine = RecurrenceEngine(cache_size=1)
    return engine.next(task, reference)
