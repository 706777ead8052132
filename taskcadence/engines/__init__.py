"""Engine modules for taskcadence.

Contains the recurrence computation engines:
- rule_engine: RRULE parsing and evaluation (single parsing authority)
- rule_cache: LRU memo of parsed rules
- rule_validator: Syntactic and semantic rule checks
- rule_explainer: Audit narratives and rule summaries
- phrase_engine: Natural-language phrases and legacy structured rules
- schedule_engine: RecurrenceEngine orchestration facade
"""

# Use relative imports within package to avoid mypy module resolution issues
from .phrase_engine import (
    PhraseResult,
    RawRule,
    StructuredRule,
    describe_rule,
    parse_phrase,
    stringify_rule,
    to_expression,
)
from .rule_cache import CacheEntry, RuleCache, make_cache_key
from .rule_engine import (
    EmptyRuleSet,
    MalformedRule,
    RecurrenceError,
    RuleHandle,
    RuleSpec,
    parse,
    parse_spec,
)
from .rule_explainer import RuleExplainer
from .rule_validator import RuleValidator
from .schedule_engine import RecurrenceEngine, calculate_next_occurrence

__all__ = [
    "CacheEntry",
    "EmptyRuleSet",
    "MalformedRule",
    "PhraseResult",
    "RawRule",
    "RecurrenceEngine",
    "RecurrenceError",
    "RuleCache",
    "RuleExplainer",
    "RuleHandle",
    "RuleSpec",
    "RuleValidator",
    "StructuredRule",
    "calculate_next_occurrence",
    "describe_rule",
    "make_cache_key",
    "parse",
    "parse_phrase",
    "parse_spec",
    "stringify_rule",
    "to_expression",
]
