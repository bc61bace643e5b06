"""Rule clause evaluation.

A rule matches a stream when every one of its clauses matches (a rule without
clauses always matches). Clauses read stream attributes through a closed
accessor table; a name missing from the table, or an attribute the probe did
not report, is simply absent. Absence loses every comparison except ``!=``.
"""

import logging
import operator
from typing import Any, Callable, Dict, Optional, Union

from encodarr.config.models import Rule, RuleClause
from encodarr.domain.errors import InvalidComparison, InvalidRule
from encodarr.domain.models import Stream

Log = Union[logging.Logger, logging.LoggerAdapter]


def _output_field(name: str) -> Callable[[Stream], Any]:
    def read(stream: Stream) -> Any:
        return getattr(stream.output, name) if stream.output is not None else None
    return read


_STREAM_ACCESSORS: Dict[str, Callable[[Stream], Any]] = {
    "index": lambda s: s.index,
    "kind": lambda s: s.kind.value,
    "codec": lambda s: s.codec,
    "language": lambda s: s.language,
    "title": lambda s: s.title,
    "bitrate": lambda s: s.bitrate,
    "width": lambda s: s.width,
    "height": lambda s: s.height,
    "framerate": lambda s: s.framerate,
    "is_hdr": lambda s: s.is_hdr,
    "channels": lambda s: s.channels,
    "sample_rate": lambda s: s.sample_rate,
    "is_primary": lambda s: s.is_primary,
}

_ALIASES = {
    "type": "kind",
    "hdr": "is_hdr",
    "ishdr": "is_hdr",
    "samplerate": "sample_rate",
    "primary": "is_primary",
    "isprimary": "is_primary",
}

_OUTPUT_FIELDS = ("codec", "crf", "bitrate", "size", "preset", "tune", "tonemap", "skip")
_OUTPUT_PREFIXES = ("output.", "profile.")

for _name in _OUTPUT_FIELDS:
    _STREAM_ACCESSORS[f"output.{_name}"] = _output_field(_name)


def lookup_property(stream: Stream, name: str) -> Any:
    """Return the named attribute of ``stream`` or ``None`` when it is absent."""
    key = name.strip().lower()
    for prefix in _OUTPUT_PREFIXES:
        if key.startswith(prefix):
            key = "output." + key[len(prefix):]
            break
    else:
        key = _ALIASES.get(key, key)
    accessor = _STREAM_ACCESSORS.get(key)
    if accessor is None:
        return None
    return accessor(stream)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_literal(actual: Any, expected: Any) -> Any:
    """Read a quoted number in the config as a number when the property is numeric."""
    if _is_number(actual) and isinstance(expected, str):
        try:
            return float(expected)
        except ValueError:
            return expected
    return expected


def _contains(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, str):
        return False
    return str(expected).lower() in actual.lower()


_RELATIONAL = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

_EQUALITY = {
    "==": operator.eq,
    "!=": operator.ne,
}

OPERATORS = tuple(_RELATIONAL) + tuple(_EQUALITY) + ("contains",)


def evaluate_clause(clause: RuleClause, stream: Stream) -> bool:
    """Evaluate one clause.

    Raises:
        InvalidRule: the operator is unknown.
        InvalidComparison: a relational operator was given operands without an ordering.
    """
    op = clause.operator.strip().lower()
    if op not in OPERATORS:
        raise InvalidRule(clause.operator)

    actual = lookup_property(stream, clause.property)
    if actual is None:
        return op == "!="

    if op == "contains":
        return _contains(actual, clause.value)

    expected = _coerce_literal(actual, clause.value)
    if op in _EQUALITY:
        return _EQUALITY[op](actual, expected)

    try:
        return _RELATIONAL[op](actual, expected)
    except TypeError:
        raise InvalidComparison(clause.property, clause.operator, actual, clause.value) from None


class RuleEvaluator:
    """Evaluates rules against streams, turning malformed rules into non-matches."""

    def __init__(self, logger: Optional[Log] = None):
        self.logger = logger or logging.getLogger(__name__)

    def evaluate(self, rule: Rule, stream: Stream) -> bool:
        if not rule.clauses:
            return True
        try:
            return all(evaluate_clause(clause, stream) for clause in rule.clauses)
        except (InvalidRule, InvalidComparison) as e:
            label = rule.description or f"{rule.kind or 'selection'} rule"
            self.logger.warning(f"Ignoring {label} for stream {stream.index}: {e}")
            return False

    def any_match(self, rules, stream: Stream) -> bool:
        return any(self.evaluate(rule, stream) for rule in rules)
