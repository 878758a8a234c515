"""
Identifier and value normalization helpers.

Raw records arrive with the same concept spread over many differently
spelled fields and with loosely typed values.  Everything here is
permissive: malformed input yields None, never an exception.

Accessor rules
--------------
A rule is either a field name (``"StorageId"``) or a tuple path into nested
dicts (``("Storage", "StorageId")``).  Concepts are described by ordered
tuples of rules (see constants.py) and resolved by ``first_present``.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Sequence

Rule = Any

_NUMERIC_TOKEN_RE = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?")


def normalize_lookup_key(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text.lower()


def safe_string(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def to_numeric_value(value: Any) -> Optional[float]:
    """Coerce ``value`` to a finite float.

    Strings may carry thousands separators or units ("1,200 t"); the first
    numeric token wins.  Booleans map to 1/0.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        normalized = value.replace(",", "").strip()
        if not normalized:
            return None
        match = _NUMERIC_TOKEN_RE.search(normalized)
        if not match:
            return None
        try:
            number = float(match.group(0))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def to_index_value(value: Any) -> Optional[int]:
    """Segment-index hints only count when they are real numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        if not math.isfinite(value):
            return None
    except OverflowError:
        return None
    return int(value)


def parse_epoch_ms(value: Any) -> Optional[float]:
    """Parse a timestamp into epoch milliseconds.

    Finite numbers are taken as epoch ms already.  Strings may be numeric or
    ISO-8601 (a trailing ``Z`` is accepted; naive times are read as UTC).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None:
        return number if math.isfinite(number) else None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000.0


def _read_rule(source: Any, rule: Rule) -> Any:
    if isinstance(rule, tuple):
        current = source
        for key in rule:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        return current
    if not isinstance(source, dict):
        return None
    return source.get(rule)


def first_present(
    source: Any,
    rules: Sequence[Rule],
    coerce: Optional[Callable[[Any], Any]] = None,
) -> Any:
    """Return the first present value named by ``rules`` (after ``coerce``)."""
    for rule in rules:
        value = _read_rule(source, rule)
        if coerce is not None:
            value = coerce(value)
        if is_present(value):
            return value
    return None


def collect_present(source: Any, rules: Sequence[Rule]) -> List[Any]:
    out = []
    for rule in rules:
        value = _read_rule(source, rule)
        if is_present(value):
            out.append(value)
    return out


def first_numeric(source: Any, rules: Sequence[Rule]) -> Optional[float]:
    return first_present(source, rules, coerce=to_numeric_value)


def first_numeric_from(sources: Iterable[Any], rules: Sequence[Rule]) -> Optional[float]:
    for source in sources:
        value = first_numeric(source, rules)
        if value is not None:
            return value
    return None


def first_list(source: Any, rules: Sequence[Rule]) -> List[Any]:
    for rule in rules:
        value = _read_rule(source, rule)
        if isinstance(value, list):
            return value
    return []


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))
