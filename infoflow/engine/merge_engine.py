"""Merge Engine - Aggregate child submissions into one record

Pure function of its inputs: no I/O, no clock, no randomness. Accepts
ChildSubmission models or plain mappings with ``branch``, ``state`` and
``data`` keys, so the same code serves consolidation and merge previews.
"""
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..domain.enums import MergeStrategy
from ..domain.errors import ValidationError

Number = Union[int, float]


def _read(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _as_number(value: Any) -> Optional[Number]:
    """Numeric view of a value; booleans are not numbers"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and not math.isfinite(value) else value
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def parse_strategies(strategies: Optional[Mapping[str, Any]]) -> Dict[str, MergeStrategy]:
    """
    Validate a {field: strategy} map

    Raises:
        ValidationError: If a strategy name is unknown
    """
    parsed: Dict[str, MergeStrategy] = {}
    for field, name in (strategies or {}).items():
        try:
            parsed[field] = MergeStrategy(name.lower() if isinstance(name, str) else name)
        except ValueError:
            raise ValidationError(
                f"Unknown merge strategy '{name}' for field '{field}'",
                details={
                    "field": field,
                    "strategy": str(name),
                    "allowed": [s.value for s in MergeStrategy]
                }
            )
    return parsed


def _reduce_numeric(strategy: MergeStrategy, numbers: List[Number]) -> Number:
    if strategy == MergeStrategy.SUM:
        return sum(numbers)
    if strategy == MergeStrategy.AVG:
        return sum(numbers) / len(numbers)
    if strategy == MergeStrategy.MAX:
        return max(numbers)
    return min(numbers)


def _concat(values: List[Tuple[Optional[str], Any]]) -> Optional[str]:
    blocks = []
    for label, value in values:
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        blocks.append(f"[{label}]\n{text}" if label else text)
    return "\n\n".join(blocks) if blocks else None


def merge_submissions(
    submissions: Iterable[Any],
    strategies: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """
    Merge submission payloads field by field

    Args:
        submissions: ChildSubmission models or mappings, in merge order
        strategies: {field: sum|avg|max|min|concat}

    Returns:
        Merged data. Fields with no strategy pass through only when exactly
        one submission carries them; a field whose strategy finds nothing to
        reduce is left out.
    """
    plan = parse_strategies(strategies)

    # field -> [(label, value)] in input order, fields in first-seen order
    collected: Dict[str, List[Tuple[Optional[str], Any]]] = {}
    for item in submissions:
        data = _read(item, "data") or {}
        label = _read(item, "branch") or _read(item, "state")
        for field, value in data.items():
            collected.setdefault(field, []).append((label, value))

    merged: Dict[str, Any] = {}
    for field, values in collected.items():
        strategy = plan.get(field)

        if strategy is None:
            if len(values) == 1:
                merged[field] = values[0][1]
            continue

        if strategy == MergeStrategy.CONCAT:
            text = _concat(values)
            if text is not None:
                merged[field] = text
            continue

        numbers = [n for n in (_as_number(v) for _, v in values) if n is not None]
        if numbers:
            merged[field] = _reduce_numeric(strategy, numbers)

    return merged
