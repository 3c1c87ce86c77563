from __future__ import annotations

import math
import re
from typing import Any, Callable, Mapping, Optional

from ..core.example import Example, Prediction

Metric = Callable[[Example, Prediction], Any]

_WHITESPACE = re.compile(r"\s+")


def _normalize(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = _WHITESPACE.sub(" ", str(value)).strip().lower()
    return text.rstrip(".!?")


def _gold(example: Example) -> Mapping[str, Any]:
    # Bootstrapped examples carry the original labels in metadata.
    gold = example.metadata.get("gold")
    return gold if isinstance(gold, Mapping) else example.attrs


def exact_match(example: Example, prediction: Prediction, field: str = "answer") -> float:
    expected = _gold(example).get(field)
    predicted = prediction.get(field)
    if expected is None or predicted is None:
        return 0.0
    return 1.0 if _normalize(expected) == _normalize(predicted) else 0.0


def answer_contains(example: Example, prediction: Prediction, field: str = "answer") -> float:
    """Score 1.0 when the expected answer appears inside the predicted one."""
    expected = _gold(example).get(field)
    predicted = prediction.get(field)
    if expected is None or predicted is None:
        return 0.0
    needle = _normalize(expected)
    return 1.0 if needle and needle in _normalize(predicted) else 0.0


def as_score(value: Any) -> Optional[float]:
    """Return ``value`` as a float, or None when it is not a usable number."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if not isinstance(value, (int, float)):
        return None
    score = float(value)
    if math.isnan(score):
        return None
    return score


__all__ = ["Metric", "exact_match", "answer_contains", "as_score"]
