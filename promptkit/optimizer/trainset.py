from __future__ import annotations

import os
import random
import re
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Set

from ..core.errors import TrainsetError
from ..core.example import Example
from ..core.signature import format_value
from ..utils import helpers

_TOKEN = re.compile(r"\w+")


class SamplingStrategy(str, Enum):
    RANDOM = "random"
    DIVERSE = "diverse"
    HARD = "hard"


def validate(trainset: Optional[Iterable[Example | Mapping[str, Any]]]) -> List[Example]:
    """Return the trainset as a list of Examples or raise TrainsetError."""
    if trainset is None:
        raise TrainsetError("trainset is required")
    validated: List[Example] = []
    for idx, item in enumerate(trainset):
        if isinstance(item, Example):
            example = item
        elif isinstance(item, Mapping):
            example = Example.from_mapping(item)
        else:
            raise TrainsetError(f"trainset entry {idx} is not an example: {type(item).__name__}")
        if not example.attrs:
            raise TrainsetError(f"trainset entry {idx} has no attributes")
        validated.append(example)
    if not validated:
        raise TrainsetError("trainset must contain at least one example")
    return validated


def load_trainset(path: os.PathLike[str] | str) -> List[Example]:
    return validate(helpers.load_jsonl(path))


def sample(
    trainset: Sequence[Example],
    n: int,
    strategy: SamplingStrategy | str = SamplingStrategy.RANDOM,
    rng: Optional[random.Random] = None,
) -> List[Example]:
    """Pick at most ``n`` examples using the named strategy."""
    strategy = SamplingStrategy(strategy)
    rng = rng or random.Random()
    pool = list(trainset)
    count = max(0, min(int(n), len(pool)))
    if count == 0:
        return []
    if strategy is SamplingStrategy.DIVERSE:
        return _sample_diverse(pool, count, rng)
    if strategy is SamplingStrategy.HARD:
        return _sample_hard(pool, count)
    return rng.sample(pool, count)


def _tokens(example: Example) -> Set[str]:
    text = " ".join(format_value(value) for value in example.attrs.values())
    return {token.lower() for token in _TOKEN.findall(text)}


def _distance(left: Set[str], right: Set[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return 1.0 - len(left & right) / len(union)


def _sample_diverse(pool: List[Example], count: int, rng: random.Random) -> List[Example]:
    # Greedy farthest-first traversal over token-set Jaccard distance.
    tokens = [_tokens(example) for example in pool]
    first = rng.randrange(len(pool))
    chosen = [first]
    nearest = [_distance(tokens[idx], tokens[first]) for idx in range(len(pool))]
    while len(chosen) < count:
        remaining = [idx for idx in range(len(pool)) if idx not in chosen]
        pick = max(remaining, key=lambda idx: (nearest[idx], -idx))
        chosen.append(pick)
        for idx in remaining:
            nearest[idx] = min(nearest[idx], _distance(tokens[idx], tokens[pick]))
    return [pool[idx] for idx in chosen]


def _sample_hard(pool: List[Example], count: int) -> List[Example]:
    def difficulty(example: Example) -> float:
        try:
            return float(example.metadata.get("difficulty", 0.0))
        except (TypeError, ValueError):
            return 0.0

    def size(example: Example) -> int:
        return sum(len(format_value(value)) for value in example.attrs.values())

    ranked = sorted(pool, key=lambda example: (-difficulty(example), -size(example)))
    return ranked[:count]


__all__ = ["SamplingStrategy", "validate", "load_trainset", "sample"]
