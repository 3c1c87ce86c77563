from __future__ import annotations

import statistics
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from ..core.errors import NoLMConfiguredError, PromptKitError
from ..core.example import Example
from ..core.module import Module
from ..utils import logging as log_utils
from ..utils.metrics import Metric, as_score

logger = log_utils.get_logger(__name__)


@dataclass
class EvaluationResult:
    mean: float
    std: float
    scores: List[float] = field(default_factory=list)
    failures: int = 0


def evaluate(module: Module, examples: Iterable[Example], metric: Metric, num_threads: int = 1) -> EvaluationResult:
    """Score ``module`` on every example and aggregate mean/std.

    A module failure (any PromptKitError) scores 0.0 and counts as a failure.
    A missing LM client and exceptions raised by the metric itself propagate.
    """
    items = list(examples)
    if not items:
        return EvaluationResult(mean=0.0, std=0.0)

    def score_one(example: Example) -> Tuple[float, bool]:
        try:
            prediction = module.forward(example.to_dict())
        except NoLMConfiguredError:
            raise
        except PromptKitError as exc:
            logger.debug("Module failed during evaluation: %s", exc)
            return 0.0, True
        value = as_score(metric(example, prediction))
        return (value if value is not None else 0.0), False

    if num_threads <= 1:
        results = [score_one(example) for example in items]
    else:
        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            results = list(executor.map(score_one, items))

    scores = [score for score, _ in results]
    failures = sum(1 for _, failed in results if failed)
    return EvaluationResult(
        mean=statistics.fmean(scores),
        std=statistics.pstdev(scores),
        scores=scores,
        failures=failures,
    )


__all__ = ["EvaluationResult", "evaluate"]
