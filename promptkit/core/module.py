from __future__ import annotations

import time
from dataclasses import dataclass
from logging import Logger
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

from ..utils import logging as log_utils
from .errors import NoLMConfiguredError
from .example import Prediction
from .parameter import Parameter

T = TypeVar("T")

# Reserved input key carrying a pre-formatted few-shot block into a module's prompt.
FEW_SHOT_CONTEXT_KEY = "few_shot_examples"


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed attempt count with a constant pause between attempts."""

    max_attempts: int = 4
    backoff: float = 1.0

    @classmethod
    def from_retries(cls, max_retries: int, backoff: float = 1.0) -> "RetryPolicy":
        return cls(max_attempts=max(0, int(max_retries)) + 1, backoff=backoff)

    def run(self, operation: Callable[[], T], logger: Optional[Logger] = None) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation()
            except NoLMConfiguredError:
                raise
            except Exception as exc:
                if attempt >= self.max_attempts:
                    raise
                if logger is not None:
                    logger.warning(
                        "LM call failed, retrying",
                        extra={"attempt": attempt, "max_attempts": self.max_attempts, "error": str(exc)},
                    )
                time.sleep(self.backoff)


class Module:
    """Forward-callable unit turning an input mapping into a Prediction."""

    def __init__(self) -> None:
        self.logger = log_utils.get_logger(type(self).__module__)

    def forward(self, inputs: Mapping[str, Any]) -> Prediction:  # noqa: D401 - abstract
        raise NotImplementedError("Module implementations must override forward().")

    def parameters(self) -> Dict[str, Parameter]:
        return {}

    def __call__(self, inputs: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Prediction:
        merged: Dict[str, Any] = dict(inputs or {})
        merged.update(kwargs)
        return self.forward(merged)


__all__ = ["Module", "RetryPolicy", "FEW_SHOT_CONTEXT_KEY"]
