from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from ..utils.llm import BaseLLMClient
from .example import Example
from .module import RetryPolicy
from .predict import Predict, _as_signature
from .signature import DEFAULT_REASONING_FIELD, Signature, augment


class ChainOfThought(Predict):
    """Predict with a leading reasoning output so the model thinks before answering."""

    def __init__(
        self,
        signature: Signature | str,
        lm: Optional[BaseLLMClient] = None,
        examples: Iterable[Example | Mapping[str, Any]] = (),
        max_retries: int = 3,
        reasoning_field: str = DEFAULT_REASONING_FIELD,
        retry_policy: Optional[RetryPolicy] = None,
        strict: bool = False,
        lm_options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        base = _as_signature(signature)
        super().__init__(
            augment(base, reasoning_field),
            lm=lm,
            examples=examples,
            max_retries=max_retries,
            retry_policy=retry_policy,
            strict=strict,
            lm_options=lm_options,
        )
        self.base_signature = base
        self.reasoning_field = reasoning_field


__all__ = ["ChainOfThought"]
