from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from ..utils.llm import BaseLLMClient
from .errors import NoLMConfiguredError
from .example import Example, Prediction
from .module import FEW_SHOT_CONTEXT_KEY, Module, RetryPolicy
from .parameter import Parameter, ParameterType
from .signature import Signature


def _as_signature(signature: Signature | str) -> Signature:
    if isinstance(signature, Signature):
        return signature
    return Signature.from_spec(signature)


def _as_examples(examples: Iterable[Example | Mapping[str, Any]]) -> tuple:
    return tuple(item if isinstance(item, Example) else Example.from_mapping(item) for item in examples)


class Predict(Module):
    """Render a prompt from the signature, call the LM and parse typed outputs.

    ``forward`` runs validate -> build prompt -> generate (with retry) ->
    parse; the first failing stage raises and the rest are skipped.
    """

    def __init__(
        self,
        signature: Signature | str,
        lm: Optional[BaseLLMClient] = None,
        examples: Iterable[Example | Mapping[str, Any]] = (),
        max_retries: int = 3,
        retry_policy: Optional[RetryPolicy] = None,
        strict: bool = False,
        lm_options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__()
        self.signature = _as_signature(signature)
        self.lm = lm
        self.examples = _as_examples(examples)
        self.max_retries = max_retries
        self.retry_policy = retry_policy or RetryPolicy.from_retries(max_retries)
        self.strict = strict
        self.lm_options: Dict[str, Any] = dict(lm_options or {})

    def forward(self, inputs: Mapping[str, Any]) -> Prediction:
        self.signature.validate_inputs(inputs)
        prompt = self.build_prompt(inputs)
        response = self.generate_with_retry(prompt)
        outputs = self.parse_response(response)
        return Prediction.from_outputs(outputs)

    def build_prompt(self, inputs: Mapping[str, Any]) -> str:
        context = inputs.get(FEW_SHOT_CONTEXT_KEY)
        template = self.signature.render(self.examples, context=context or None)
        return self.signature.fill(template, inputs)

    def generate_with_retry(self, prompt: str) -> str:
        if self.lm is None:
            raise NoLMConfiguredError()
        lm = self.lm
        return self.retry_policy.run(lambda: lm.generate_text(prompt, **self.lm_options), logger=self.logger)

    def parse_response(self, text: str) -> Dict[str, Any]:
        return self.signature.parse_outputs(text, strict=self.strict)

    def parameters(self) -> Dict[str, Parameter]:
        return {
            "instructions": Parameter("instructions", ParameterType.PROMPT, self.signature.instructions),
            "examples": Parameter("examples", ParameterType.EXAMPLES, list(self.examples)),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.signature.name}, examples={len(self.examples)})"


__all__ = ["Predict"]
