from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.example import Example, Prediction
from ..core.module import FEW_SHOT_CONTEXT_KEY, Module
from ..core.parameter import Parameter, ParameterType
from ..core.signature import Signature, format_field_value, format_value


def format_examples_for_context(examples: Iterable[Example], signature: Optional[Signature] = None) -> str:
    """Render examples as ``Example i:`` blocks.

    With a signature, its input fields come first and its output fields next,
    each rendered by field type; attributes the signature does not declare
    follow in insertion order.
    """
    fields = {} if signature is None else {
        item.name: item for item in signature.input_fields + signature.output_fields
    }
    blocks = []
    for idx, example in enumerate(examples, start=1):
        attrs = example.attrs
        keys: List[str] = [name for name in fields if name in attrs]
        keys += [key for key in attrs if key not in fields]
        lines = []
        for key in keys:
            field_def = fields.get(key)
            text = format_value(attrs[key]) if field_def is None else format_field_value(field_def, attrs[key])
            lines.append(f"{key.capitalize()}: {text}")
        blocks.append(f"Example {idx}:\n" + "\n".join(lines))
    return "\n\n".join(blocks)


class BootstrapCandidate(Module):
    """A student bound to one few-shot example subset.

    The examples travel in the input context on every call; the student's own
    state is never modified.
    """

    def __init__(self, student: Module, examples: Iterable[Example], candidate_id: int) -> None:
        super().__init__()
        self.student = student
        self.examples = tuple(examples)
        self.candidate_id = candidate_id
        signature = getattr(student, "signature", None)
        self._context = format_examples_for_context(
            self.examples, signature if isinstance(signature, Signature) else None
        )

    def forward(self, inputs: Mapping[str, Any]) -> Prediction:
        enhanced: Dict[str, Any] = dict(inputs)
        if self._context:
            enhanced[FEW_SHOT_CONTEXT_KEY] = self._context
        return self.student.forward(enhanced)

    @property
    def num_bootstrapped(self) -> int:
        return sum(1 for example in self.examples if example.metadata.get("bootstrapped"))

    def parameters(self) -> Dict[str, Parameter]:
        params = dict(self.student.parameters())
        params.update(
            {
                "few_shot_examples": Parameter("few_shot_examples", ParameterType.EXAMPLES, list(self.examples)),
                "num_bootstrap_examples": Parameter("num_bootstrap_examples", ParameterType.CUSTOM, self.num_bootstrapped),
                "num_labeled_examples": Parameter(
                    "num_labeled_examples", ParameterType.CUSTOM, len(self.examples) - self.num_bootstrapped
                ),
                "candidate_id": Parameter("candidate_id", ParameterType.CUSTOM, self.candidate_id),
            }
        )
        return params

    def __repr__(self) -> str:
        return f"BootstrapCandidate(id={self.candidate_id}, examples={len(self.examples)}, student={self.student!r})"


__all__ = ["BootstrapCandidate", "format_examples_for_context"]
