from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Tuple


class ParameterType(str, Enum):
    PROMPT = "prompt"
    EXAMPLES = "examples"
    WEIGHTS = "weights"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Parameter:
    """Optimizable module state with an append-only value history.

    ``history`` is ordered oldest first; its last entry is always ``value``.
    """

    name: str
    type: ParameterType
    value: Any
    metadata: Dict[str, Any] = field(default_factory=dict)
    history: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if not self.history:
            object.__setattr__(self, "history", (self.value,))

    def update(self, new_value: Any) -> "Parameter":
        return replace(self, value=new_value, history=self.history + (new_value,))

    def revert(self) -> "Parameter":
        if len(self.history) < 2:
            return self
        history = self.history[:-1]
        return replace(self, value=history[-1], history=history)


__all__ = ["Parameter", "ParameterType"]
