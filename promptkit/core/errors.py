from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, List, Optional


class PromptKitError(Exception):
    """Base class for every error raised by promptkit."""


class SignatureError(PromptKitError, ValueError):
    """Raised when a signature declaration is malformed."""


class MissingFieldsError(PromptKitError):
    def __init__(self, missing: Iterable[str]) -> None:
        self.missing: List[str] = list(missing)
        super().__init__(f"Missing required input fields: {', '.join(self.missing)}")


class MissingRequiredOutputsError(PromptKitError):
    def __init__(self, missing: Iterable[str]) -> None:
        self.missing: List[str] = list(missing)
        super().__init__(f"Missing required output fields: {', '.join(self.missing)}")


class InvalidFieldValueError(PromptKitError):
    def __init__(self, field: str, raw: Any, reason: str = "") -> None:
        self.field = field
        self.raw = raw
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Invalid value for field '{field}': {raw!r}{detail}")


class LMInvocationError(PromptKitError):
    def __init__(self, reason: Any) -> None:
        self.reason = reason
        super().__init__(f"Language model invocation failed: {reason}")


class NoLMConfiguredError(PromptKitError):
    def __init__(self, message: str = "No language model client configured for this module") -> None:
        super().__init__(message)


class TrainsetError(PromptKitError, ValueError):
    """Raised when a training set cannot be used for optimization."""


class BootstrapError(PromptKitError):
    """A single sampled input failed while bootstrapping demonstrations."""

    def __init__(self, message: str, example_attrs: Optional[dict] = None) -> None:
        self.example_attrs = dict(example_attrs or {})
        super().__init__(message)


class CompileStage(str, Enum):
    TRAINSET_VALIDATION = "trainset_validation"
    TEACHER_RESOLUTION = "teacher_resolution"
    BOOTSTRAPPING = "bootstrapping"
    LABELED_SELECTION = "labeled_selection"
    CANDIDATE_GENERATION = "candidate_generation"
    SELECTION = "selection"


class OptimizationError(PromptKitError):
    def __init__(self, stage: CompileStage, message: str) -> None:
        self.stage = stage
        super().__init__(f"[{stage.value}] {message}")


__all__ = [
    "PromptKitError",
    "SignatureError",
    "MissingFieldsError",
    "MissingRequiredOutputsError",
    "InvalidFieldValueError",
    "LMInvocationError",
    "NoLMConfiguredError",
    "TrainsetError",
    "BootstrapError",
    "CompileStage",
    "OptimizationError",
]
