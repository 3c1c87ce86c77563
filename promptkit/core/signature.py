from __future__ import annotations

import ast
import json
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import InvalidFieldValueError, MissingFieldsError, MissingRequiredOutputsError, SignatureError
from .example import Example

INPUT_PLACEHOLDER = "[input]"
DEFAULT_REASONING_FIELD = "reasoning"
REASONING_DESCRIPTION = "Think step by step to solve this problem"
COT_INSTRUCTIONS = (
    "Think step by step and show your reasoning before providing the final answer.\n"
    "Break down the problem and explain your thought process clearly."
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_LEADING_NUMBER = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"
    CODE = "code"


@dataclass(frozen=True)
class Field:
    name: str
    type: FieldType = FieldType.STRING
    description: str = ""
    required: bool = True
    default: Any = None

    def __post_init__(self) -> None:
        if not _IDENTIFIER.match(self.name or ""):
            raise SignatureError(f"Field name must be an identifier: {self.name!r}")
        object.__setattr__(self, "type", FieldType(self.type))

    @property
    def label(self) -> str:
        return self.name.capitalize()


class _Invalid(Exception):
    """Internal signal raised by coercers; converted by parse_outputs."""


def _coerce_string(raw: str) -> Any:
    return raw


def _coerce_number(raw: str) -> Any:
    text = raw.strip()
    try:
        return float(text)
    except ValueError:
        pass
    try:
        return int(text, 0)
    except ValueError:
        pass
    match = _LEADING_NUMBER.match(text)
    if not match:
        raise _Invalid("invalid number")
    return float(match.group(0))


def _coerce_boolean(raw: str) -> Any:
    normalized = raw.strip().lower()
    if normalized in {"true", "yes", "1"}:
        return True
    if normalized in {"false", "no", "0"}:
        return False
    raise _Invalid("invalid boolean")


def _coerce_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise _Invalid(f"invalid json: {exc.msg}") from exc


def _coerce_code(raw: str) -> Any:
    try:
        ast.parse(raw)
    except SyntaxError as exc:
        raise _Invalid(f"invalid code: {exc.msg}") from exc
    return raw


_COERCERS: Dict[FieldType, Callable[[str], Any]] = {
    FieldType.STRING: _coerce_string,
    FieldType.NUMBER: _coerce_number,
    FieldType.BOOLEAN: _coerce_boolean,
    FieldType.JSON: _coerce_json,
    FieldType.CODE: _coerce_code,
}


def coerce_value(field_def: Field, raw: str) -> Any:
    """Convert raw model text to the field's type or raise InvalidFieldValueError."""
    try:
        return _COERCERS[field_def.type](raw)
    except _Invalid as exc:
        raise InvalidFieldValueError(field_def.name, raw, str(exc)) from exc


def format_value(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return ""
    return str(value)


def format_field_value(field_def: Field, value: Any) -> str:
    """Render ``value`` so that parsing it back as ``field_def`` yields the same value."""
    if field_def.type is FieldType.JSON:
        return json.dumps(value, ensure_ascii=False)
    if field_def.type is FieldType.BOOLEAN and isinstance(value, bool):
        return "true" if value else "false"
    return format_value(value)


@dataclass(frozen=True)
class Signature:
    name: str
    input_fields: Tuple[Field, ...] = ()
    output_fields: Tuple[Field, ...] = ()
    description: Optional[str] = None
    instructions: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_fields", tuple(self.input_fields))
        object.__setattr__(self, "output_fields", tuple(self.output_fields))
        seen: set[str] = set()
        for item in self.input_fields + self.output_fields:
            if item.name in seen:
                raise SignatureError(f"Duplicate field name {item.name!r} in signature {self.name!r}")
            seen.add(item.name)

    @classmethod
    def from_spec(
        cls,
        spec: str,
        name: str = "Signature",
        instructions: Optional[str] = None,
        descriptions: Optional[Mapping[str, str]] = None,
    ) -> "Signature":
        """Build a signature from ``"question, context: string -> answer: number"``."""
        if spec.count("->") != 1:
            raise SignatureError(f"Signature spec must contain exactly one '->': {spec!r}")
        left, right = spec.split("->")
        descriptions = descriptions or {}
        inputs = [_parse_field_decl(part, descriptions) for part in _split_decls(left)]
        outputs = [_parse_field_decl(part, descriptions) for part in _split_decls(right)]
        if not outputs:
            raise SignatureError("Signature spec declares no output fields")
        return cls(name=name, input_fields=tuple(inputs), output_fields=tuple(outputs), instructions=instructions)

    @property
    def input_names(self) -> List[str]:
        return [item.name for item in self.input_fields]

    @property
    def output_names(self) -> List[str]:
        return [item.name for item in self.output_fields]

    def with_instructions(self, instructions: Optional[str]) -> "Signature":
        return replace(self, instructions=instructions)

    # -- prompt rendering -------------------------------------------------

    def render(self, examples: Sequence[Example | Mapping[str, Any]] = (), context: Optional[str] = None) -> str:
        sections = [
            self._instruction_section(),
            self._format_section(),
            self._field_descriptions_section(),
            self._examples_section(examples),
            f"Demonstrations:\n\n{context}" if context else None,
            self._input_section(),
        ]
        return "\n\n".join(section for section in sections if section)

    def fill(self, template: str, inputs: Mapping[str, Any]) -> str:
        filled = template
        for item in self.input_fields:
            if item.name in inputs:
                value = inputs[item.name]
            elif not item.required and item.default is not None:
                value = item.default
            else:
                continue
            placeholder = f"{item.label}: {INPUT_PLACEHOLDER}"
            filled = filled.replace(placeholder, f"{item.label}: {format_field_value(item, value)}")
        return filled

    def _instruction_section(self) -> Optional[str]:
        if not self.instructions:
            return None
        return f"Instructions: {self.instructions}"

    def _format_section(self) -> Optional[str]:
        if not self.output_fields:
            return None
        lines = [f"{item.label}: [your {item.description}]" for item in self.output_fields]
        return "Follow this exact format for your response:\n" + "\n".join(lines)

    def _field_descriptions_section(self) -> Optional[str]:
        blocks = [
            _describe_fields("Input", self.input_fields),
            _describe_fields("Output", self.output_fields),
        ]
        text = "\n\n".join(block for block in blocks if block)
        return text or None

    def _examples_section(self, examples: Sequence[Example | Mapping[str, Any]]) -> Optional[str]:
        if not examples:
            return None
        rendered = []
        for idx, example in enumerate(examples, start=1):
            attrs = example.attrs if isinstance(example, Example) else dict(example)
            lines = [_example_line(item, attrs) for item in self.input_fields + self.output_fields]
            rendered.append(f"Example {idx}:\n" + "\n".join(lines))
        return "Examples:\n\n" + "\n\n".join(rendered)

    def _input_section(self) -> Optional[str]:
        lines = [f"{item.label}: {INPUT_PLACEHOLDER}" for item in self.input_fields]
        lines += [f"{item.label}:" for item in self.output_fields]
        return "\n".join(lines) or None

    # -- validation and parsing -------------------------------------------

    def validate_inputs(self, inputs: Mapping[str, Any]) -> None:
        missing = [item.name for item in self.input_fields if item.required and item.name not in inputs]
        if missing:
            raise MissingFieldsError(missing)

    def parse_outputs(self, text: str, strict: bool = False) -> Dict[str, Any]:
        """Extract typed output values from free-form model text.

        Fields whose label is absent are skipped. A value that fails coercion
        is dropped unless ``strict`` is set, in which case the
        InvalidFieldValueError propagates. Required fields still missing at
        the end raise MissingRequiredOutputsError.
        """
        outputs: Dict[str, Any] = {}
        for item in self.output_fields:
            raw = extract_field_text(text or "", item)
            if raw is None:
                if not item.required and item.default is not None:
                    outputs[item.name] = item.default
                continue
            try:
                outputs[item.name] = coerce_value(item, raw)
            except InvalidFieldValueError:
                if strict:
                    raise
        missing = [item.name for item in self.output_fields if item.required and item.name not in outputs]
        if missing:
            raise MissingRequiredOutputsError(missing)
        return outputs


def extract_field_text(text: str, field_def: Field) -> Optional[str]:
    pattern = re.compile(
        rf"^{re.escape(field_def.label)}:[ \t]*(.*?)(?=\n[A-Z][A-Za-z0-9_]*:|\Z)",
        re.MULTILINE | re.DOTALL,
    )
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def augment(signature: Signature, reasoning_field: str = DEFAULT_REASONING_FIELD) -> Signature:
    """Return a chain-of-thought copy of ``signature`` with a leading reasoning output."""
    reasoning = Field(
        name=reasoning_field,
        type=FieldType.STRING,
        description=REASONING_DESCRIPTION,
        required=True,
    )
    parts = [signature.instructions or "", COT_INSTRUCTIONS]
    instructions = "\n\n".join(part for part in parts if part)
    return replace(
        signature,
        output_fields=(reasoning,) + signature.output_fields,
        instructions=instructions,
    )


def _example_line(field_def: Field, attrs: Mapping[str, Any]) -> str:
    if field_def.name not in attrs:
        return f"{field_def.label}: "
    return f"{field_def.label}: {format_field_value(field_def, attrs[field_def.name])}"


def _describe_fields(label: str, fields: Iterable[Field]) -> Optional[str]:
    lines = [f"- {item.name}: {item.description}" for item in fields]
    if not lines:
        return None
    return f"{label} Fields:\n" + "\n".join(lines)


def _split_decls(text: str) -> List[str]:
    return [part.strip() for part in text.split(",") if part.strip()]


def _parse_field_decl(decl: str, descriptions: Mapping[str, str]) -> Field:
    name, _, type_name = decl.partition(":")
    name = name.strip()
    type_name = type_name.strip().lower() or FieldType.STRING.value
    try:
        field_type = FieldType(type_name)
    except ValueError as exc:
        raise SignatureError(f"Unknown field type {type_name!r} for field {name!r}") from exc
    return Field(name=name, type=field_type, description=descriptions.get(name, name.replace("_", " ")))


__all__ = [
    "Field",
    "FieldType",
    "Signature",
    "augment",
    "coerce_value",
    "extract_field_text",
    "format_value",
    "format_field_value",
    "INPUT_PLACEHOLDER",
    "DEFAULT_REASONING_FIELD",
    "COT_INSTRUCTIONS",
]
