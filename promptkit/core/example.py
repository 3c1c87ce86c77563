from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional


@dataclass(frozen=True)
class Example:
    """Labeled or generated data point.

    Attributes are readable as ``example.question``. Every mutating helper
    returns a new instance; the original is left untouched.
    """

    attrs: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attrs", dict(self.attrs))
        object.__setattr__(self, "metadata", dict(self.metadata))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any], metadata: Optional[Mapping[str, Any]] = None) -> "Example":
        return cls(attrs=dict(values), metadata=dict(metadata or {}))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name in {"attrs", "metadata"}:
            raise AttributeError(name)
        try:
            return self.attrs[name]
        except KeyError as exc:
            raise AttributeError(f"{type(self).__name__} has no attribute {name!r}") from exc

    def __getitem__(self, key: str) -> Any:
        return self.attrs[key]

    def __contains__(self, key: object) -> bool:
        return key in self.attrs

    def __len__(self) -> int:
        return len(self.attrs)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    def put(self, key: str, value: Any) -> "Example":
        attrs = dict(self.attrs)
        attrs[key] = value
        return type(self)(attrs=attrs, metadata=self.metadata)

    def delete(self, key: str) -> "Example":
        attrs = {k: v for k, v in self.attrs.items() if k != key}
        return type(self)(attrs=attrs, metadata=self.metadata)

    def keys(self) -> List[str]:
        return list(self.attrs.keys())

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.attrs)

    def subset(self, keys: Iterable[str]) -> "Example":
        wanted = set(keys)
        return type(self)(attrs={k: v for k, v in self.attrs.items() if k in wanted}, metadata=self.metadata)

    def merge(self, other: "Example | Mapping[str, Any]") -> "Example":
        """Combine two bags; values from ``other`` win on key collisions."""
        if isinstance(other, Example):
            other_attrs, other_meta = other.attrs, other.metadata
        else:
            other_attrs, other_meta = dict(other), {}
        attrs = dict(self.attrs)
        attrs.update(other_attrs)
        metadata = dict(self.metadata)
        metadata.update(other_meta)
        return type(self)(attrs=attrs, metadata=metadata)

    def with_metadata(self, **values: Any) -> "Example":
        metadata = dict(self.metadata)
        metadata.update(values)
        return type(self)(attrs=self.attrs, metadata=metadata)

    def content_key(self) -> str:
        # Equal attribute content yields the same key regardless of insertion order.
        return json.dumps(self.attrs, sort_keys=True, default=repr, ensure_ascii=False)


class Prediction(Example):
    """Attribute bag produced by a module's forward call."""

    @classmethod
    def from_outputs(cls, outputs: Mapping[str, Any]) -> "Prediction":
        return cls(attrs=dict(outputs))


__all__ = ["Example", "Prediction"]
