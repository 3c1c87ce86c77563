from __future__ import annotations

import importlib
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _resolve_path(path: os.PathLike[str] | str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return PROJECT_ROOT / candidate


def load_yaml_config(path: os.PathLike[str] | str, defaults: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    full_path = _resolve_path(path)
    if not full_path.exists():
        if defaults is None:
            raise ValueError(f"Missing configuration file: {full_path}")
        return dict(defaults)
    with full_path.open("r", encoding="utf-8") as stream:
        data = yaml.safe_load(stream) or {}
    if defaults:
        merged: Dict[str, Any] = dict(defaults)
        merged.update(data)
        return merged
    return dict(data)


def load_jsonl(path: os.PathLike[str] | str) -> List[Dict[str, Any]]:
    """Read one JSON object per non-blank line."""
    full_path = _resolve_path(path)
    if not full_path.exists():
        raise ValueError(f"Missing data file: {full_path}")
    records: List[Dict[str, Any]] = []
    with full_path.open("r", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            data = line.strip()
            if not data:
                continue
            try:
                payload = json.loads(data)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{full_path}:{lineno}: invalid JSON ({exc.msg})") from exc
            if not isinstance(payload, dict):
                raise ValueError(f"{full_path}:{lineno}: expected a JSON object")
            records.append(payload)
    return records


def ensure_dict(value: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if value is None:
        return {}
    return dict(value)


def safe_getenv(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key, default)
    if value is None:
        return default
    stripped = value.strip()
    return stripped or default


def import_from_string(path: str) -> Any:
    if ":" in path:
        module_name, attribute = path.split(":", 1)
    elif "#" in path:
        module_name, attribute = path.split("#", 1)
    else:
        module_name, attribute = path.rsplit(".", 1)
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attribute)
    except AttributeError as exc:
        raise ImportError(f"{attribute!r} not found in module {module_name!r}") from exc


__all__ = [
    "PROJECT_ROOT",
    "load_yaml_config",
    "load_jsonl",
    "ensure_dict",
    "safe_getenv",
    "import_from_string",
]
