from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Mapping, Optional

from . import helpers


@dataclass
class LLMConfig:
    model: str
    provider: str = "local"
    temperature: float = 0.0
    max_tokens: int = 1024
    api_key_env: Optional[str] = None
    api_base: Optional[str] = None
    request_timeout: float = 30.0
    extra_params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "LLMConfig":
        data = helpers.ensure_dict(values)
        known_keys = {"model", "provider", "temperature", "max_tokens", "api_key_env", "api_base", "request_timeout"}
        extras = {k: v for k, v in data.items() if k not in known_keys}
        extra_params = helpers.ensure_dict(data.get("extra_params"))
        # Merge top-level unknown keys into extra_params to support shorthand config entries.
        for key, value in extras.items():
            if key == "extra_params":
                continue
            extra_params.setdefault(key, value)
        return cls(
            model=str(data.get("model", "local-llm")),
            provider=str(data.get("provider", "local")),
            temperature=float(data.get("temperature", 0.0)),
            max_tokens=int(data.get("max_tokens", 1024)),
            api_key_env=data.get("api_key_env"),
            api_base=data.get("api_base"),
            request_timeout=float(data.get("request_timeout", 30.0)),
            extra_params=extra_params,
        )


@dataclass
class BootstrapConfig:
    max_bootstrapped_demos: int = 4
    max_labeled_demos: int = 4
    max_rounds: int = 1
    max_errors: int = 5
    num_candidate_programs: int = 16
    num_threads: int = field(default_factory=lambda: os.cpu_count() or 1)
    seed: Optional[int] = None
    bootstrap_strategy: str = "random"
    bootstrap_timeout: float = 30.0
    candidate_timeout: float = 60.0

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "BootstrapConfig":
        data = helpers.ensure_dict(values)
        defaults = cls()
        seed = data.get("seed", defaults.seed)
        return cls(
            max_bootstrapped_demos=int(data.get("max_bootstrapped_demos", defaults.max_bootstrapped_demos)),
            max_labeled_demos=int(data.get("max_labeled_demos", defaults.max_labeled_demos)),
            max_rounds=int(data.get("max_rounds", defaults.max_rounds)),
            max_errors=int(data.get("max_errors", defaults.max_errors)),
            num_candidate_programs=int(data.get("num_candidate_programs", defaults.num_candidate_programs)),
            num_threads=int(data.get("num_threads") or defaults.num_threads),
            seed=int(seed) if seed is not None else None,
            bootstrap_strategy=str(data.get("bootstrap_strategy", defaults.bootstrap_strategy)),
            bootstrap_timeout=float(data.get("bootstrap_timeout", defaults.bootstrap_timeout)),
            candidate_timeout=float(data.get("candidate_timeout", defaults.candidate_timeout)),
        )


def load_llm_config(path: str = "config/llm_config.yaml") -> LLMConfig:
    defaults = {
        "model": "local-llm",
        "provider": "local",
        "temperature": 0.0,
        "max_tokens": 1024,
        "request_timeout": 30.0,
    }
    data = helpers.load_yaml_config(path, defaults=defaults)
    return LLMConfig.from_dict(data)


def load_bootstrap_config(path: str = "config/bootstrap_config.yaml") -> BootstrapConfig:
    data = helpers.load_yaml_config(path, defaults=asdict(BootstrapConfig()))
    return BootstrapConfig.from_dict(data)


__all__ = [
    "LLMConfig",
    "BootstrapConfig",
    "load_llm_config",
    "load_bootstrap_config",
]
