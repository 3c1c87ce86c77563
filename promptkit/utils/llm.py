from __future__ import annotations

import itertools
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..core.errors import LMInvocationError
from . import helpers
from .schemas import LLMConfig

_OUTPUT_LABEL = re.compile(r"^([A-Z][A-Za-z0-9_]*):$")


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def message(role: str, content: str) -> Message:
    return Message(role=str(role), content=content)


def user_message(content: str) -> Message:
    return message("user", content)


def assistant_message(content: str) -> Message:
    return message("assistant", content)


def system_message(content: str) -> Message:
    return message("system", content)


@dataclass
class LMRequest:
    messages: List[Message]
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    stop: Optional[List[str]] = None
    tools: Optional[List[Dict[str, Any]]] = None


@dataclass
class Choice:
    message: Message
    finish_reason: Optional[str] = None


@dataclass
class LMResponse:
    choices: List[Choice] = field(default_factory=list)
    usage: Optional[Dict[str, int]] = None

    @property
    def text(self) -> str:
        if not self.choices:
            raise LMInvocationError("response contained no choices")
        return self.choices[0].message.content


class BaseLLMClient:
    """Synchronous language-model boundary used by every module."""

    def generate(self, request: LMRequest) -> LMResponse:  # noqa: D401 - interface definition
        raise NotImplementedError

    def supports(self, feature: str) -> bool:
        return False

    def generate_text(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        stop: Optional[List[str]] = None,
    ) -> str:
        request = LMRequest(
            messages=[user_message(prompt)],
            max_tokens=max_tokens,
            temperature=temperature,
            stop=stop,
        )
        return self.generate(request).text

    def __call__(self, prompt: str, **kwargs: Any) -> str:
        return self.generate_text(prompt, **kwargs)


class LocalLLM(BaseLLMClient):
    """Deterministic offline model useful for tests and dry runs.

    With ``responses`` it cycles through them; otherwise it answers every
    trailing output label of the prompt with the model name.
    """

    def __init__(self, model: str = "local-llm", responses: Optional[Sequence[str]] = None, temperature: float = 0.0) -> None:
        self.model = model
        self.temperature = temperature
        self.calls: List[LMRequest] = []
        self._responses = itertools.cycle(list(responses)) if responses else None
        self._lock = threading.Lock()

    def generate(self, request: LMRequest) -> LMResponse:
        with self._lock:
            self.calls.append(request)
            content = next(self._responses) if self._responses else self._echo(request)
        usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        return LMResponse(choices=[Choice(message=assistant_message(content), finish_reason="stop")], usage=usage)

    def _echo(self, request: LMRequest) -> str:
        prompt = request.messages[-1].content if request.messages else ""
        labels: List[str] = []
        for line in reversed(prompt.strip().splitlines()):
            match = _OUTPUT_LABEL.match(line.strip())
            if not match:
                break
            labels.append(match.group(1))
        return "\n".join(f"{label}: {self.model}" for label in reversed(labels))


class ChatCompletionsClient(BaseLLMClient):
    """Thin wrapper around an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        model: str,
        api_base: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        endpoint: str = "/chat/completions",
        default_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.endpoint = endpoint
        self.session = requests.Session()
        self.api_key = api_key
        self.default_params = default_params.copy() if default_params else {}

    def supports(self, feature: str) -> bool:
        return feature in {"chat", "stop", "tools"}

    def generate(self, request: LMRequest) -> LMResponse:
        payload: Dict[str, Any] = {"model": self.model, "messages": [msg.as_dict() for msg in request.messages]}
        payload.update(self.default_params)
        for key in ("max_tokens", "temperature", "stop", "tools"):
            value = getattr(request, key)
            if value is not None:
                payload[key] = value
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        url = f"{self.api_base}/{self.endpoint.lstrip('/')}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout, headers=headers)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise LMInvocationError(exc) from exc
        return self._parse_response(data)

    def _parse_response(self, data: Any) -> LMResponse:
        if not isinstance(data, dict):
            raise LMInvocationError(f"unexpected response payload: {data!r}"[:200])
        choices: List[Choice] = []
        for entry in data.get("choices") or []:
            if not isinstance(entry, dict):
                continue
            payload = entry.get("message")
            if isinstance(payload, dict):
                msg = message(payload.get("role", "assistant"), str(payload.get("content") or ""))
            else:
                msg = assistant_message(str(entry.get("text", "")))
            choices.append(Choice(message=msg, finish_reason=entry.get("finish_reason")))
        usage = data.get("usage")
        return LMResponse(choices=choices, usage=dict(usage) if isinstance(usage, dict) else None)

    def close(self) -> None:
        self.session.close()


class VLLMEngineClient(BaseLLMClient):
    """In-process vLLM engine; requires the optional ``vllm`` extra."""

    def __init__(self, model: str, sampling_params: Optional[Dict[str, Any]] = None, **engine_kwargs: Any) -> None:
        from vllm import LLM, SamplingParams

        self.model = model
        self._sampling_cls = SamplingParams
        self.sampling_params = dict(sampling_params or {})
        self.engine = LLM(model=model, **engine_kwargs)

    def generate(self, request: LMRequest) -> LMResponse:
        params = dict(self.sampling_params)
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.stop:
            params["stop"] = request.stop
        prompt = "\n\n".join(msg.content for msg in request.messages)
        try:
            outputs = self.engine.generate([prompt], self._sampling_cls(**params))
        except Exception as exc:
            raise LMInvocationError(exc) from exc
        choices = []
        for result in outputs:
            for completion in getattr(result, "outputs", None) or []:
                choices.append(
                    Choice(
                        message=assistant_message(str(completion.text)),
                        finish_reason=getattr(completion, "finish_reason", None),
                    )
                )
        return LMResponse(choices=choices)


def create_llm_client(config: LLMConfig) -> BaseLLMClient:
    provider = (config.provider or "local").lower()
    if provider in {"openai", "remote"}:
        if not config.api_base:
            raise ValueError("api_base must be configured for remote providers")
        api_key = None
        if config.api_key_env:
            api_key = helpers.safe_getenv(config.api_key_env)
        params = dict(config.extra_params)
        endpoint = params.pop("endpoint", "/chat/completions")
        params.setdefault("max_tokens", config.max_tokens)
        params.setdefault("temperature", config.temperature)
        return ChatCompletionsClient(
            model=config.model,
            api_base=config.api_base,
            api_key=api_key,
            timeout=config.request_timeout,
            endpoint=endpoint,
            default_params=params,
        )
    if provider == "vllm":
        sampling = {"temperature": config.temperature, "max_tokens": config.max_tokens}
        return VLLMEngineClient(config.model, sampling_params=sampling, **config.extra_params)
    responses = config.extra_params.get("responses")
    return LocalLLM(config.model, responses=responses, temperature=config.temperature)


__all__ = [
    "Message",
    "LMRequest",
    "LMResponse",
    "Choice",
    "BaseLLMClient",
    "LocalLLM",
    "ChatCompletionsClient",
    "VLLMEngineClient",
    "create_llm_client",
    "message",
    "user_message",
    "assistant_message",
    "system_message",
]
