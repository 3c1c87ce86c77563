import sys
import types
import unittest
from unittest import mock

import requests

from promptkit.core.errors import LMInvocationError
from promptkit.utils.llm import (
    ChatCompletionsClient,
    LMRequest,
    LMResponse,
    LocalLLM,
    VLLMEngineClient,
    assistant_message,
    create_llm_client,
    system_message,
    user_message,
)
from promptkit.utils.schemas import LLMConfig


def fake_response(payload, status_error=None):
    response = mock.Mock()
    response.json.return_value = payload
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    return response


class MessageTests(unittest.TestCase):
    def test_role_helpers(self) -> None:
        self.assertEqual(user_message("hi").as_dict(), {"role": "user", "content": "hi"})
        self.assertEqual(system_message("s").role, "system")
        self.assertEqual(assistant_message("a").role, "assistant")

    def test_response_without_choices_raises(self) -> None:
        with self.assertRaises(LMInvocationError):
            _ = LMResponse(choices=[]).text


class LocalLLMTests(unittest.TestCase):
    def test_cycles_canned_responses(self) -> None:
        llm = LocalLLM(responses=["one", "two"])
        self.assertEqual([llm("p"), llm("p"), llm("p")], ["one", "two", "one"])
        self.assertEqual(len(llm.calls), 3)
        self.assertFalse(llm.supports("tools"))

    def test_echoes_trailing_output_labels(self) -> None:
        llm = LocalLLM(model="offline")
        text = llm.generate_text("Question: what?\nReasoning:\nAnswer:")
        self.assertEqual(text, "Reasoning: offline\nAnswer: offline")

    def test_records_request_options(self) -> None:
        llm = LocalLLM(responses=["x"])
        llm.generate_text("prompt", max_tokens=5, temperature=0.3, stop=["\n\n"])
        request = llm.calls[0]
        self.assertIsInstance(request, LMRequest)
        self.assertEqual((request.max_tokens, request.temperature, request.stop), (5, 0.3, ["\n\n"]))


class ChatCompletionsClientTests(unittest.TestCase):
    def test_posts_payload_and_parses_choices(self) -> None:
        client = ChatCompletionsClient(
            model="m",
            api_base="http://localhost:8000/v1/",
            api_key="secret",
            default_params={"temperature": 0.0},
        )
        payload = {
            "choices": [{"message": {"role": "assistant", "content": "Answer: 4"}, "finish_reason": "stop"}],
            "usage": {"total_tokens": 7},
        }
        with mock.patch.object(client.session, "post", return_value=fake_response(payload)) as post:
            response = client.generate(LMRequest(messages=[user_message("q")], max_tokens=16))
        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        self.assertEqual(url, "http://localhost:8000/v1/chat/completions")
        self.assertEqual(kwargs["json"]["messages"], [{"role": "user", "content": "q"}])
        self.assertEqual(kwargs["json"]["max_tokens"], 16)
        self.assertEqual(kwargs["json"]["temperature"], 0.0)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(response.text, "Answer: 4")
        self.assertEqual(response.choices[0].finish_reason, "stop")
        self.assertEqual(response.usage, {"total_tokens": 7})
        client.close()

    def test_http_errors_become_invocation_errors(self) -> None:
        client = ChatCompletionsClient(model="m", api_base="http://localhost")
        failing = fake_response({}, status_error=requests.HTTPError("500"))
        with mock.patch.object(client.session, "post", return_value=failing):
            with self.assertRaises(LMInvocationError):
                client.generate_text("q")
        with mock.patch.object(client.session, "post", side_effect=requests.ConnectionError("down")):
            with self.assertRaises(LMInvocationError):
                client.generate_text("q")

    def test_empty_choices_raise_on_text(self) -> None:
        client = ChatCompletionsClient(model="m", api_base="http://localhost")
        with mock.patch.object(client.session, "post", return_value=fake_response({"choices": []})):
            with self.assertRaises(LMInvocationError):
                client.generate_text("q")


class VLLMEngineClientTests(unittest.TestCase):
    def test_generate_uses_engine_outputs(self) -> None:
        completion = types.SimpleNamespace(text="Answer: 4", finish_reason="stop")
        engine = mock.Mock()
        engine.generate.return_value = [types.SimpleNamespace(outputs=[completion])]
        fake_vllm = types.ModuleType("vllm")
        fake_vllm.LLM = mock.Mock(return_value=engine)
        fake_vllm.SamplingParams = mock.Mock(side_effect=lambda **kwargs: kwargs)
        with mock.patch.dict(sys.modules, {"vllm": fake_vllm}):
            client = VLLMEngineClient("tiny-model", sampling_params={"temperature": 0.6}, max_model_len=2048)
        fake_vllm.LLM.assert_called_once_with(model="tiny-model", max_model_len=2048)
        self.assertEqual(client.generate_text("q", max_tokens=32), "Answer: 4")
        _, params = engine.generate.call_args.args
        self.assertEqual(params, {"temperature": 0.6, "max_tokens": 32})


class CreateClientTests(unittest.TestCase):
    def test_local_provider_uses_canned_responses(self) -> None:
        client = create_llm_client(LLMConfig(model="local", extra_params={"responses": ["Answer: 1"]}))
        self.assertIsInstance(client, LocalLLM)
        self.assertEqual(client("anything"), "Answer: 1")

    def test_remote_provider_requires_api_base(self) -> None:
        with self.assertRaises(ValueError):
            create_llm_client(LLMConfig(model="gpt", provider="openai"))

    def test_remote_provider_reads_key_from_environment(self) -> None:
        config = LLMConfig(
            model="gpt",
            provider="openai",
            api_base="https://api.example.test/v1",
            api_key_env="PROMPTKIT_TEST_KEY",
            max_tokens=64,
        )
        with mock.patch.dict("os.environ", {"PROMPTKIT_TEST_KEY": " token "}):
            client = create_llm_client(config)
        self.assertIsInstance(client, ChatCompletionsClient)
        self.assertEqual(client.api_key, "token")
        self.assertEqual(client.default_params["max_tokens"], 64)
        self.assertTrue(client.supports("chat"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
