import json
import logging
import os
import tempfile
import unittest
from pathlib import Path

from promptkit.core.example import Example, Prediction
from promptkit.utils import helpers
from promptkit.utils.logging import JsonFormatter, get_logger, setup_logger
from promptkit.utils.metrics import answer_contains, as_score, exact_match
from promptkit.utils.schemas import BootstrapConfig, LLMConfig, load_bootstrap_config, load_llm_config


class SchemaTests(unittest.TestCase):
    def test_llm_config_collects_unknown_keys_into_extra_params(self) -> None:
        config = LLMConfig.from_dict({"model": "m", "provider": "openai", "top_p": 0.9, "extra_params": {"seed": 1}})
        self.assertEqual(config.provider, "openai")
        self.assertEqual(config.extra_params, {"seed": 1, "top_p": 0.9})

    def test_missing_files_fall_back_to_defaults(self) -> None:
        llm = load_llm_config("config/does_not_exist.yaml")
        self.assertEqual((llm.model, llm.provider, llm.max_tokens), ("local-llm", "local", 1024))
        bootstrap = load_bootstrap_config("config/does_not_exist.yaml")
        self.assertEqual(bootstrap.max_bootstrapped_demos, 4)
        self.assertEqual(bootstrap.num_candidate_programs, 16)
        self.assertEqual(bootstrap.num_threads, os.cpu_count() or 1)
        self.assertIsNone(bootstrap.seed)

    def test_bootstrap_file_overrides_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "bootstrap.yaml"
            path.write_text("max_rounds: 3\nseed: 17\nnum_threads: null\nbootstrap_strategy: hard\n", encoding="utf-8")
            config = load_bootstrap_config(str(path))
        self.assertEqual((config.max_rounds, config.seed, config.bootstrap_strategy), (3, 17, "hard"))
        self.assertEqual(config.max_labeled_demos, 4)
        self.assertEqual(config.num_threads, os.cpu_count() or 1)

    def test_bundled_config_files_load(self) -> None:
        self.assertEqual(load_llm_config().provider, "local")
        self.assertIsInstance(load_bootstrap_config(), BootstrapConfig)


class MetricTests(unittest.TestCase):
    def test_exact_match_normalizes(self) -> None:
        example = Example({"question": "q", "answer": "Paris."})
        self.assertEqual(exact_match(example, Prediction.from_outputs({"answer": " paris "})), 1.0)
        self.assertEqual(exact_match(example, Prediction.from_outputs({"answer": "Lyon"})), 0.0)
        self.assertEqual(exact_match(example, Prediction.from_outputs({})), 0.0)

    def test_numbers_compare_by_value(self) -> None:
        example = Example({"answer": "4"})
        self.assertEqual(exact_match(example, Prediction.from_outputs({"answer": 4.0})), 1.0)

    def test_gold_metadata_takes_precedence(self) -> None:
        demo = Example({"question": "q", "answer": "wrong"}, metadata={"gold": {"answer": "right"}})
        self.assertEqual(exact_match(demo, Prediction.from_outputs({"answer": "wrong"})), 0.0)
        self.assertEqual(exact_match(demo, Prediction.from_outputs({"answer": "right"})), 1.0)

    def test_answer_contains(self) -> None:
        example = Example({"answer": "42"})
        self.assertEqual(answer_contains(example, Prediction.from_outputs({"answer": "It is 42 units"})), 1.0)
        self.assertEqual(answer_contains(example, Prediction.from_outputs({"answer": "41"})), 0.0)

    def test_as_score(self) -> None:
        self.assertEqual(as_score(True), 1.0)
        self.assertEqual(as_score(3), 3.0)
        self.assertIsNone(as_score(float("nan")))
        self.assertIsNone(as_score("1.0"))


class LoggingTests(unittest.TestCase):
    def test_get_logger_nests_under_package_root(self) -> None:
        self.assertEqual(get_logger("promptkit.optimizer").name, "promptkit.optimizer")
        self.assertEqual(get_logger("custom").name, "promptkit.custom")
        self.assertEqual(get_logger().name, "promptkit")

    def test_json_formatter_includes_extra_fields(self) -> None:
        record = logging.LogRecord("promptkit.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.stage = "bootstrapping"
        payload = json.loads(JsonFormatter().format(record))
        self.assertEqual(payload["message"], "hello world")
        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["stage"], "bootstrapping")

    def test_setup_logger_writes_jsonl_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logger = setup_logger(level="DEBUG", trace_format="jsonl", output_dir=tmp, name="promptkit_test_file")
            try:
                logger.info("compiled", extra={"candidate_id": 2})
                for handler in logger.handlers:
                    handler.flush()
                line = (Path(tmp) / "promptkit_test_file.jsonl").read_text(encoding="utf-8").strip()
            finally:
                for handler in list(logger.handlers):
                    handler.close()
                    logger.removeHandler(handler)
        self.assertEqual(json.loads(line)["candidate_id"], 2)


class HelperTests(unittest.TestCase):
    def test_safe_getenv_strips_blank_values(self) -> None:
        os.environ["PROMPTKIT_BLANK"] = "   "
        try:
            self.assertEqual(helpers.safe_getenv("PROMPTKIT_BLANK", "fallback"), "fallback")
        finally:
            del os.environ["PROMPTKIT_BLANK"]

    def test_import_from_string(self) -> None:
        self.assertIs(helpers.import_from_string("promptkit.utils.metrics:exact_match"), exact_match)
        self.assertIs(helpers.import_from_string("promptkit.utils.metrics.exact_match"), exact_match)
        with self.assertRaises(ImportError):
            helpers.import_from_string("promptkit.utils.metrics:missing")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
