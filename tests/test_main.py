import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

import yaml

from promptkit.main import main, parse_key_values, resolve_metric
from promptkit.utils.metrics import exact_match


class CommandLineTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.llm_config = self.root / "llm.yaml"
        self.llm_config.write_text(
            yaml.safe_dump({"model": "stub", "provider": "local", "extra_params": {"responses": ["Answer: 4"]}}),
            encoding="utf-8",
        )
        self.bootstrap_config = self.root / "bootstrap.yaml"
        self.bootstrap_config.write_text(
            yaml.safe_dump({"num_candidate_programs": 3, "num_threads": 1, "seed": 9}),
            encoding="utf-8",
        )

    def run_cli(self, *argv: str):
        stdout, stderr = io.StringIO(), io.StringIO()
        args = ["--llm-config", str(self.llm_config), "--bootstrap-config", str(self.bootstrap_config), *argv]
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(args)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_predict_prints_outputs(self) -> None:
        code, out, _ = self.run_cli("predict", "--signature", "question -> answer", "--input", "question=2+2?")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), {"answer": "4"})

    def test_predict_missing_input_fails(self) -> None:
        code, out, err = self.run_cli("predict", "--signature", "question -> answer")
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("question", err)

    def test_compile_prints_summary(self) -> None:
        trainset = self.root / "train.jsonl"
        rows = [{"question": f"q{idx}", "answer": "4"} for idx in range(4)]
        trainset.write_text("\n".join(json.dumps(row) for row in rows), encoding="utf-8")
        code, out, _ = self.run_cli(
            "compile",
            "--signature",
            "question -> answer",
            "--trainset",
            str(trainset),
            "--metric",
            "promptkit.utils.metrics:exact_match",
        )
        self.assertEqual(code, 0)
        summary = json.loads(out)
        self.assertEqual(summary["score"], 1.0)
        self.assertEqual(len(summary["candidates"]), 3)
        self.assertEqual(summary["candidate_id"], 1)

    def test_compile_missing_trainset_fails(self) -> None:
        code, _, err = self.run_cli(
            "compile", "--signature", "question -> answer", "--trainset", str(self.root / "absent.jsonl")
        )
        self.assertEqual(code, 1)
        self.assertIn("absent.jsonl", err)


class HelperTests(unittest.TestCase):
    def test_parse_key_values(self) -> None:
        self.assertEqual(parse_key_values(["a=1", "b = x=y"]), {"a": "1", "b": " x=y"})

    def test_resolve_metric(self) -> None:
        self.assertIs(resolve_metric("exact_match"), exact_match)
        self.assertIs(resolve_metric("promptkit.utils.metrics:exact_match"), exact_match)
        with self.assertRaises(ValueError):
            resolve_metric("as_score")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
