from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, Sequence

from .core.chain_of_thought import ChainOfThought
from .core.errors import PromptKitError
from .core.predict import Predict
from .optimizer.bootstrap import BootstrapFewShot
from .optimizer.trainset import load_trainset
from .utils import helpers, metrics
from .utils.llm import BaseLLMClient, create_llm_client
from .utils.logging import get_logger, setup_logger
from .utils.schemas import load_bootstrap_config, load_llm_config

logger = get_logger(__name__)

BUNDLED_METRICS = ("exact_match", "answer_contains")


def parse_key_values(pairs: Sequence[str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"expected key=value, got {pair!r}")
        values[key.strip()] = value
    return values


def resolve_metric(path: str) -> metrics.Metric:
    """Resolve ``module:function`` or the name of a bundled metric."""
    if ":" not in path and "." not in path and "#" not in path:
        metric = getattr(metrics, path, None)
        if metric is None or path not in BUNDLED_METRICS:
            raise ValueError(f"Unknown metric {path!r}")
        return metric
    metric = helpers.import_from_string(path)
    if not callable(metric):
        raise ValueError(f"Metric {path!r} is not callable")
    return metric


def build_module(signature: str, llm: BaseLLMClient, cot: bool = False) -> Predict:
    if cot:
        return ChainOfThought(signature, lm=llm)
    return Predict(signature, lm=llm)


def run_predict(args: argparse.Namespace, llm: BaseLLMClient) -> Dict[str, Any]:
    module = build_module(args.signature, llm, cot=args.cot)
    prediction = module(parse_key_values(args.input))
    return prediction.to_dict()


def run_compile(args: argparse.Namespace, llm: BaseLLMClient) -> Dict[str, Any]:
    config = load_bootstrap_config(args.bootstrap_config)
    if args.seed is not None:
        config.seed = args.seed
    student = build_module(args.signature, llm, cot=args.cot)
    trainset = load_trainset(args.trainset)
    valset = load_trainset(args.valset) if args.valset else None
    optimizer = BootstrapFewShot.from_config(config, resolve_metric(args.metric))
    result = optimizer.compile(student, trainset, valset=valset)
    return result.summary()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptkit",
        description="Run declarative prompt modules and bootstrap few-shot demonstrations.",
    )
    parser.add_argument("--llm-config", default="config/llm_config.yaml", help="LLM client configuration file.")
    parser.add_argument(
        "--bootstrap-config",
        default="config/bootstrap_config.yaml",
        help="BootstrapFewShot configuration file.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    parser.add_argument("--trace-format", default="text", choices=["text", "jsonl"], help="Log record format.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    predict = subparsers.add_parser("predict", help="Run one prediction and print the outputs as JSON.")
    predict.add_argument("--signature", required=True, help='Signature spec, e.g. "question -> answer".')
    predict.add_argument("--cot", action="store_true", help="Add a reasoning step before the outputs.")
    predict.add_argument(
        "--input",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Input field value; repeat for several fields.",
    )

    compile_cmd = subparsers.add_parser("compile", help="Bootstrap demonstrations and print the best candidate.")
    compile_cmd.add_argument("--signature", required=True, help='Signature spec, e.g. "question -> answer".')
    compile_cmd.add_argument("--trainset", required=True, help="Training examples, one JSON object per line.")
    compile_cmd.add_argument("--valset", help="Validation examples (defaults to the trainset).")
    compile_cmd.add_argument(
        "--metric",
        default="exact_match",
        help="Metric as module:function, or a bundled metric name (default: exact_match).",
    )
    compile_cmd.add_argument("--seed", type=int, help="Override the configured random seed.")
    compile_cmd.add_argument("--cot", action="store_true", help="Add a reasoning step before the outputs.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(level=args.log_level, trace_format=args.trace_format)
    try:
        llm = create_llm_client(load_llm_config(args.llm_config))
        if args.command == "predict":
            payload = run_predict(args, llm)
        else:
            payload = run_compile(args, llm)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    except (PromptKitError, ValueError) as exc:
        logger.error("Command failed", extra={"command": args.command, "error": str(exc)})
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
    return 0


__all__ = ["main", "build_parser", "parse_key_values", "resolve_metric", "build_module"]


if __name__ == "__main__":
    sys.exit(main())
