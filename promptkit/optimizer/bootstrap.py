from __future__ import annotations

import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from ..core.errors import BootstrapError, CompileStage, NoLMConfiguredError, OptimizationError
from ..core.example import Example
from ..core.module import Module
from ..core.parameter import Parameter, ParameterType
from ..utils import logging as log_utils
from ..utils.metrics import Metric, as_score
from ..utils.schemas import BootstrapConfig
from . import trainset as trainset_utils
from .candidate import BootstrapCandidate
from .evaluate import EvaluationResult, evaluate
from .pool import run_bounded
from .trainset import SamplingStrategy

T = TypeVar("T")

# Seed offsets so each phase draws from its own reproducible stream.
BOOTSTRAP_SEED_OFFSET = 0
CANDIDATE_SEED_OFFSET = 1000
LABELED_SEED_OFFSET = 2000


@dataclass
class ScoredExample:
    example: Example
    score: float


@dataclass
class CandidateEvaluation:
    candidate: BootstrapCandidate
    result: EvaluationResult

    @property
    def candidate_id(self) -> int:
        return self.candidate.candidate_id

    @property
    def mean(self) -> float:
        return self.result.mean

    @property
    def std(self) -> float:
        return self.result.std


@dataclass
class CompileResult:
    program: BootstrapCandidate
    score: float
    std: float
    bootstrapped: List[Example] = field(default_factory=list)
    labeled: List[Example] = field(default_factory=list)
    evaluations: List[CandidateEvaluation] = field(default_factory=list)
    demos: Optional[Parameter] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.program.candidate_id,
            "score": self.score,
            "std": self.std,
            "num_examples": len(self.program.examples),
            "num_bootstrapped": len(self.bootstrapped),
            "num_labeled": len(self.labeled),
            "examples": [example.to_dict() for example in self.program.examples],
            "candidates": [
                {"candidate_id": ev.candidate_id, "mean": ev.mean, "std": ev.std, "failures": ev.result.failures}
                for ev in self.evaluations
            ],
        }


class BootstrapFewShot:
    """Bootstrap few-shot demonstrations and keep the best-scoring subset.

    ``compile`` runs the teacher over sampled training inputs, keeps the
    outputs the metric scores above zero, mixes them with labeled examples
    into ``num_candidate_programs`` candidates and returns the candidate with
    the highest mean validation score (lowest candidate id on ties).
    """

    def __init__(
        self,
        metric: Metric,
        teacher: Optional[Module] = None,
        max_bootstrapped_demos: int = 4,
        max_labeled_demos: int = 4,
        max_rounds: int = 1,
        max_errors: int = 5,
        num_candidate_programs: int = 16,
        num_threads: Optional[int] = None,
        seed: Optional[int] = None,
        bootstrap_strategy: SamplingStrategy | str = SamplingStrategy.RANDOM,
        bootstrap_timeout: Optional[float] = 30.0,
        candidate_timeout: Optional[float] = 60.0,
    ) -> None:
        if not callable(metric):
            raise ValueError("BootstrapFewShot requires a callable metric")
        if max_bootstrapped_demos < 0 or max_labeled_demos < 0:
            raise ValueError("demo limits must be non-negative")
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if num_candidate_programs < 1:
            raise ValueError("num_candidate_programs must be at least 1")
        self.metric = metric
        self.teacher = teacher
        self.max_bootstrapped_demos = int(max_bootstrapped_demos)
        self.max_labeled_demos = int(max_labeled_demos)
        self.max_rounds = int(max_rounds)
        self.max_errors = int(max_errors)
        self.num_candidate_programs = int(num_candidate_programs)
        self.num_threads = max(1, int(num_threads or os.cpu_count() or 1))
        self.seed = int(seed) if seed is not None else time.time_ns() // 1000
        self.bootstrap_strategy = SamplingStrategy(bootstrap_strategy)
        self.bootstrap_timeout = bootstrap_timeout
        self.candidate_timeout = candidate_timeout
        self.logger = log_utils.get_logger(__name__)

    @classmethod
    def from_config(cls, config: BootstrapConfig, metric: Metric, teacher: Optional[Module] = None) -> "BootstrapFewShot":
        return cls(
            metric,
            teacher=teacher,
            max_bootstrapped_demos=config.max_bootstrapped_demos,
            max_labeled_demos=config.max_labeled_demos,
            max_rounds=config.max_rounds,
            max_errors=config.max_errors,
            num_candidate_programs=config.num_candidate_programs,
            num_threads=config.num_threads,
            seed=config.seed,
            bootstrap_strategy=config.bootstrap_strategy,
            bootstrap_timeout=config.bootstrap_timeout,
            candidate_timeout=config.candidate_timeout,
        )

    def compile(
        self,
        student: Module,
        trainset: Iterable[Example | Mapping[str, Any]],
        valset: Optional[Iterable[Example | Mapping[str, Any]]] = None,
    ) -> CompileResult:
        self.logger.info("Starting BootstrapFewShot compilation", extra={"seed": self.seed})
        train = self._run_stage(CompileStage.TRAINSET_VALIDATION, lambda: trainset_utils.validate(trainset))
        validation = train
        if valset is not None:
            validation = self._run_stage(CompileStage.TRAINSET_VALIDATION, lambda: trainset_utils.validate(valset))
        teacher = self._run_stage(CompileStage.TEACHER_RESOLUTION, lambda: self._resolve_teacher(student))
        bootstrapped, demos = self._run_stage(CompileStage.BOOTSTRAPPING, lambda: self.bootstrap_examples(teacher, train))
        labeled = self._run_stage(CompileStage.LABELED_SELECTION, lambda: self.select_labeled_examples(train))
        candidates = self._run_stage(
            CompileStage.CANDIDATE_GENERATION,
            lambda: self.generate_candidates(student, bootstrapped, labeled),
        )
        best, evaluations = self._run_stage(CompileStage.SELECTION, lambda: self.select_best(candidates, validation))
        self.logger.info("BootstrapFewShot compilation completed", extra={"candidate_id": best.candidate_id})
        return CompileResult(
            program=best.candidate,
            score=best.mean,
            std=best.std,
            bootstrapped=bootstrapped,
            labeled=labeled,
            evaluations=evaluations,
            demos=demos,
        )

    # -- stages -----------------------------------------------------------

    def bootstrap_examples(self, teacher: Module, train: Sequence[Example]) -> Tuple[List[Example], Parameter]:
        self.logger.info("Bootstrapping examples from %d training examples", len(train))
        rng = random.Random(self.seed + BOOTSTRAP_SEED_OFFSET)
        collected: List[ScoredExample] = []
        demos = Parameter("bootstrapped_demos", ParameterType.EXAMPLES, [])
        for round_no in range(1, self.max_rounds + 1):
            self.logger.info("Bootstrap round %d/%d", round_no, self.max_rounds)
            collected.extend(self._bootstrap_round(teacher, train, rng))
            demos = demos.update(self._select_demos(collected))
        best = self._select_demos(collected)
        self.logger.info("Bootstrapped %d high-quality examples", len(best))
        return best, demos

    def select_labeled_examples(self, train: Sequence[Example]) -> List[Example]:
        rng = random.Random(self.seed + LABELED_SEED_OFFSET)
        return trainset_utils.sample(train, self.max_labeled_demos, SamplingStrategy.DIVERSE, rng)

    def generate_candidates(
        self,
        student: Module,
        bootstrapped: Sequence[Example],
        labeled: Sequence[Example],
    ) -> List[BootstrapCandidate]:
        self.logger.info("Generating %d candidate programs", self.num_candidate_programs)
        rng = random.Random(self.seed + CANDIDATE_SEED_OFFSET)
        candidates: List[BootstrapCandidate] = []
        for candidate_id in range(1, self.num_candidate_programs + 1):
            num_bootstrap = rng.randint(0, len(bootstrapped))
            num_labeled = rng.randint(0, len(labeled))
            chosen = rng.sample(list(bootstrapped), num_bootstrap) + rng.sample(list(labeled), num_labeled)
            candidates.append(BootstrapCandidate(student, chosen, candidate_id))
        return candidates

    def select_best(
        self,
        candidates: Sequence[BootstrapCandidate],
        validation: Sequence[Example],
    ) -> Tuple[CandidateEvaluation, List[CandidateEvaluation]]:
        self.logger.info("Evaluating %d candidate programs", len(candidates))
        finished = run_bounded(
            lambda candidate: evaluate(candidate, validation, self.metric, num_threads=1),
            candidates,
            self.num_threads,
            self.candidate_timeout,
            "evaluate",
            self.logger,
        )
        evaluations: List[CandidateEvaluation] = []
        for idx in sorted(finished):
            try:
                result = finished[idx].result()
            except NoLMConfiguredError:
                raise
            except Exception as exc:
                self.logger.warning(
                    "Candidate evaluation failed",
                    extra={"candidate_id": candidates[idx].candidate_id, "error": str(exc)},
                )
                result = EvaluationResult(mean=0.0, std=0.0, failures=len(validation))
            evaluations.append(CandidateEvaluation(candidates[idx], result))
        if not evaluations:
            raise OptimizationError(CompileStage.SELECTION, "no candidate finished evaluation before the timeout")
        best = min(evaluations, key=lambda ev: (-ev.mean, ev.candidate_id))
        self.logger.info(
            "Best program score: %.3f ± %.3f",
            best.mean,
            best.std,
            extra={"candidate_id": best.candidate_id, "evaluated": len(evaluations)},
        )
        return best, evaluations

    # -- helpers ----------------------------------------------------------

    def _run_stage(self, stage: CompileStage, operation: Callable[[], T]) -> T:
        try:
            return operation()
        except OptimizationError:
            raise
        except Exception as exc:
            self.logger.error("Compilation failed", extra={"stage": stage.value, "error": str(exc)})
            raise OptimizationError(stage, str(exc)) from exc

    def _resolve_teacher(self, student: Module) -> Module:
        teacher = self.teacher if self.teacher is not None else student
        if not callable(getattr(teacher, "forward", None)):
            raise TypeError(f"teacher must provide forward(), got {type(teacher).__name__}")
        return teacher

    def _bootstrap_round(self, teacher: Module, train: Sequence[Example], rng: random.Random) -> List[ScoredExample]:
        sampled = trainset_utils.sample(train, 2 * self.max_bootstrapped_demos, self.bootstrap_strategy, rng)
        if not sampled:
            return []
        chunk_size = max(1, len(sampled) // self.num_threads)
        chunks = [sampled[start : start + chunk_size] for start in range(0, len(sampled), chunk_size)]
        finished = run_bounded(
            lambda chunk: self._bootstrap_chunk(teacher, chunk),
            chunks,
            self.num_threads,
            self.bootstrap_timeout,
            "bootstrap",
            self.logger,
        )
        results: List[ScoredExample] = []
        for idx in sorted(finished):
            try:
                results.extend(finished[idx].result())
            except NoLMConfiguredError:
                raise
            except Exception as exc:
                self.logger.warning("Bootstrap chunk failed", extra={"chunk": idx, "error": str(exc)})
        return [item for item in results if item.score > 0]

    def _bootstrap_chunk(self, teacher: Module, chunk: Sequence[Example]) -> List[ScoredExample]:
        results: List[ScoredExample] = []
        errors = 0
        for position, example in enumerate(chunk):
            if errors >= self.max_errors:
                self.logger.debug(
                    "Chunk error budget exhausted",
                    extra={"errors": errors, "skipped": len(chunk) - position},
                )
                break
            try:
                results.append(self._bootstrap_one(teacher, example))
            except BootstrapError as exc:
                errors += 1
                self.logger.debug("Bootstrap example rejected: %s", exc)
        return results

    def _bootstrap_one(self, teacher: Module, example: Example) -> ScoredExample:
        inputs = example.to_dict()
        try:
            prediction = teacher.forward(inputs)
        except NoLMConfiguredError:
            raise
        except Exception as exc:
            raise BootstrapError(f"Teacher failed: {exc}", inputs) from exc
        metadata = dict(example.metadata)
        metadata.update({"gold": dict(example.attrs), "bootstrapped": True})
        # inputs first, then the teacher's outputs in the order it produced them
        attrs = {key: value for key, value in inputs.items() if key not in prediction.attrs}
        attrs.update(prediction.attrs)
        demo = Example(attrs=attrs, metadata=metadata)
        try:
            raw_score = self.metric(demo, prediction)
        except Exception as exc:
            raise BootstrapError(f"Metric failed: {exc}", inputs) from exc
        score = as_score(raw_score)
        if score is None or score <= 0:
            raise BootstrapError(f"Invalid score: {raw_score!r}", inputs)
        return ScoredExample(example=demo, score=score)

    def _select_demos(self, scored: Iterable[ScoredExample]) -> List[Example]:
        unique: List[ScoredExample] = []
        seen: set[str] = set()
        for item in scored:
            key = item.example.content_key()
            if key in seen:
                continue
            seen.add(key)
            unique.append(item)
        unique.sort(key=lambda item: item.score, reverse=True)
        return [item.example for item in unique[: self.max_bootstrapped_demos]]


__all__ = [
    "BootstrapFewShot",
    "CompileResult",
    "CandidateEvaluation",
    "ScoredExample",
    "BOOTSTRAP_SEED_OFFSET",
    "CANDIDATE_SEED_OFFSET",
    "LABELED_SEED_OFFSET",
]
