"""
Data models for the LLM Benchmark Toolkit.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any


# Substituted for scores that cannot be measured, so unevaluated models are
# ranked neither first nor last by construction.
NEUTRAL_SCORE = 0.5
NEUTRAL_LEVEL = 3


@dataclass(frozen=True)
class TestCase:
    """A single prompt with its expected output and optional category."""
    id: str
    prompt: str
    name: str = ""
    category: Optional[str] = None
    expected_output: str = ""

    __test__ = False


@dataclass(frozen=True)
class ModelConfig:
    """A model to benchmark and the parameters it is called with."""
    model_id: str
    enabled: bool = True
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BenchmarkConfig:
    """Immutable input of a benchmark run."""
    name: str
    test_cases: List[TestCase] = field(default_factory=list)
    model_configs: List[ModelConfig] = field(default_factory=list)
    topic: Optional[str] = None

    def enabled_models(self) -> List[ModelConfig]:
        """Return the enabled model configurations in configured order."""
        return [model for model in self.model_configs if model.enabled]

    @property
    def total_tests(self) -> int:
        return len(self.enabled_models()) * len(self.test_cases)


class RunStatus(str, Enum):
    """Lifecycle state of a benchmark run."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


@dataclass
class StatusDetails:
    """Progress snapshot published while a run executes."""
    total_tests: int = 0
    progress: int = 0
    current_model: Optional[str] = None
    current_test: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BenchmarkRun:
    """A benchmark run and its lifecycle state."""
    id: str
    config: BenchmarkConfig
    status: RunStatus = RunStatus.CREATED
    status_details: StatusDetails = field(default_factory=StatusDetails)
    summary: Dict[str, Any] = field(default_factory=dict)
    model_results: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a provider for one call."""
    input: int = 0
    output: int = 0
    total: int = 0


@dataclass(frozen=True)
class InferenceResult:
    """Text and token usage returned by an inference client."""
    text: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class TestCaseResult:
    """Outcome of one (model, test case) cell. Never mutated once built."""
    model_id: str
    test_case_id: str
    output: str = ""
    error: Optional[str] = None
    latency_ms: int = 0
    token_counts: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    accuracy_score: Optional[float] = None
    domain_expertise_score: Optional[float] = None
    served_model_id: Optional[str] = None
    attempts: int = 0

    __test__ = False

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class ModelMetrics:
    """Aggregate metrics for one model in a run."""
    model_id: str
    avg_latency: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    accuracy_score: float = NEUTRAL_SCORE
    domain_expertise_score: float = NEUTRAL_SCORE
    overall_score: float = NEUTRAL_SCORE
    cost_efficiency: float = NEUTRAL_SCORE
    speed_level: int = NEUTRAL_LEVEL
    cost_level: int = NEUTRAL_LEVEL
    result_count: int = 0
    success_count: int = 0

    @classmethod
    def neutral(cls, model_id: str, result_count: int = 0) -> "ModelMetrics":
        """Metrics for a model with no successful result."""
        return cls(model_id=model_id, result_count=result_count)


@dataclass(frozen=True)
class ModelRanking:
    """Ranks of one model along every dimension of a run."""
    id: str
    run_id: str
    model_id: str
    overall_rank: int
    performance_rank: int
    cost_efficiency_rank: int
    domain_expertise_rank: int
    score: float
    speed_level: int
    cost_level: int


@dataclass(frozen=True)
class CategoryScore:
    """Mean score of a model within one test-case category."""
    category: str
    score: float
    test_count: int = 0
    samples: List[str] = field(default_factory=list)


@dataclass
class DomainInsight:
    """Per-model domain expertise breakdown."""
    model_id: str
    domain_expertise_score: float = NEUTRAL_SCORE
    consistency_score: float = NEUTRAL_SCORE
    strengths: List[CategoryScore] = field(default_factory=list)
    weaknesses: List[CategoryScore] = field(default_factory=list)
    category_breakdown: Dict[str, CategoryScore] = field(default_factory=dict)
    summary: str = ""


@dataclass
class RunContext:
    """
    Everything a single run needs, passed explicitly to each component.

    Owned by the runner task for the lifetime of one run; nothing here is
    shared with other runs.
    """
    run: BenchmarkRun
    config: BenchmarkConfig
    store: Any
    progress: Any
    logger: Any
    credential_ref: Optional[str] = None
    results: List[TestCaseResult] = field(default_factory=list)

    @property
    def run_id(self) -> str:
        return self.run.id
