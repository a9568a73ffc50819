"""Shared fixtures and fake collaborators."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from llm_benchmark.capacity import CapacityGuard
from llm_benchmark.models import (
    BenchmarkConfig,
    InferenceResult,
    ModelConfig,
    TestCase,
    TestCaseResult,
    TokenUsage,
)
from llm_benchmark.storage import StorageManager


class FakeInferenceClient:
    """
    Completes immediately with a fixed answer.

    errors: exceptions raised by successive calls, None meaning success.
    failures: {(model_id, n): exception} raised on the n-th call (1-based)
        for that model.
    """

    def __init__(
        self,
        text: str = "4",
        usage: Optional[TokenUsage] = None,
        errors: Optional[List[Optional[Exception]]] = None,
        failures: Optional[Dict[Tuple[str, int], Exception]] = None
    ):
        self.text = text
        self.usage = usage or TokenUsage(input=5, output=1, total=6)
        self.errors = list(errors or [])
        self.failures = dict(failures or {})
        self.calls: List[Tuple[str, List[Dict[str, str]], Dict[str, Any]]] = []
        self._per_model: Dict[str, int] = {}

    async def invoke(self, model_id, messages, parameters):
        self.calls.append((model_id, messages, dict(parameters)))
        self._per_model[model_id] = self._per_model.get(model_id, 0) + 1

        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error

        failure = self.failures.get((model_id, self._per_model[model_id]))
        if failure is not None:
            raise failure

        return InferenceResult(text=self.text, token_usage=self.usage)


class FailingCapacityChecker:
    async def check_capacity(self, credential_ref, model_id=None):
        raise ConnectionError("capacity endpoint unreachable")


def make_config(
    model_ids=("m1",),
    prompts=("2+2?",),
    topic=None,
    expected_outputs=None,
    categories=None
) -> BenchmarkConfig:
    expected_outputs = expected_outputs or [""] * len(prompts)
    categories = categories or [None] * len(prompts)
    return BenchmarkConfig(
        name="unit test benchmark",
        topic=topic,
        test_cases=[
            TestCase(
                id=f"t{i + 1}",
                prompt=prompt,
                name=f"Case {i + 1}",
                category=categories[i],
                expected_output=expected_outputs[i],
            )
            for i, prompt in enumerate(prompts)
        ],
        model_configs=[ModelConfig(model_id=model_id) for model_id in model_ids],
    )


def make_result(model_id="m1", test_case_id="t1", **fields) -> TestCaseResult:
    fields.setdefault("output", "answer")
    fields.setdefault("latency_ms", 1000)
    return TestCaseResult(model_id=model_id, test_case_id=test_case_id, **fields)


@pytest.fixture
def store(tmp_path) -> StorageManager:
    return StorageManager(str(tmp_path / "benchmarks"))


@pytest.fixture
def fake_client() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def guard(fake_client) -> CapacityGuard:
    return CapacityGuard(fake_client)
