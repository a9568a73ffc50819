"""Tests for the benchmark runner."""

import pytest

from llm_benchmark.capacity import CapacityGuard, FALLBACK_MODEL_ID, StaticCapacityChecker
from llm_benchmark.core import BenchmarkProgress, BenchmarkRunner, build_cells, compute_summary
from llm_benchmark.errors import AuthError, BenchmarkError
from llm_benchmark.models import (
    BenchmarkConfig,
    ModelConfig,
    RunStatus,
    TestCase,
    TokenUsage,
)
from llm_benchmark.storage import StorageManager

from conftest import FakeInferenceClient, make_config, make_result


M1_RATES = {"m1": {"input": 0.00003, "output": 0.00006}}


class BrokenResultStore(StorageManager):
    """Store whose result log is unavailable."""

    async def append_test_case_result(self, run_id, result):
        raise OSError("disk full")


class TestBenchmarkProgress:

    def test_rates(self):
        progress = BenchmarkProgress(total_items=4)
        progress.update(completed=3, failed=1)

        assert progress.processed_items == 4
        assert progress.success_rate == 75.0
        assert progress.completion_rate == 100.0
        assert progress.estimated_remaining_time is None

    def test_empty_progress(self):
        progress = BenchmarkProgress(total_items=0)
        assert progress.success_rate == 0.0
        assert progress.completion_rate == 100.0


class TestBuildCells:

    def test_models_outer_test_cases_inner(self):
        config = make_config(model_ids=("A", "B"), prompts=("p1", "p2"))
        cells = [(model.model_id, test_case.id) for model, test_case in build_cells(config)]
        assert cells == [("A", "t1"), ("A", "t2"), ("B", "t1"), ("B", "t2")]

    def test_disabled_models_are_skipped(self):
        config = BenchmarkConfig(
            name="partial",
            test_cases=[TestCase(id="t1", prompt="p")],
            model_configs=[ModelConfig("A"), ModelConfig("B", enabled=False)],
        )
        assert [model.model_id for model, _ in build_cells(config)] == ["A"]
        assert config.total_tests == 1

    def test_duplicate_ids_rejected(self):
        config = BenchmarkConfig(
            name="dupes",
            test_cases=[TestCase(id="t1", prompt="a"), TestCase(id="t1", prompt="b")],
            model_configs=[ModelConfig("A")],
        )
        with pytest.raises(BenchmarkError, match="Duplicate"):
            build_cells(config)


class TestComputeSummary:

    def test_per_model_aggregates(self):
        results = [
            make_result("A", "t1", latency_ms=100, cost=0.01, token_counts=TokenUsage(1, 1, 2),
                        accuracy_score=0.5),
            make_result("A", "t2", latency_ms=300, cost=0.03, token_counts=TokenUsage(2, 2, 4),
                        accuracy_score=1.0),
            make_result("B", "t1", output="", error="boom"),
        ]
        summary = compute_summary(results)

        model_a = summary["models"]["A"]
        assert model_a["avg_latency"] == 200
        assert model_a["total_tokens"] == 6
        assert model_a["total_cost"] == pytest.approx(0.04)
        assert model_a["success_rate"] == 1.0
        assert model_a["avg_accuracy_score"] == pytest.approx(0.75)
        assert model_a["avg_domain_expertise_score"] is None

        assert summary["models"]["B"]["success_rate"] == 0.0
        assert summary["overall"]["failed_results"] == 1
        assert summary["overall"]["total_results"] == 3


class TestBenchmarkRunner:

    @pytest.mark.asyncio
    async def test_single_cell_cost(self, store, fake_client, guard):
        runner = BenchmarkRunner(store, guard, rates=M1_RATES)

        run = await runner.run_benchmark(make_config())

        assert run.status == RunStatus.COMPLETED
        assert run.status_details.progress == 1

        results = await store.load_results(run.id)
        assert len(results) == 1
        assert results[0].output == "4"
        assert results[0].cost == pytest.approx(5 * 0.00003 + 1 * 0.00006)
        assert results[0].token_counts == TokenUsage(5, 1, 6)
        assert results[0].served_model_id == "m1"
        assert results[0].accuracy_score is None

    @pytest.mark.asyncio
    async def test_cell_failure_does_not_fail_run(self, store):
        client = FakeInferenceClient(failures={("A", 2): AuthError("credentials revoked")})
        runner = BenchmarkRunner(store, CapacityGuard(client))
        config = make_config(model_ids=("A", "B"), prompts=("p1", "p2", "p3"))

        run = await runner.run_benchmark(config)

        assert run.status == RunStatus.COMPLETED
        assert run.status_details.progress == 6

        results = await store.load_results(run.id)
        assert len(results) == 6

        model_a = [r for r in results if r.model_id == "A"]
        assert len(model_a) == 3
        failed = [r for r in model_a if not r.succeeded]
        assert len(failed) == 1
        assert failed[0].test_case_id == "t2"
        assert "credentials revoked" in failed[0].error
        assert failed[0].cost == 0.0
        assert failed[0].token_counts.total == 0

        assert all(r.succeeded for r in results if r.model_id == "B")

        stored = await store.get_run(run.id)
        assert stored.status == RunStatus.COMPLETED
        assert stored.summary["models"]["A"]["success_rate"] == pytest.approx(2 / 3)
        assert set(stored.model_results) == {"A", "B"}
        assert stored.model_results["A"]["t2"].error is not None

    @pytest.mark.asyncio
    async def test_invalid_input_fails_run(self, store, guard, fake_client):
        config = BenchmarkConfig(
            name="dupes",
            test_cases=[TestCase(id="t1", prompt="a"), TestCase(id="t1", prompt="b")],
            model_configs=[ModelConfig("A")],
        )
        runner = BenchmarkRunner(store, guard)

        run = await runner.run_benchmark(config)

        assert run.status == RunStatus.FAILED
        assert "Duplicate" in run.error
        assert fake_client.calls == []

        stored = await store.get_run(run.id)
        assert stored.status == RunStatus.FAILED
        assert stored.error == run.error

    @pytest.mark.asyncio
    async def test_store_outage_fails_run(self, tmp_path, guard):
        store = BrokenResultStore(str(tmp_path))
        runner = BenchmarkRunner(store, guard)

        run = await runner.run_benchmark(make_config())

        assert run.status == RunStatus.FAILED
        assert "disk full" in run.error
        assert (await store.get_run(run.id)).status == RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_progress_callback_called_per_cell(self, store, guard):
        seen = []
        runner = BenchmarkRunner(
            store, guard,
            progress_callback=lambda progress: seen.append(progress.processed_items)
        )

        await runner.run_benchmark(make_config(model_ids=("A", "B"), prompts=("p1", "p2")))

        assert seen == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_parameters_merge_defaults_under_model(self, store, fake_client, guard):
        config = BenchmarkConfig(
            name="params",
            test_cases=[TestCase(id="t1", prompt="Hi")],
            model_configs=[ModelConfig("A", parameters={"temperature": 0.2})],
        )
        runner = BenchmarkRunner(store, guard, default_parameters={"temperature": 0.9, "max_tokens": 64})

        await runner.run_benchmark(config)

        model_id, messages, parameters = fake_client.calls[0]
        assert model_id == "A"
        assert messages == [{"role": "user", "content": "Hi"}]
        assert parameters == {"temperature": 0.2, "max_tokens": 64}

    @pytest.mark.asyncio
    async def test_cost_uses_served_model(self, store):
        client = FakeInferenceClient(usage=TokenUsage(1000, 1000, 2000))
        guard = CapacityGuard(client, StaticCapacityChecker(200))
        rates = {
            "anthropic.claude-3-opus-20240229-v1:0": {"input": 1.0, "output": 1.0},
            FALLBACK_MODEL_ID: {"input": 0.001, "output": 0.002},
        }
        config = BenchmarkConfig(
            name="downgrade",
            test_cases=[TestCase(id="t1", prompt="Hi")],
            model_configs=[ModelConfig("anthropic.claude-3-opus-20240229-v1:0", parameters={"max_tokens": 1000})],
        )
        runner = BenchmarkRunner(store, guard, rates=rates)

        run = await runner.run_benchmark(config)

        result = (await store.load_results(run.id))[0]
        assert result.model_id == "anthropic.claude-3-opus-20240229-v1:0"
        assert result.served_model_id == FALLBACK_MODEL_ID
        assert result.cost == pytest.approx(1000 * 0.001 + 1000 * 0.002)

    @pytest.mark.asyncio
    async def test_expected_output_is_scored(self, store, guard, fake_client):
        fake_client.text = "Paris is the capital of France"
        config = make_config(
            prompts=("What is the capital of France?",),
            expected_outputs=["Paris is the capital"],
        )
        runner = BenchmarkRunner(store, guard)

        run = await runner.run_benchmark(config)

        result = (await store.load_results(run.id))[0]
        assert 0.0 <= result.accuracy_score <= 1.0
        assert result.accuracy_score > 0.5
