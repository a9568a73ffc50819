"""
Core benchmarking orchestration.

A run walks the (enabled model x test case) matrix one cell at a time. A cell
that fails is recorded as a failed result and the run carries on; only errors
outside the per-cell handling (bad input, storage outages) fail the run.
"""

import time
from datetime import datetime
from itertools import product
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from .capacity import CapacityGuard
from .cost import calculate_cost
from .errors import BenchmarkError
from .evaluation import OutputEvaluator
from .models import (
    BenchmarkConfig,
    BenchmarkRun,
    ModelConfig,
    RunContext,
    RunStatus,
    StatusDetails,
    TestCase,
    TestCaseResult,
    TokenUsage,
)
from .storage import RunStore
from .logging import ErrorReporter, ProgressLogger, get_logger


logger = get_logger(__name__)


Cell = Tuple[ModelConfig, TestCase]


class BenchmarkProgress:
    """Tracks progress of a benchmark run."""

    def __init__(self, total_items: int):
        self.total_items = total_items
        self.completed_items = 0
        self.failed_items = 0
        self.start_time = datetime.now()
        self.last_update = self.start_time

    def update(self, completed: int = 0, failed: int = 0):
        """Update progress counters."""
        self.completed_items += completed
        self.failed_items += failed
        self.last_update = datetime.now()

    @property
    def processed_items(self) -> int:
        return self.completed_items + self.failed_items

    @property
    def success_rate(self) -> float:
        """Calculate success rate as a percentage."""
        if self.processed_items == 0:
            return 0.0
        return (self.completed_items / self.processed_items) * 100

    @property
    def completion_rate(self) -> float:
        """Calculate completion rate as a percentage."""
        if self.total_items == 0:
            return 100.0
        return (self.processed_items / self.total_items) * 100

    @property
    def elapsed_time(self) -> float:
        """Get elapsed time in seconds."""
        return (self.last_update - self.start_time).total_seconds()

    @property
    def estimated_remaining_time(self) -> Optional[float]:
        """Estimate remaining time in seconds."""
        processed = self.processed_items
        if processed == 0 or processed >= self.total_items or self.elapsed_time <= 0:
            return None

        rate = processed / self.elapsed_time
        return (self.total_items - processed) / rate


def build_cells(config: BenchmarkConfig) -> Iterator[Cell]:
    """
    Validate a benchmark config and return its cells in run order.

    Models are the outer loop, test cases the inner one.

    Raises:
        BenchmarkError: If test case IDs are missing or duplicated
    """
    seen = set()
    for test_case in config.test_cases:
        if not test_case.id:
            raise BenchmarkError("Test case without an ID")
        if test_case.id in seen:
            raise BenchmarkError(f"Duplicate test case ID: {test_case.id}")
        seen.add(test_case.id)

    return iter(product(config.enabled_models(), config.test_cases))


def compute_summary(results: List[TestCaseResult]) -> Dict[str, Any]:
    """
    Aggregate raw results per model.

    Args:
        results: All results of a run

    Returns:
        {"models": {model_id: {...}}, "overall": {...}}
    """
    by_model: Dict[str, List[TestCaseResult]] = {}
    for result in results:
        by_model.setdefault(result.model_id, []).append(result)

    models = {}
    for model_id, model_results in by_model.items():
        count = len(model_results)
        accuracy = [r.accuracy_score for r in model_results if r.accuracy_score is not None]
        domain = [r.domain_expertise_score for r in model_results if r.domain_expertise_score is not None]

        models[model_id] = {
            'avg_latency': sum(r.latency_ms for r in model_results) / count,
            'total_tokens': sum(r.token_counts.total for r in model_results),
            'total_cost': sum(r.cost for r in model_results),
            'success_rate': sum(1 for r in model_results if r.succeeded) / count,
            'test_count': count,
            'avg_accuracy_score': sum(accuracy) / len(accuracy) if accuracy else None,
            'accuracy_score_count': len(accuracy),
            'avg_domain_expertise_score': sum(domain) / len(domain) if domain else None,
            'domain_expertise_score_count': len(domain),
        }

    successful = sum(1 for r in results if r.succeeded)
    return {
        'models': models,
        'overall': {
            'total_results': len(results),
            'successful_results': successful,
            'failed_results': len(results) - successful,
            'total_cost': sum(r.cost for r in results),
            'total_tokens': sum(r.token_counts.total for r in results),
        },
    }


def group_model_results(results: List[TestCaseResult]) -> Dict[str, Dict[str, TestCaseResult]]:
    grouped: Dict[str, Dict[str, TestCaseResult]] = {}
    for result in results:
        grouped.setdefault(result.model_id, {})[result.test_case_id] = result
    return grouped


class BenchmarkRunner:
    """
    Runs benchmark configs against the models they enable and records every
    result through the store.
    """

    def __init__(
        self,
        store: RunStore,
        capacity_guard: CapacityGuard,
        rates: Optional[Mapping[str, Mapping[str, float]]] = None,
        default_parameters: Optional[Dict[str, Any]] = None,
        progress_callback: Optional[Callable[[BenchmarkProgress], None]] = None,
        progress_logger: Optional[ProgressLogger] = None,
        error_reporter: Optional[ErrorReporter] = None
    ):
        """
        Initialize the runner.

        Args:
            store: Persistence for runs and results
            capacity_guard: Issues every inference call
            rates: Optional rate table replacing the built-in one
            default_parameters: Model parameters applied under each model's own
            progress_callback: Called with the progress after every cell
            progress_logger: Progress logger (creates default if None)
            error_reporter: Error reporter (creates default if None)
        """
        self.store = store
        self.capacity_guard = capacity_guard
        self.rates = rates
        self.default_parameters = dict(default_parameters or {})
        self.progress_callback = progress_callback
        self.progress_logger = progress_logger or ProgressLogger()
        self.error_reporter = error_reporter or ErrorReporter()

    async def run_benchmark(self, config: BenchmarkConfig, credential_ref: Optional[str] = None) -> BenchmarkRun:
        """
        Execute a benchmark run to a terminal state.

        Args:
            config: Test cases and models to run
            credential_ref: Opaque credential reference for capacity checks

        Returns:
            The run, either completed or failed. A failed run carries the
            error in run.error; it is not raised.

        Raises:
            Exception: Only if the run cannot be created in the store
        """
        run = await self.store.create_run(config)
        context = RunContext(
            run=run,
            config=config,
            store=self.store,
            progress=BenchmarkProgress(config.total_tests),
            logger=logger.bind(run_id=run.id),
            credential_ref=credential_ref,
        )

        try:
            await self._execute(context)
        except Exception as e:
            await self._fail(context, e)

        return run

    async def _execute(self, context: RunContext):
        config = context.config
        cells = build_cells(config)
        evaluator = OutputEvaluator(config.topic)
        total = config.total_tests

        context.progress = BenchmarkProgress(total)
        await self._publish(context, RunStatus.RUNNING, StatusDetails(total_tests=total))

        self.progress_logger.start_operation(context.run_id, "benchmark_run", total, name=config.name)
        context.logger.info(
            "Starting benchmark run",
            models=[model.model_id for model in config.enabled_models()],
            test_cases=len(config.test_cases),
            total_tests=total
        )

        for model, test_case in cells:
            await self._publish(context, RunStatus.RUNNING, StatusDetails(
                total_tests=total,
                progress=context.progress.processed_items,
                current_model=model.model_id,
                current_test=test_case.id,
            ))

            result = await self._run_cell(context, evaluator, model, test_case)
            await context.store.append_test_case_result(context.run_id, result)
            context.results.append(result)

            if result.succeeded:
                context.progress.update(completed=1)
            else:
                context.progress.update(failed=1)
            self.progress_logger.update_progress(
                context.run_id,
                completed_delta=1 if result.succeeded else 0,
                failed_delta=0 if result.succeeded else 1,
                model_id=model.model_id,
                test_case_id=test_case.id
            )
            if self.progress_callback:
                self.progress_callback(context.progress)

        summary = compute_summary(context.results)
        model_results = group_model_results(context.results)
        await context.store.update_run_summary(context.run_id, summary, model_results)
        context.run.summary = summary
        context.run.model_results = model_results

        await self._publish(context, RunStatus.COMPLETED, StatusDetails(total_tests=total, progress=total))
        self.progress_logger.complete_operation(context.run_id, success=True)

        context.logger.info(
            "Benchmark run completed",
            processed_items=context.progress.processed_items,
            total_items=total,
            success_rate=round(context.progress.success_rate, 1),
            total_time=round(context.progress.elapsed_time, 1)
        )

    async def _run_cell(
        self,
        context: RunContext,
        evaluator: OutputEvaluator,
        model: ModelConfig,
        test_case: TestCase
    ) -> TestCaseResult:
        parameters = {**self.default_parameters, **model.parameters}
        messages = [{"role": "user", "content": test_case.prompt}]

        start_time = time.monotonic()
        try:
            guarded = await self.capacity_guard.guarded_invoke(
                model.model_id,
                messages,
                parameters,
                credential_ref=context.credential_ref
            )
            latency_ms = int((time.monotonic() - start_time) * 1000)

            usage = guarded.result.token_usage
            scores = evaluator.evaluate(test_case, guarded.result.text)

            return TestCaseResult(
                model_id=model.model_id,
                test_case_id=test_case.id,
                output=guarded.result.text,
                latency_ms=latency_ms,
                token_counts=usage,
                cost=calculate_cost(guarded.served_model_id, usage, self.rates),
                accuracy_score=scores.accuracy_score,
                domain_expertise_score=scores.domain_expertise_score,
                served_model_id=guarded.served_model_id,
                attempts=guarded.attempts,
            )

        except Exception as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            self.error_reporter.report_api_error(
                e,
                operation="invoke",
                model_id=model.model_id,
                item_id=test_case.id,
                request_params=parameters,
                run_id=context.run_id
            )
            return TestCaseResult(
                model_id=model.model_id,
                test_case_id=test_case.id,
                error=str(e) or type(e).__name__,
                latency_ms=latency_ms,
                token_counts=TokenUsage(),
                cost=0.0,
            )

    async def _publish(self, context: RunContext, status: RunStatus, details: StatusDetails):
        await context.store.update_run_status(context.run_id, status, details)
        context.run.status = status
        context.run.status_details = details

    async def _fail(self, context: RunContext, error: Exception):
        message = str(error) or type(error).__name__
        details = StatusDetails(
            total_tests=context.config.total_tests,
            progress=context.progress.processed_items,
            error=message,
        )

        context.run.status = RunStatus.FAILED
        context.run.status_details = details
        context.run.error = message

        self.error_reporter.report_run_error(error, context.run_id)
        if self.progress_logger.is_active(context.run_id):
            self.progress_logger.complete_operation(context.run_id, success=False, error=message)

        try:
            await context.store.update_run_status(context.run_id, RunStatus.FAILED, details)
        except Exception as store_error:
            self.error_reporter.report_storage_error(
                store_error,
                operation="update_run_status",
                run_id=context.run_id
            )
