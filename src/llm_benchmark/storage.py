"""
File-backed persistence for benchmark runs, results and rankings.

Layout::

    <storage_path>/runs/<run_id>/run.json        run config, status, summary
    <storage_path>/runs/<run_id>/results.jsonl   one TestCaseResult per line
    <storage_path>/runs/<run_id>/rankings.json   latest ranking set
"""

import json
import re
import uuid
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import pandas as pd

from .errors import BenchmarkError
from .models import (
    BenchmarkConfig,
    BenchmarkRun,
    ModelConfig,
    ModelRanking,
    RunStatus,
    StatusDetails,
    TestCase,
    TestCaseResult,
    TokenUsage,
)
from .logging import get_logger


logger = get_logger(__name__)


RESULT_COLUMNS = [
    'run_id', 'model_id', 'served_model_id', 'test_case_id', 'test_case_name', 'category',
    'prompt', 'expected_output', 'output', 'error', 'latency_ms', 'input_tokens',
    'output_tokens', 'total_tokens', 'cost', 'accuracy_score', 'domain_expertise_score',
    'attempts',
]


class RunStore(Protocol):
    async def create_run(self, config: BenchmarkConfig) -> BenchmarkRun: ...

    async def update_run_status(self, run_id: str, status: RunStatus, details: StatusDetails) -> None: ...

    async def append_test_case_result(self, run_id: str, result: TestCaseResult) -> None: ...

    async def update_run_summary(
        self,
        run_id: str,
        summary: Dict[str, Any],
        model_results: Dict[str, Dict[str, TestCaseResult]]
    ) -> None: ...

    async def list_rankings(self, run_id: str) -> List[ModelRanking]: ...

    async def save_rankings(self, run_id: str, rankings: List[ModelRanking]) -> None: ...

    async def get_run(self, run_id: str) -> Optional[BenchmarkRun]: ...

    async def load_results(self, run_id: str) -> List[TestCaseResult]: ...


def make_path_safe(name: str, max_length: int = 30) -> str:
    """Convert name to filesystem-safe string."""
    if not name:
        return "unnamed"

    safe_name = re.sub(r'[^\w\s-]', '', name.lower())
    safe_name = re.sub(r'[\s_]+', '-', safe_name)
    safe_name = safe_name.strip('-')

    if len(safe_name) > max_length:
        safe_name = safe_name[:max_length].rstrip('-')

    return safe_name or "unnamed"


def create_run_id(name: str) -> str:
    """Create run ID: name_YYYYMMDD-HHMMSS_uuid."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    short_uuid = uuid.uuid4().hex[:4]
    return f"{make_path_safe(name)}_{timestamp}_{short_uuid}"


def config_to_dict(config: BenchmarkConfig) -> Dict[str, Any]:
    return {
        'name': config.name,
        'topic': config.topic,
        'test_cases': [asdict(test_case) for test_case in config.test_cases],
        'model_configs': [asdict(model) for model in config.model_configs],
    }


def config_from_dict(data: Dict[str, Any]) -> BenchmarkConfig:
    return BenchmarkConfig(
        name=data['name'],
        topic=data.get('topic'),
        test_cases=[TestCase(**item) for item in data.get('test_cases', [])],
        model_configs=[ModelConfig(**item) for item in data.get('model_configs', [])],
    )


def result_to_dict(result: TestCaseResult) -> Dict[str, Any]:
    return asdict(result)


def result_from_dict(data: Dict[str, Any]) -> TestCaseResult:
    fields = dict(data)
    fields['token_counts'] = TokenUsage(**(fields.get('token_counts') or {}))
    return TestCaseResult(**fields)


def ranking_from_dict(data: Dict[str, Any]) -> ModelRanking:
    return ModelRanking(**data)


class StorageManager:
    """Stores each run in its own directory under storage_path/runs."""

    def __init__(self, storage_path: str = "./benchmarks"):
        """Initialize storage manager with base storage path."""
        self.storage_path = Path(storage_path)
        self.runs_path = self.storage_path / "runs"
        self.runs_path.mkdir(parents=True, exist_ok=True)

    # RunStore

    async def create_run(self, config: BenchmarkConfig) -> BenchmarkRun:
        """Create the run directory and persist a run in the created state."""
        run = BenchmarkRun(id=create_run_id(config.name), config=config)

        run_path = self.runs_path / run.id
        run_path.mkdir(parents=True, exist_ok=False)
        (run_path / "results.jsonl").touch()

        self._write_run(run)
        logger.info("Run created", run_id=run.id, name=config.name)
        return run

    async def update_run_status(self, run_id: str, status: RunStatus, details: StatusDetails) -> None:
        """
        Persist a status change or progress update.

        Raises:
            BenchmarkError: If the run is unknown or already in a terminal
                state other than the requested one
        """
        run = self._require_run(run_id)

        if run.status.is_terminal and status != run.status:
            raise BenchmarkError(f"Run {run_id} is already {run.status.value}")

        run.status = status
        run.status_details = details
        if status == RunStatus.FAILED:
            run.error = details.error
        self._write_run(run)

    async def append_test_case_result(self, run_id: str, result: TestCaseResult) -> None:
        """Append one result line to the run's results file."""
        results_path = self._require_run_path(run_id) / "results.jsonl"
        with open(results_path, 'a') as f:
            f.write(json.dumps(result_to_dict(result)) + '\n')

    async def update_run_summary(
        self,
        run_id: str,
        summary: Dict[str, Any],
        model_results: Dict[str, Dict[str, TestCaseResult]]
    ) -> None:
        run = self._require_run(run_id)
        run.summary = summary
        run.model_results = model_results
        self._write_run(run)

    async def list_rankings(self, run_id: str) -> List[ModelRanking]:
        rankings_path = self._require_run_path(run_id) / "rankings.json"
        if not rankings_path.exists():
            return []

        with open(rankings_path, 'r') as f:
            return [ranking_from_dict(item) for item in json.load(f)]

    async def save_rankings(self, run_id: str, rankings: List[ModelRanking]) -> None:
        """Replace the run's ranking set."""
        rankings_path = self._require_run_path(run_id) / "rankings.json"
        with open(rankings_path, 'w') as f:
            json.dump([asdict(ranking) for ranking in rankings], f, indent=2)

    async def get_run(self, run_id: str) -> Optional[BenchmarkRun]:
        return self._read_run(run_id)

    async def load_results(self, run_id: str) -> List[TestCaseResult]:
        return self._read_results(run_id)

    # Browsing and export

    def list_runs(self) -> List[BenchmarkRun]:
        """List all stored runs, newest first."""
        runs = []
        for run_dir in self.runs_path.iterdir():
            if run_dir.is_dir():
                run = self._read_run(run_dir.name)
                if run:
                    runs.append(run)
        return sorted(runs, key=lambda run: run.created_at, reverse=True)

    def export_run_to_dataframe(self, run_id: str) -> pd.DataFrame:
        """Export run results to a DataFrame, one row per (model, test case)."""
        run = self._require_run(run_id)
        results = self._read_results(run_id)

        if not results:
            return pd.DataFrame(columns=RESULT_COLUMNS)

        test_cases = {test_case.id: test_case for test_case in run.config.test_cases}

        data = []
        for result in results:
            test_case = test_cases.get(result.test_case_id)
            data.append({
                'run_id': run_id,
                'model_id': result.model_id,
                'served_model_id': result.served_model_id,
                'test_case_id': result.test_case_id,
                'test_case_name': test_case.name if test_case else '',
                'category': test_case.category if test_case else None,
                'prompt': test_case.prompt if test_case else '',
                'expected_output': test_case.expected_output if test_case else '',
                'output': result.output,
                'error': result.error,
                'latency_ms': result.latency_ms,
                'input_tokens': result.token_counts.input,
                'output_tokens': result.token_counts.output,
                'total_tokens': result.token_counts.total,
                'cost': result.cost,
                'accuracy_score': result.accuracy_score,
                'domain_expertise_score': result.domain_expertise_score,
                'attempts': result.attempts,
            })

        return pd.DataFrame(data, columns=RESULT_COLUMNS)

    # Internals

    def _run_path(self, run_id: str) -> Path:
        return self.runs_path / run_id

    def _require_run_path(self, run_id: str) -> Path:
        run_path = self._run_path(run_id)
        if not (run_path / "run.json").exists():
            raise BenchmarkError(f"Run {run_id} not found")
        return run_path

    def _require_run(self, run_id: str) -> BenchmarkRun:
        run = self._read_run(run_id)
        if run is None:
            raise BenchmarkError(f"Run {run_id} not found")
        return run

    def _write_run(self, run: BenchmarkRun) -> None:
        data = {
            'id': run.id,
            'config': config_to_dict(run.config),
            'status': run.status.value,
            'status_details': asdict(run.status_details),
            'summary': run.summary,
            'model_results': {
                model_id: {
                    test_case_id: result_to_dict(result)
                    for test_case_id, result in results.items()
                }
                for model_id, results in run.model_results.items()
            },
            'error': run.error,
            'created_at': run.created_at.isoformat(),
        }

        run_file = self._run_path(run.id) / "run.json"
        tmp_file = run_file.with_suffix(".json.tmp")
        with open(tmp_file, 'w') as f:
            json.dump(data, f, indent=2)
        tmp_file.replace(run_file)

    def _read_run(self, run_id: str) -> Optional[BenchmarkRun]:
        run_file = self._run_path(run_id) / "run.json"
        if not run_file.exists():
            return None

        with open(run_file, 'r') as f:
            data = json.load(f)

        return BenchmarkRun(
            id=data['id'],
            config=config_from_dict(data['config']),
            status=RunStatus(data['status']),
            status_details=StatusDetails(**data.get('status_details', {})),
            summary=data.get('summary', {}),
            model_results={
                model_id: {
                    test_case_id: result_from_dict(result)
                    for test_case_id, result in results.items()
                }
                for model_id, results in data.get('model_results', {}).items()
            },
            error=data.get('error'),
            created_at=datetime.fromisoformat(data['created_at']),
        )

    def _read_results(self, run_id: str) -> List[TestCaseResult]:
        results_path = self._require_run_path(run_id) / "results.jsonl"
        if not results_path.exists():
            return []

        results = []
        with open(results_path, 'r') as f:
            for line in f:
                if line.strip():
                    results.append(result_from_dict(json.loads(line)))
        return results
