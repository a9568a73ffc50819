"""
Aggregation of per-cell results into per-model metrics.
"""

import math
from typing import Dict, Iterable, List, Optional

from .models import ModelMetrics, TestCaseResult


ACCURACY_WEIGHT = 0.4
DOMAIN_WEIGHT = 0.3
LATENCY_WEIGHT = 0.1
COST_WEIGHT = 0.2

LATENCY_CEILING_MS = 10000
COST_CEILING = 0.1
MIN_COST = 0.001


def _clamp_level(value: float) -> int:
    return max(1, min(5, math.floor(value)))


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def latency_score(avg_latency: float) -> float:
    return max(0.0, 1 - avg_latency / LATENCY_CEILING_MS)


def cost_score(total_cost: float) -> float:
    return max(0.0, 1 - total_cost / COST_CEILING)


def speed_level(avg_latency: float) -> int:
    """1 (slowest) to 5 (fastest); every 2 seconds of mean latency costs a level."""
    return _clamp_level(6 - avg_latency / 2000)


def cost_level(total_cost: float) -> int:
    """1 (most expensive) to 5 (cheapest); every cent of total cost costs a level."""
    return _clamp_level(6 - total_cost * 100)


class ScoringEngine:
    """
    Computes ModelMetrics from raw results.

    A model whose results all failed has nothing to measure and gets neutral
    metrics instead of zeros.
    """

    def score_model(self, model_id: str, results: List[TestCaseResult]) -> ModelMetrics:
        """
        Aggregate the results of one model.

        Args:
            model_id: Model the results belong to
            results: All of the model's results, failed ones included

        Returns:
            ModelMetrics for the model
        """
        success_count = sum(1 for result in results if result.succeeded)
        if success_count == 0:
            return ModelMetrics.neutral(model_id, result_count=len(results))

        avg_latency = _mean([result.latency_ms for result in results])
        total_tokens = sum(result.token_counts.total for result in results)
        total_cost = sum(result.cost for result in results)

        accuracy = _mean([r.accuracy_score for r in results if r.accuracy_score is not None])
        domain = _mean([r.domain_expertise_score for r in results if r.domain_expertise_score is not None])

        overall = (
            accuracy * ACCURACY_WEIGHT
            + domain * DOMAIN_WEIGHT
            + latency_score(avg_latency) * LATENCY_WEIGHT
            + cost_score(total_cost) * COST_WEIGHT
        )

        return ModelMetrics(
            model_id=model_id,
            avg_latency=avg_latency,
            total_tokens=total_tokens,
            total_cost=total_cost,
            accuracy_score=accuracy,
            domain_expertise_score=domain,
            overall_score=overall,
            cost_efficiency=accuracy / max(total_cost, MIN_COST),
            speed_level=speed_level(avg_latency),
            cost_level=cost_level(total_cost),
            result_count=len(results),
            success_count=success_count,
        )

    def score_run(
        self,
        results: Iterable[TestCaseResult],
        model_ids: Optional[Iterable[str]] = None
    ) -> List[ModelMetrics]:
        """
        Aggregate a run's results, one ModelMetrics per model.

        Args:
            results: All results of the run
            model_ids: Optional explicit model order; models listed here
                without any result are skipped

        Returns:
            Metrics in first-seen model order (or model_ids order)
        """
        grouped: Dict[str, List[TestCaseResult]] = {}
        for result in results:
            grouped.setdefault(result.model_id, []).append(result)

        order = list(model_ids) if model_ids is not None else list(grouped)
        return [self.score_model(model_id, grouped[model_id]) for model_id in order if model_id in grouped]
