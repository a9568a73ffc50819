"""
Dense ranking of models along each scoring dimension.
"""

from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from .models import ModelMetrics, ModelRanking


T = TypeVar("T")


def assign_dense_ranks(items: Sequence[T], key: Callable[[T], float]) -> List[int]:
    """
    Rank items 1..N by descending key.

    Ties keep input order (sorted() is stable), so ranks are always a
    permutation of 1..N.

    Args:
        items: Items to rank
        key: Score of an item; higher ranks first

    Returns:
        Rank of each item, aligned with the input order
    """
    order = sorted(range(len(items)), key=lambda index: key(items[index]), reverse=True)
    ranks = [0] * len(items)
    for rank, index in enumerate(order, start=1):
        ranks[index] = rank
    return ranks


def ranking_id(run_id: str, model_id: str) -> str:
    return f"{run_id}:{model_id}"


class RankingEngine:
    """Turns per-model metrics into ModelRanking records."""

    def rank(self, run_id: str, metrics: List[ModelMetrics]) -> List[ModelRanking]:
        """
        Rank every model by overall score, cost efficiency and domain expertise.

        Args:
            run_id: Run the metrics belong to
            metrics: One entry per model, in first-seen order

        Returns:
            One ModelRanking per model, in the order of metrics
        """
        if not metrics:
            return []

        overall = assign_dense_ranks(metrics, lambda m: m.overall_score)
        cost = assign_dense_ranks(metrics, lambda m: m.cost_efficiency)
        domain = assign_dense_ranks(metrics, lambda m: m.domain_expertise_score)

        return [
            ModelRanking(
                id=ranking_id(run_id, m.model_id),
                run_id=run_id,
                model_id=m.model_id,
                overall_rank=overall[i],
                performance_rank=overall[i],
                cost_efficiency_rank=cost[i],
                domain_expertise_rank=domain[i],
                score=m.overall_score,
                speed_level=m.speed_level,
                cost_level=m.cost_level,
            )
            for i, m in enumerate(metrics)
        ]

    def fastest(self, metrics: List[ModelMetrics]) -> Optional[ModelMetrics]:
        """Model with the highest speed level; the first one seen on ties."""
        if not metrics:
            return None
        return metrics[assign_dense_ranks(metrics, lambda m: m.speed_level).index(1)]

    def refine_domain_expertise(
        self,
        rankings: List[ModelRanking],
        metrics: List[ModelMetrics],
        domain_scores: Dict[str, float]
    ) -> List[ModelRanking]:
        """
        Re-rank domain expertise using refined per-model domain scores.

        Models missing from domain_scores keep their scoring-engine domain
        score. Only domain_expertise_rank changes; every ranking is
        reassigned so the ranks stay a permutation.

        Args:
            rankings: Rankings from rank()
            metrics: Metrics the rankings were built from
            domain_scores: Refined domain expertise score per model

        Returns:
            New rankings in the same order
        """
        if not rankings:
            return []

        base = {m.model_id: m.domain_expertise_score for m in metrics}
        scores = [
            domain_scores.get(r.model_id, base.get(r.model_id, 0.0))
            for r in rankings
        ]
        ranks = assign_dense_ranks(scores, lambda score: score)

        return [replace(r, domain_expertise_rank=ranks[i]) for i, r in enumerate(rankings)]
