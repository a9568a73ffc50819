"""
Analysis of completed benchmark runs.

Every request recomputes metrics, rankings and domain insights from the
stored results, so repeated analyses of the same run are identical.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .domain import DomainAnalyzer
from .models import DomainInsight, ModelMetrics, ModelRanking, RunStatus
from .ranking import RankingEngine
from .scoring import ScoringEngine
from .storage import RunStore
from .logging import get_logger


logger = get_logger(__name__)


ANALYSIS_TYPES = ("general", "cost", "domain")


@dataclass
class AnalysisReport:
    """Result of one analysis request. error is set when the run cannot be analyzed."""
    run_id: str
    analysis_type: str
    rankings: List[ModelRanking] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    cost_breakdown: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    domain_insights: List[DomainInsight] = field(default_factory=list)
    category_analysis: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _model_entry(ranking: ModelRanking, rank: int) -> Dict[str, Any]:
    return {"model_id": ranking.model_id, "rank": rank, "score": ranking.score}


class BenchmarkAnalyzer:
    """
    Produces general, cost and domain reports for stored runs.
    """

    def __init__(
        self,
        store: RunStore,
        scoring_engine: Optional[ScoringEngine] = None,
        ranking_engine: Optional[RankingEngine] = None,
        domain_analyzer: Optional[DomainAnalyzer] = None
    ):
        self.store = store
        self.scoring_engine = scoring_engine or ScoringEngine()
        self.ranking_engine = ranking_engine or RankingEngine()
        self.domain_analyzer = domain_analyzer or DomainAnalyzer()

    async def analyze(self, run_id: str, analysis_type: str = "general") -> AnalysisReport:
        """
        Analyze a run and persist its rankings.

        Args:
            run_id: Run to analyze
            analysis_type: "general", "cost" or "domain"

        Returns:
            AnalysisReport; unknown, unfinished or empty runs yield a report
            with error set and no rankings

        Raises:
            ValueError: If analysis_type is not supported
        """
        if analysis_type not in ANALYSIS_TYPES:
            raise ValueError(f"Unsupported analysis type: {analysis_type}. Expected one of {ANALYSIS_TYPES}")

        report = AnalysisReport(run_id=run_id, analysis_type=analysis_type)

        run = await self.store.get_run(run_id)
        if run is None:
            report.error = f"Run {run_id} not found"
            return report

        topic = run.config.topic or "Unknown"
        if run.status != RunStatus.COMPLETED:
            report.error = f"Run {run_id} is {run.status.value}, not completed"
            report.summary = {"topic": topic, "total_models": 0}
            return report

        results = await self.store.load_results(run_id)
        if not results:
            report.error = f"Run {run_id} has no test case results"
            report.summary = {"topic": topic, "total_models": 0}
            return report

        configured = [model.model_id for model in run.config.model_configs]
        seen = list(dict.fromkeys(result.model_id for result in results))
        model_ids = [m for m in configured if m in seen] + [m for m in seen if m not in configured]

        metrics = self.scoring_engine.score_run(results, model_ids)
        rankings = self.ranking_engine.rank(run_id, metrics)
        domain_report = self.domain_analyzer.analyze(results, run.config.test_cases, model_ids)
        rankings = self.ranking_engine.refine_domain_expertise(rankings, metrics, domain_report.domain_scores())

        await self.store.save_rankings(run_id, rankings)
        logger.info("Rankings saved", run_id=run_id, models=len(rankings), analysis_type=analysis_type)

        if analysis_type == "cost":
            report.rankings = sorted(rankings, key=lambda r: r.cost_efficiency_rank)
            report.cost_breakdown = self._cost_breakdown(rankings, metrics)
        elif analysis_type == "domain":
            order = {r.model_id: r.domain_expertise_rank for r in rankings}
            report.rankings = sorted(rankings, key=lambda r: r.domain_expertise_rank)
            report.domain_insights = sorted(domain_report.insights, key=lambda i: order[i.model_id])
            report.category_analysis = domain_report.category_analysis
            report.recommendations = domain_report.recommendations
        else:
            report.rankings = sorted(rankings, key=lambda r: r.overall_rank)
            report.summary = self._summary(topic, rankings, metrics)

        return report

    def _summary(self, topic: str, rankings: List[ModelRanking], metrics: List[ModelMetrics]) -> Dict[str, Any]:
        by_overall = sorted(rankings, key=lambda r: r.overall_rank)
        most_cost_effective = min(rankings, key=lambda r: r.cost_efficiency_rank)
        best_domain_expert = min(rankings, key=lambda r: r.domain_expertise_rank)
        fastest = self.ranking_engine.fastest(metrics)

        return {
            "topic": topic,
            "total_models": len(rankings),
            "top_models": [_model_entry(r, r.overall_rank) for r in by_overall[:3]],
            "most_cost_effective": _model_entry(most_cost_effective, most_cost_effective.cost_efficiency_rank),
            "best_domain_expert": _model_entry(best_domain_expert, best_domain_expert.domain_expertise_rank),
            "fastest": {
                "model_id": fastest.model_id,
                "speed_level": fastest.speed_level,
                "avg_latency": fastest.avg_latency,
            } if fastest else None,
        }

    @staticmethod
    def _cost_breakdown(rankings: List[ModelRanking], metrics: List[ModelMetrics]) -> Dict[str, Dict[str, Any]]:
        by_model = {m.model_id: m for m in metrics}
        breakdown = {}
        for ranking in sorted(rankings, key=lambda r: r.cost_efficiency_rank):
            m = by_model[ranking.model_id]
            breakdown[ranking.model_id] = {
                "total_cost": m.total_cost,
                "cost_per_test_case": m.total_cost / m.result_count if m.result_count else 0.0,
                "total_tokens": m.total_tokens,
                "cost_efficiency": m.cost_efficiency,
                "cost_level": m.cost_level,
                "cost_efficiency_rank": ranking.cost_efficiency_rank,
                "overall_rank": ranking.overall_rank,
            }
        return breakdown
