"""
Per-category breakdown of model performance and cross-model comparison.
"""

import statistics
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .categories import UNCATEGORIZED, resolve_categories
from .models import NEUTRAL_SCORE, CategoryScore, DomainInsight, TestCase, TestCaseResult


STRENGTH_COUNT = 3
SAMPLE_COUNT = 2
SAMPLE_LENGTH = 150
SPECIALIST_THRESHOLD = 0.7

PERFORMANCE_BUCKETS = (
    (0.8, "excellent"),
    (0.6, "good"),
    (0.4, "average"),
    (0.2, "below-average"),
)


def performance_level(score: float) -> str:
    for threshold, label in PERFORMANCE_BUCKETS:
        if score >= threshold:
            return label
    return "poor"


def truncate_sample(text: str, limit: int = SAMPLE_LENGTH) -> str:
    """Cut text to at most limit characters, ending in an ellipsis when cut."""
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def format_category_scores(scores: List[CategoryScore]) -> str:
    if not scores:
        return "none identified"
    return ", ".join(f"{score.category} ({score.score:.2f})" for score in scores)


def consistency(scores: List[float]) -> float:
    """One minus the population standard deviation of the scores, floored at 0."""
    if not scores:
        return NEUTRAL_SCORE
    return max(0.0, 1 - statistics.pstdev(scores))


@dataclass
class DomainReport:
    """Domain insights for every model plus the cross-model comparison."""
    insights: List[DomainInsight] = field(default_factory=list)
    category_analysis: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    def domain_scores(self) -> Dict[str, float]:
        return {insight.model_id: insight.domain_expertise_score for insight in self.insights}


class DomainAnalyzer:
    """
    Breaks each model's accuracy down by test-case category.
    """

    def analyze_model(
        self,
        model_id: str,
        results: List[TestCaseResult],
        categories: Dict[str, str]
    ) -> DomainInsight:
        """
        Build the domain insight of one model.

        Args:
            model_id: Model to describe
            results: The model's results
            categories: Category of each test case ID

        Returns:
            DomainInsight; neutral when the model has no results
        """
        if not results:
            insight = DomainInsight(model_id=model_id)
            insight.summary = self._summary(insight)
            return insight

        grouped: Dict[str, List[TestCaseResult]] = {}
        for result in results:
            grouped.setdefault(categories.get(result.test_case_id, UNCATEGORIZED), []).append(result)

        breakdown: Dict[str, CategoryScore] = {}
        for category, category_results in grouped.items():
            scores = [r.accuracy_score for r in category_results if r.accuracy_score is not None]
            samples = [truncate_sample(r.output) for r in category_results if r.succeeded and r.output]
            breakdown[category] = CategoryScore(
                category=category,
                score=sum(scores) / len(scores) if scores else NEUTRAL_SCORE,
                test_count=len(category_results),
                samples=samples[:SAMPLE_COUNT],
            )

        ranked = sorted(breakdown.values(), key=lambda score: score.score, reverse=True)
        category_means = [score.score for score in breakdown.values()]

        insight = DomainInsight(
            model_id=model_id,
            domain_expertise_score=sum(category_means) / len(category_means),
            consistency_score=consistency(category_means),
            strengths=ranked[:STRENGTH_COUNT],
            weaknesses=sorted(breakdown.values(), key=lambda score: score.score)[:STRENGTH_COUNT],
            category_breakdown=breakdown,
        )
        insight.summary = self._summary(insight)
        return insight

    def analyze(
        self,
        results: Iterable[TestCaseResult],
        test_cases: Iterable[TestCase],
        model_ids: Optional[Iterable[str]] = None
    ) -> DomainReport:
        """
        Build insights for every model and compare them per category.

        Args:
            results: All results of a run
            test_cases: Test cases of the run, used to resolve categories
            model_ids: Models to report on; defaults to those with results,
                in first-seen order

        Returns:
            DomainReport
        """
        categories = resolve_categories(test_cases)

        grouped: Dict[str, List[TestCaseResult]] = {}
        for result in results:
            grouped.setdefault(result.model_id, []).append(result)

        order = list(model_ids) if model_ids is not None else list(grouped)
        insights = [self.analyze_model(model_id, grouped.get(model_id, []), categories) for model_id in order]

        category_analysis = self.category_analysis(insights)
        return DomainReport(
            insights=insights,
            category_analysis=category_analysis,
            recommendations=self.recommendations(insights),
        )

    def category_analysis(self, insights: List[DomainInsight]) -> Dict[str, Dict[str, Any]]:
        """Average, best model and per-model score of every category."""
        per_category: Dict[str, Dict[str, float]] = {}
        for insight in insights:
            for category, score in insight.category_breakdown.items():
                per_category.setdefault(category, {})[insight.model_id] = score.score

        analysis = {}
        for category, model_scores in per_category.items():
            best_model = max(model_scores, key=model_scores.get)
            analysis[category] = {
                "average_score": sum(model_scores.values()) / len(model_scores),
                "best_model": best_model,
                "best_score": model_scores[best_model],
                "model_scores": model_scores,
            }
        return analysis

    def recommendations(self, insights: List[DomainInsight]) -> List[str]:
        """
        Textual recommendations: best overall, most consistent, and one
        specialist per category where some model scores at least 0.7.
        """
        if not insights:
            return []

        best = max(insights, key=lambda insight: insight.domain_expertise_score)
        steadiest = max(insights, key=lambda insight: insight.consistency_score)

        recommendations = [
            f"Best overall domain expertise: {best.model_id} ({best.domain_expertise_score:.2f})",
            f"Most consistent across categories: {steadiest.model_id} ({steadiest.consistency_score:.2f})",
        ]

        candidates = [
            (insight.model_id, category, score.score)
            for insight in insights
            for category, score in insight.category_breakdown.items()
            if score.score >= SPECIALIST_THRESHOLD
        ]
        claimed = set()
        for model_id, category, score in sorted(candidates, key=lambda candidate: candidate[2], reverse=True):
            if category in claimed:
                continue
            claimed.add(category)
            recommendations.append(f"For {category} tasks, use {model_id} ({score:.2f})")

        return recommendations

    def _summary(self, insight: DomainInsight) -> str:
        return (
            f"{insight.model_id} shows {performance_level(insight.domain_expertise_score)} domain expertise "
            f"({insight.domain_expertise_score:.2f}) with {performance_level(insight.consistency_score)} "
            f"consistency ({insight.consistency_score:.2f}) across {len(insight.category_breakdown)} categories. "
            f"Strengths: {format_category_scores(insight.strengths)}. "
            f"Weaknesses: {format_category_scores(insight.weaknesses)}."
        )
