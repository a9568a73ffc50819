"""Tests for the per-category domain analysis."""

import pytest

from llm_benchmark.domain import (
    DomainAnalyzer,
    consistency,
    format_category_scores,
    performance_level,
    truncate_sample,
)
from llm_benchmark.models import NEUTRAL_SCORE, TestCase

from conftest import make_result


@pytest.fixture
def analyzer():
    return DomainAnalyzer()


@pytest.fixture
def two_category_cases():
    return [
        TestCase(id="x1", prompt="p", category="catX"),
        TestCase(id="y1", prompt="p", category="catY"),
    ]


def test_performance_level_buckets():
    assert performance_level(0.95) == "excellent"
    assert performance_level(0.8) == "excellent"
    assert performance_level(0.6) == "good"
    assert performance_level(0.45) == "average"
    assert performance_level(0.2) == "below-average"
    assert performance_level(0.05) == "poor"


def test_truncate_sample():
    assert truncate_sample("short") == "short"
    cut = truncate_sample("a" * 400)
    assert len(cut) == 150
    assert cut.endswith("...")


def test_consistency():
    assert consistency([0.9, 0.9]) == pytest.approx(1.0)
    assert consistency([0.9, 0.1]) == pytest.approx(0.6)
    assert consistency([]) == NEUTRAL_SCORE
    assert consistency([0.0, 1.0, 0.0, 1.0]) >= 0.0


def test_format_category_scores_empty():
    assert format_category_scores([]) == "none identified"


def test_analyze_model_breakdown(analyzer):
    categories = {"a": "catA", "b": "catB", "c": "catC", "d": "catD", "e": "catA"}
    results = [
        make_result(test_case_id="a", accuracy_score=0.9, output="x" * 300),
        make_result(test_case_id="e", accuracy_score=0.7, output="second"),
        make_result(test_case_id="b", accuracy_score=0.3),
        make_result(test_case_id="c", accuracy_score=0.6),
        make_result(test_case_id="d", output="", error="boom"),
    ]

    insight = analyzer.analyze_model("m1", results, categories)

    assert insight.category_breakdown["catA"].score == pytest.approx(0.8)
    assert insight.category_breakdown["catA"].test_count == 2
    assert insight.category_breakdown["catD"].score == NEUTRAL_SCORE
    assert insight.category_breakdown["catD"].samples == []

    samples = insight.category_breakdown["catA"].samples
    assert len(samples) == 2
    assert len(samples[0]) == 150

    assert [s.category for s in insight.strengths] == ["catA", "catC", "catD"]
    assert [s.category for s in insight.weaknesses] == ["catB", "catD", "catC"]
    assert insight.domain_expertise_score == pytest.approx((0.8 + 0.3 + 0.6 + 0.5) / 4)
    assert "across 4 categories" in insight.summary
    assert insight.summary.startswith("m1 shows")


def test_unknown_test_case_is_uncategorized(analyzer):
    insight = analyzer.analyze_model("m1", [make_result(test_case_id="zz", accuracy_score=1.0)], {})
    assert list(insight.category_breakdown) == ["uncategorized"]


def test_model_without_results_is_neutral(analyzer, two_category_cases):
    report = analyzer.analyze([], two_category_cases, model_ids=["ghost"])

    insight = report.insights[0]
    assert insight.model_id == "ghost"
    assert insight.domain_expertise_score == NEUTRAL_SCORE
    assert insight.consistency_score == NEUTRAL_SCORE
    assert "none identified" in insight.summary


def test_consistency_orders_models(analyzer, two_category_cases):
    results = [
        make_result("steady", "x1", accuracy_score=0.9),
        make_result("steady", "y1", accuracy_score=0.9),
        make_result("erratic", "x1", accuracy_score=0.9),
        make_result("erratic", "y1", accuracy_score=0.1),
    ]

    report = analyzer.analyze(results, two_category_cases)
    steady, erratic = report.insights

    assert steady.consistency_score > erratic.consistency_score
    assert report.domain_scores() == {
        "steady": pytest.approx(0.9),
        "erratic": pytest.approx(0.5),
    }


def test_category_analysis_and_recommendations(analyzer, two_category_cases):
    results = [
        make_result("steady", "x1", accuracy_score=0.9),
        make_result("steady", "y1", accuracy_score=0.9),
        make_result("erratic", "x1", accuracy_score=0.9),
        make_result("erratic", "y1", accuracy_score=0.1),
    ]

    report = analyzer.analyze(results, two_category_cases)

    cat_y = report.category_analysis["catY"]
    assert cat_y["best_model"] == "steady"
    assert cat_y["average_score"] == pytest.approx(0.5)
    assert cat_y["model_scores"] == {"steady": pytest.approx(0.9), "erratic": pytest.approx(0.1)}
    assert report.category_analysis["catX"]["best_model"] == "steady"

    assert report.recommendations == [
        "Best overall domain expertise: steady (0.90)",
        "Most consistent across categories: steady (1.00)",
        "For catX tasks, use steady (0.90)",
        "For catY tasks, use steady (0.90)",
    ]


def test_no_specialists_below_threshold(analyzer, two_category_cases):
    results = [make_result("m1", "x1", accuracy_score=0.5), make_result("m1", "y1", accuracy_score=0.6)]
    report = analyzer.analyze(results, two_category_cases)
    assert len(report.recommendations) == 2


def test_empty_report(analyzer):
    report = analyzer.analyze([], [])
    assert report.insights == []
    assert report.recommendations == []
    assert report.category_analysis == {}
