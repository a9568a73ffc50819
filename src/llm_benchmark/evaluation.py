"""
Heuristic scoring of a single model output.

Accuracy compares the output against the expected output (or, lacking one,
against the prompt's keywords). Domain expertise counts topic-specific terms.
Both scores are in [0, 1].
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import TestCase


DOMAIN_TERMS: Dict[str, List[str]] = {
    'machine learning': [
        'algorithm', 'model', 'training', 'dataset', 'feature', 'classification', 'regression',
        'neural network', 'overfitting', 'underfitting', 'hyperparameter', 'validation',
        'accuracy', 'precision', 'recall', 'f1-score',
    ],
    'artificial intelligence': [
        'agent', 'reasoning', 'knowledge representation', 'planning', 'natural language processing',
        'computer vision', 'robotics', 'expert system', 'machine learning', 'neural network',
        'deep learning',
    ],
    'programming': [
        'function', 'variable', 'class', 'object', 'method', 'inheritance', 'polymorphism',
        'encapsulation', 'algorithm', 'data structure', 'compiler', 'interpreter', 'debugging',
    ],
    'medicine': [
        'diagnosis', 'treatment', 'symptom', 'prognosis', 'pathology', 'etiology', 'anatomy',
        'physiology', 'pharmacology', 'epidemiology', 'immunology', 'oncology', 'cardiology',
    ],
    'finance': [
        'asset', 'liability', 'equity', 'investment', 'portfolio', 'diversification', 'risk',
        'return', 'dividend', 'interest', 'capital', 'stock', 'bond', 'derivative', 'hedge',
    ],
    'physics': [
        'force', 'energy', 'mass', 'velocity', 'acceleration', 'momentum', 'gravity', 'quantum',
        'relativity', 'thermodynamics', 'electromagnetism', 'particle', 'wave',
    ],
    'chemistry': [
        'element', 'compound', 'molecule', 'atom', 'ion', 'reaction', 'catalyst', 'acid', 'base',
        'organic', 'inorganic', 'polymer', 'solution', 'equilibrium',
    ],
    'biology': [
        'cell', 'organism', 'gene', 'protein', 'dna', 'rna', 'evolution', 'ecology', 'metabolism',
        'photosynthesis', 'respiration', 'enzyme', 'hormone', 'neuron',
    ],
}

NEUTRAL_ACCURACY = 0.5

_PUNCTUATION = re.compile(r"[^\w\s]")


def _words(text: str) -> List[str]:
    return _PUNCTUATION.sub("", text.lower()).split()


def _keywords(text: str, min_length: int = 5) -> List[str]:
    return [word for word in _words(text) if len(word) >= min_length]


def domain_terms(topic: Optional[str]) -> List[str]:
    """
    Terms that signal expertise in a topic.

    A topic naming a known domain gets that domain's terms. Otherwise the
    terms of every domain sharing a meaningful word with the topic are
    pooled, and failing that the topic's own long words are used.
    """
    if not topic:
        return []

    lowered = topic.lower()
    for domain, terms in DOMAIN_TERMS.items():
        if domain in lowered:
            return list(terms)

    pooled: List[str] = []
    for domain, terms in DOMAIN_TERMS.items():
        if any(len(word) > 3 and word in lowered for word in domain.split()):
            pooled.extend(term for term in terms if term not in pooled)

    if pooled:
        return pooled

    return _keywords(topic)


def text_similarity(output: str, expected: str) -> float:
    """
    Word overlap of two texts, scaled by 1.5 and capped at 1.

    Counts the output's words that appear in the expected text and divides
    by the number of distinct words across both.
    """
    output_words = _words(output)
    expected_words = _words(expected)

    unique = set(output_words) | set(expected_words)
    if not unique:
        return 0.0

    expected_set = set(expected_words)
    matching = sum(1 for word in output_words if word in expected_set)
    return min(1.0, matching / len(unique) * 1.5)


def keyword_coverage(output: str, prompt: str) -> float:
    """Share of the prompt's long keywords found in the output."""
    keywords = _keywords(prompt)
    if not keywords:
        return NEUTRAL_ACCURACY

    lowered = output.lower()
    matches = sum(1 for keyword in keywords if keyword in lowered)
    return min(1.0, matches / max(3, len(keywords) / 2))


@dataclass(frozen=True)
class OutputScores:
    accuracy_score: Optional[float] = None
    domain_expertise_score: Optional[float] = None


class OutputEvaluator:
    """
    Scores successful outputs of a run against its topic.

    Args:
        topic: Subject area of the benchmark, e.g. "machine learning"
    """

    def __init__(self, topic: Optional[str] = None):
        self.topic = topic
        self.terms = domain_terms(topic)

    def evaluate(self, test_case: TestCase, output: str) -> OutputScores:
        if not self.topic and not test_case.expected_output:
            return OutputScores()

        if test_case.expected_output:
            return OutputScores(
                accuracy_score=text_similarity(output, test_case.expected_output),
                domain_expertise_score=self._domain_score(output, test_case.expected_output),
            )

        return OutputScores(
            accuracy_score=keyword_coverage(output, test_case.prompt),
            domain_expertise_score=self._domain_score(output, None),
        )

    def _domain_score(self, output: str, expected: Optional[str]) -> float:
        if not self.terms:
            if expected:
                return min(1.0, len(output) / max(100, len(expected)))
            return min(1.0, len(output) / 1000)

        output_matches = self._count_terms(output)
        expected_matches = self._count_terms(expected) if expected else 0

        if expected_matches > 0:
            return min(1.0, output_matches / expected_matches)
        return min(1.0, output_matches / max(5, len(self.terms) / 2))

    def _count_terms(self, text: str) -> int:
        lowered = text.lower()
        return sum(1 for term in self.terms if term in lowered)
