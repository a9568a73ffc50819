"""
Test-case category taxonomy and prompt-based category inference.
"""

from enum import Enum
from typing import Callable, Dict, Iterable, List, Tuple

from .models import TestCase


class Category(str, Enum):
    """Fixed taxonomy of test-case categories."""
    FACTUAL_KNOWLEDGE = "factual-knowledge"
    PROBLEM_SOLVING = "problem-solving"
    CREATIVE_WRITING = "creative-writing"
    REASONING = "reasoning"
    TECHNICAL_KNOWLEDGE = "technical-knowledge"
    CONCEPTUAL_UNDERSTANDING = "conceptual-understanding"
    PROCEDURAL_KNOWLEDGE = "procedural-knowledge"
    DOMAIN_SPECIFIC_TERMINOLOGY = "domain-specific-terminology"
    ANALYTICAL_THINKING = "analytical-thinking"
    ETHICAL_REASONING = "ethical-reasoning"


CATEGORY_ORDER: Tuple[Category, ...] = tuple(Category)

UNCATEGORIZED = "uncategorized"


def _contains_any(*keywords: str) -> Callable[[str], bool]:
    def predicate(prompt: str) -> bool:
        return any(keyword in prompt for keyword in keywords)
    return predicate


# Evaluated top to bottom against the lowercased prompt; first match wins.
CATEGORY_RULES: Tuple[Tuple[Callable[[str], bool], Category], ...] = (
    (_contains_any("ethic", "moral", "fairness", "bias", "right or wrong"), Category.ETHICAL_REASONING),
    (_contains_any("poem", "story", "creative", "imagine", "write a"), Category.CREATIVE_WRITING),
    (_contains_any("analyze", "analyse", "compare", "contrast", "evaluate", "assess"), Category.ANALYTICAL_THINKING),
    (_contains_any("solve", "calculate", "compute", "how many", "how much"), Category.PROBLEM_SOLVING),
    (_contains_any("why", "reason", "infer", "deduce", "logic"), Category.REASONING),
    (_contains_any("how to", "how do", "steps", "procedure", "process for"), Category.PROCEDURAL_KNOWLEDGE),
    (_contains_any("code", "implement", "algorithm", "function", "architecture", "technical"), Category.TECHNICAL_KNOWLEDGE),
    (_contains_any("define", "terminology", "term ", "meaning of", "stand for"), Category.DOMAIN_SPECIFIC_TERMINOLOGY),
    (_contains_any("explain", "concept", "describe", "understand", "principle"), Category.CONCEPTUAL_UNDERSTANDING),
    (_contains_any("what is", "who ", "when ", "where ", "which ", "list "), Category.FACTUAL_KNOWLEDGE),
)


def infer_category(prompt: str) -> Category:
    """
    Match a prompt against the ordered keyword rules.

    Args:
        prompt: Prompt text of a test case

    Returns:
        The category of the first matching rule

    Raises:
        LookupError: If no rule matches
    """
    lowered = prompt.lower()
    for predicate, category in CATEGORY_RULES:
        if predicate(lowered):
            return category
    raise LookupError("No category rule matches prompt")


def resolve_categories(test_cases: Iterable[TestCase]) -> Dict[str, str]:
    """
    Assign a category to every test case.

    A category recorded on the test case wins. Otherwise the keyword rules
    are applied, and prompts no rule matches are spread round-robin across
    the fixed taxonomy, so every test case ends up with a category.

    Args:
        test_cases: Test cases in configured order

    Returns:
        Mapping of test case ID to category name
    """
    categories: Dict[str, str] = {}
    unmatched = 0

    for test_case in test_cases:
        if test_case.category:
            categories[test_case.id] = _category_name(test_case.category)
            continue

        try:
            categories[test_case.id] = infer_category(test_case.prompt).value
        except LookupError:
            categories[test_case.id] = CATEGORY_ORDER[unmatched % len(CATEGORY_ORDER)].value
            unmatched += 1

    return categories


def category_names() -> List[str]:
    """Names of the fixed taxonomy in canonical order."""
    return [category.value for category in CATEGORY_ORDER]


def _category_name(category) -> str:
    if isinstance(category, Category):
        return category.value
    return str(category)
