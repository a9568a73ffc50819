"""
Per-model token pricing.
"""

from typing import Dict, Mapping, Optional

from .models import TokenUsage


REFERENCE_MODEL_ID = "meta.llama3-8b-instruct-v1:0"

# USD per token, keyed by Bedrock model ID. Approximate list prices, not kept
# in sync with the provider.
RATES: Dict[str, Dict[str, float]] = {
    "anthropic.claude-3-opus-20240229-v1:0": {"input": 0.00003, "output": 0.00006},
    "anthropic.claude-3-sonnet-20240229-v1:0": {"input": 0.000015, "output": 0.00003},
    "anthropic.claude-3-haiku-20240307-v1:0": {"input": 0.000005, "output": 0.000015},
    "meta.llama3-70b-instruct-v1:0": {"input": 0.000002, "output": 0.000002},
    "meta.llama3-8b-instruct-v1:0": {"input": 0.000001, "output": 0.000002},
}


def rate_for(
    model_id: str,
    rates: Optional[Mapping[str, Mapping[str, float]]] = None
) -> Mapping[str, float]:
    """
    Return the rate of a model.

    Unlisted models are charged at the reference model's rate, taken from
    the given table when it lists the reference model.
    """
    table = RATES if rates is None else rates
    if model_id in table:
        return table[model_id]
    return table.get(REFERENCE_MODEL_ID, RATES[REFERENCE_MODEL_ID])


def calculate_cost(
    model_id: str,
    token_usage: Optional[TokenUsage],
    rates: Optional[Mapping[str, Mapping[str, float]]] = None
) -> float:
    """
    Calculate the cost of a call from its token usage.

    Args:
        model_id: Model that served the call
        token_usage: Token counts of the call, or None if unknown
        rates: Optional rate table replacing the built-in one

    Returns:
        Cost in USD, never negative
    """
    if token_usage is None:
        return 0.0

    rate = rate_for(model_id, rates)
    cost = token_usage.input * rate["input"] + token_usage.output * rate["output"]
    return max(0.0, cost)
