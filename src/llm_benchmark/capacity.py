"""
Capacity-aware invocation.

Wraps a single inference call: sizes the request to the remaining budget,
swaps premium models for a cheap fallback when the budget is tight, and
retries capacity rejections with progressively smaller requests.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .errors import CapacityError
from .models import InferenceResult
from .logging import get_logger


logger = get_logger(__name__)


DEFAULT_BUFFER = 50
LAST_RESORT_BUFFER = 150
LOW_CAPACITY_THRESHOLD = 500
LOW_CAPACITY_MARGIN = 100
MIN_MAX_TOKENS = 50
CONSERVATIVE_BUDGET = 200
PROMPT_TRUNCATION_LIMIT = 1000
FALLBACK_MODEL_ID = "meta.llama3-8b-instruct-v1:0"

PREMIUM_MARKERS = ("claude", "gpt-4", "opus")

# "1000 tokens required, 200 available"
_BUDGET_PATTERN = re.compile(r"(\d+)\s*(?:tokens?|credits?)?\s*required\D+?(\d+)\s*(?:tokens?|credits?)?\s*available", re.IGNORECASE)


class CapacityChecker(Protocol):
    async def check_capacity(self, credential_ref: Optional[str], model_id: Optional[str] = None) -> int:
        ...


class InferenceInvoker(Protocol):
    async def invoke(
        self,
        model_id: str,
        messages: List[Dict[str, str]],
        parameters: Dict[str, Any]
    ) -> InferenceResult:
        ...


class StaticCapacityChecker:
    """Reports a fixed, configured budget."""

    def __init__(self, budget: int):
        self.budget = budget

    async def check_capacity(self, credential_ref: Optional[str], model_id: Optional[str] = None) -> int:
        return self.budget


class SafeCapacityChecker:
    """
    Wraps another checker so that a failed check yields a conservative
    budget instead of an exception.
    """

    def __init__(self, inner: CapacityChecker, fallback_budget: int = CONSERVATIVE_BUDGET):
        self.inner = inner
        self.fallback_budget = fallback_budget

    async def check_capacity(self, credential_ref: Optional[str], model_id: Optional[str] = None) -> int:
        try:
            available = await self.inner.check_capacity(credential_ref, model_id)
        except Exception as e:
            logger.warning(
                "Capacity check failed, using conservative budget",
                model_id=model_id,
                error=str(e),
                budget=self.fallback_budget
            )
            return self.fallback_budget

        if available is None:
            return self.fallback_budget
        return max(0, int(available))


@dataclass(frozen=True)
class CapacityPolicy:
    """Tunables of the capacity guard."""
    buffer: int = DEFAULT_BUFFER
    last_resort_buffer: int = LAST_RESORT_BUFFER
    low_capacity_threshold: int = LOW_CAPACITY_THRESHOLD
    fallback_model_id: str = FALLBACK_MODEL_ID
    prompt_truncation_limit: int = PROMPT_TRUNCATION_LIMIT


@dataclass(frozen=True)
class CapacityRequest:
    """The call as the caller asked for it."""
    model_id: str
    messages: List[Dict[str, str]]
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AttemptPlan:
    """The call as it is actually issued on one tier of the cascade."""
    tier: int
    model_id: str
    messages: List[Dict[str, str]]
    parameters: Dict[str, Any]

    @property
    def max_tokens(self) -> Optional[int]:
        return self.parameters.get("max_tokens")


@dataclass(frozen=True)
class GuardedResult:
    """Inference result together with the plan that produced it."""
    result: InferenceResult
    plan: AttemptPlan
    attempts: int

    @property
    def served_model_id(self) -> str:
        return self.plan.model_id


def is_premium_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return any(marker in lowered for marker in PREMIUM_MARKERS)


def recover_available_budget(error: CapacityError) -> int:
    """
    Work out how much budget a capacity rejection says is left.

    Args:
        error: The capacity error raised by the provider

    Returns:
        The error's own available field, else the figure parsed from its
        message, else CONSERVATIVE_BUDGET
    """
    if error.available is not None:
        return max(0, int(error.available))

    message = str(error)
    match = _BUDGET_PATTERN.search(message)
    if match:
        return int(match.group(2))

    return CONSERVATIVE_BUDGET


def _with_max_tokens(parameters: Dict[str, Any], ceiling: int) -> Dict[str, Any]:
    updated = dict(parameters)
    requested = updated.get("max_tokens")
    updated["max_tokens"] = ceiling if requested is None else min(int(requested), ceiling)
    return updated


def _truncate_last_user_message(messages: List[Dict[str, str]], limit: int) -> List[Dict[str, str]]:
    truncated = [dict(message) for message in messages]
    for message in reversed(truncated):
        if message.get("role") == "user":
            message["content"] = str(message.get("content", ""))[:limit]
            break
    return truncated


def initial_plan(request: CapacityRequest, available: Optional[int], policy: CapacityPolicy) -> AttemptPlan:
    """
    First tier: clamp to the reported budget, downgrading when it is low.

    An unknown budget leaves the request untouched.
    """
    if available is None:
        return AttemptPlan(1, request.model_id, list(request.messages), dict(request.parameters))

    model_id = request.model_id
    parameters = dict(request.parameters)

    requested = parameters.get("max_tokens")
    if requested is not None and requested > available - policy.buffer:
        parameters["max_tokens"] = max(MIN_MAX_TOKENS, available - policy.buffer)

    if available < policy.low_capacity_threshold:
        if is_premium_model(model_id):
            model_id = policy.fallback_model_id
        parameters = _with_max_tokens(parameters, max(MIN_MAX_TOKENS, available - LOW_CAPACITY_MARGIN))

    return AttemptPlan(1, model_id, list(request.messages), parameters)


def budget_adjusted_plan(request: CapacityRequest, available: Optional[int], policy: CapacityPolicy) -> AttemptPlan:
    """Second tier: the fallback model sized to the budget the provider reported."""
    budget = CONSERVATIVE_BUDGET if available is None else available
    parameters = _with_max_tokens(request.parameters, max(MIN_MAX_TOKENS, budget - policy.buffer))
    return AttemptPlan(2, policy.fallback_model_id, list(request.messages), parameters)


def last_resort_plan(request: CapacityRequest, available: Optional[int], policy: CapacityPolicy) -> AttemptPlan:
    """Third tier: the fallback model, a wider buffer and a truncated prompt."""
    budget = CONSERVATIVE_BUDGET if available is None else available
    parameters = _with_max_tokens(request.parameters, max(MIN_MAX_TOKENS, budget - policy.last_resort_buffer))
    messages = _truncate_last_user_message(request.messages, policy.prompt_truncation_limit)
    return AttemptPlan(3, policy.fallback_model_id, messages, parameters)


PlanFunction = Callable[[CapacityRequest, Optional[int], CapacityPolicy], AttemptPlan]

CASCADE: Tuple[PlanFunction, ...] = (initial_plan, budget_adjusted_plan, last_resort_plan)


class CapacityGuard:
    """
    Issues inference calls through the capacity cascade.

    Only CapacityError is retried, at most once per remaining tier. Every
    other exception propagates on the first occurrence.
    """

    def __init__(
        self,
        client: InferenceInvoker,
        capacity_checker: Optional[CapacityChecker] = None,
        policy: Optional[CapacityPolicy] = None
    ):
        """
        Initialize the guard.

        Args:
            client: Inference client used for every attempt
            capacity_checker: Budget source; wrapped so it never raises. None
                skips the up-front budget check.
            policy: Buffers, thresholds and fallback model
        """
        self.client = client
        if capacity_checker is not None and not isinstance(capacity_checker, SafeCapacityChecker):
            capacity_checker = SafeCapacityChecker(capacity_checker)
        self.capacity_checker = capacity_checker
        self.policy = policy or CapacityPolicy()

    @classmethod
    def from_settings(cls, client: InferenceInvoker, settings) -> "CapacityGuard":
        """Build a guard from BenchmarkSettings."""
        policy = CapacityPolicy(
            buffer=settings.capacity_buffer,
            low_capacity_threshold=settings.low_capacity_threshold,
            fallback_model_id=settings.fallback_model_id,
            prompt_truncation_limit=settings.prompt_truncation_limit,
        )
        return cls(client, StaticCapacityChecker(settings.capacity_budget), policy)

    async def guarded_invoke(
        self,
        model_id: str,
        messages: List[Dict[str, str]],
        parameters: Optional[Dict[str, Any]] = None,
        credential_ref: Optional[str] = None
    ) -> GuardedResult:
        """
        Invoke a model, adapting the request to the available capacity.

        Args:
            model_id: Requested model
            messages: Chat messages ({role, content})
            parameters: Model parameters such as temperature and max_tokens
            credential_ref: Opaque reference passed to the capacity checker

        Returns:
            GuardedResult with the plan that succeeded and the attempt count

        Raises:
            CapacityError: If the last tier is rejected for capacity too
            Exception: Any non-capacity error, unchanged
        """
        request = CapacityRequest(model_id, list(messages), dict(parameters or {}))

        available = None
        if self.capacity_checker is not None:
            available = await self.capacity_checker.check_capacity(credential_ref, model_id)

        plan = initial_plan(request, available, self.policy)
        attempts = 0

        while True:
            attempts += 1
            if plan.model_id != model_id or plan.max_tokens != request.parameters.get("max_tokens"):
                logger.info(
                    "Adjusted request for capacity",
                    tier=plan.tier,
                    model_id=model_id,
                    served_model_id=plan.model_id,
                    max_tokens=plan.max_tokens,
                    available=available
                )

            try:
                result = await self.client.invoke(plan.model_id, plan.messages, plan.parameters)
            except CapacityError as e:
                if attempts >= len(CASCADE):
                    logger.warning(
                        "Capacity cascade exhausted",
                        model_id=model_id,
                        attempts=attempts,
                        error=str(e)
                    )
                    raise

                available = recover_available_budget(e)
                logger.warning(
                    "Capacity error, retrying with smaller request",
                    model_id=model_id,
                    tier=plan.tier,
                    available=available,
                    error=str(e)
                )
                plan = CASCADE[attempts](request, available, self.policy)
                continue

            return GuardedResult(result=result, plan=plan, attempts=attempts)

