"""Token estimation, cost estimation and usage recording."""

import logging
import math
from abc import ABC, abstractmethod

from pydantic import BaseModel

from docchat.config import UsagePricing

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text_length: int) -> int:
    """Rough token count for a text of ``text_length`` characters."""
    return math.ceil(text_length / CHARS_PER_TOKEN)


def estimate_cost(total_tokens: int, operation_count: int = 1, pricing: UsagePricing | None = None) -> float:
    """Estimated cost in USD including infrastructure overhead.

    Args:
        total_tokens: Prompt plus completion tokens
        operation_count: Billable operations besides tokens
        pricing: Cost constants

    Returns:
        Cost rounded to six decimal places
    """
    pricing = pricing or UsagePricing()
    equivalent_tokens = total_tokens + operation_count * pricing.op_equiv_tokens
    cost = equivalent_tokens / 10_000 * pricing.llm_per_10k_tokens * pricing.infrastructure_overhead
    return round(cost, 6)


class UsageRecord(BaseModel):
    """Usage for one answered request."""

    user_id: str
    session_id: str
    request_id: str
    prompt_tokens: int
    completion_tokens: int
    operation_count: int = 1
    estimated_cost_usd: float

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def build_usage_record(
    user_id: str,
    session_id: str,
    request_id: str,
    system_prompt_length: int,
    user_message_length: int,
    response_length: int,
    pricing: UsagePricing | None = None,
) -> UsageRecord:
    """Estimate usage from prompt and response lengths."""
    prompt_tokens = estimate_tokens(system_prompt_length + user_message_length)
    completion_tokens = estimate_tokens(response_length)
    return UsageRecord(
        user_id=user_id,
        session_id=session_id,
        request_id=request_id,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        operation_count=1,
        estimated_cost_usd=estimate_cost(prompt_tokens + completion_tokens, 1, pricing),
    )


class UsageRecorder(ABC):
    """Sink for usage records."""

    @abstractmethod
    async def record(self, usage: UsageRecord) -> None:
        pass


class InMemoryUsageRecorder(UsageRecorder):
    """Keeps records in a list for development and tests."""

    def __init__(self) -> None:
        self.records: list[UsageRecord] = []

    async def record(self, usage: UsageRecord) -> None:
        self.records.append(usage)
        logger.debug(
            f"Recorded usage for {usage.user_id}: {usage.total_tokens} tokens, ${usage.estimated_cost_usd:.6f}"
        )

    def total_cost(self, user_id: str) -> float:
        return sum(r.estimated_cost_usd for r in self.records if r.user_id == user_id)
