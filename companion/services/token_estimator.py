"""
Token Cost Estimator - admission control arithmetic.

estimate() prefers the backend tokenizer and falls back to a byte-length
heuristic; credit_cost() turns tokens into credits:

    1 credit per 1000 tokens, rounded up, minimum 1 credit (0 tokens -> 0)
"""
import json
import math
from typing import Any, Callable, Optional

from companion.core.logging_config import get_logger

logger = get_logger(__name__)

TokenCounter = Callable[[Any], int]


def fallback_estimate(payload: Any) -> int:
    """
    Heuristic token count: ceil(utf8_bytes(json(payload)) / 4).
    """
    serialized = json.dumps(payload, ensure_ascii=False)
    return math.ceil(len(serialized.encode("utf-8")) / 4)


def credit_cost(token_count: int, tokens_per_credit: int = 1000) -> int:
    """
    Convert a token count into credits.

    Args:
        token_count: Estimated tokens for the turn
        tokens_per_credit: Tokens covered by one credit

    Returns:
        max(1, ceil(token_count / tokens_per_credit)) for positive counts, else 0
    """
    if token_count <= 0:
        return 0
    return max(1, math.ceil(token_count / tokens_per_credit))


class TokenCostEstimator:
    """
    Estimates prompt size and its credit cost.

    Example:
        >>> estimator = TokenCostEstimator(counter=llm_client.count_tokens)
        >>> tokens = estimator.estimate([{"role": "USER", "text": "hi"}])
        >>> estimator.cost(tokens)
        1
    """

    def __init__(self, counter: Optional[TokenCounter] = None, tokens_per_credit: int = 1000):
        """
        Args:
            counter: Authoritative counter (usually LLMClient.count_tokens)
            tokens_per_credit: Tokens covered by one credit
        """
        self.counter = counter
        self.tokens_per_credit = tokens_per_credit

    def estimate(self, payload: Any) -> int:
        """Token count for payload; never raises because of the counter."""
        if self.counter is not None:
            try:
                counted = int(self.counter(payload))
                if counted > 0:
                    return counted
                logger.warning(f"Token counter returned {counted}, using fallback estimate")
            except Exception as e:
                logger.warning(f"Token counting failed, using fallback estimate: {e}")
        return fallback_estimate(payload)

    def cost(self, token_count: int) -> int:
        return credit_cost(token_count, self.tokens_per_credit)
