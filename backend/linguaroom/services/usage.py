import logging

from ..contracts import TokenUsage

logger = logging.getLogger(__name__)

# USD per 1K tokens
MODEL_PRICING = {
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4o-mini-tts": {"input": 0.0002, "output": 0.0002},
}


class UsageAccumulator:
    """Process-wide token counters with an approximate cost estimate.

    Counters only grow between explicit resets; nothing in the request path
    resets them.
    """

    def __init__(self, model: str, pricing: dict | None = None):
        self.model = model
        self._pricing = MODEL_PRICING if pricing is None else pricing
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0

    def add(self, prompt_tokens: int = 0, completion_tokens: int = 0, total_tokens: int = 0) -> None:
        self.prompt_tokens += max(0, int(prompt_tokens or 0))
        self.completion_tokens += max(0, int(completion_tokens or 0))
        self.total_tokens += max(0, int(total_tokens or 0))

    def add_usage(self, usage: TokenUsage) -> None:
        self.add(usage.prompt_tokens, usage.completion_tokens, usage.total_tokens)

    def estimate_cost(self) -> float:
        # Prompt tokens at the input rate, completion tokens at the output rate
        rates = self._pricing.get(self.model, {"input": 0.0, "output": 0.0})
        cost = (self.prompt_tokens / 1000) * rates["input"] + (self.completion_tokens / 1000) * rates["output"]
        return round(cost, 6)

    def reset(self) -> None:
        logger.info(
            "Resetting session usage (prompt=%d, completion=%d, total=%d)",
            self.prompt_tokens,
            self.completion_tokens,
            self.total_tokens,
        )
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0

    def snapshot(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "cost": self.estimate_cost(),
            "model": self.model,
        }
