"""
Token Counting Utility

Estimates token usage and cost of AI calls for the audit log using tiktoken.
The estimate is made on the serialized prompt input and the parsed output,
so it is approximate for non-OpenAI models.
"""
from typing import Any, Dict, Optional

import tiktoken

from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

# USD per 1K tokens
PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4o": {"input": 0.0025, "output": 0.01},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gemini-1.5-flash": {"input": 0.000075, "output": 0.0003},
    "gemini-1.5-pro": {"input": 0.00125, "output": 0.005},
}
DEFAULT_PRICING_MODEL = "gpt-4o-mini"


class TokenCounter:
    """
    Token counter using tiktoken.

    The encoding is loaded on first use; unknown models (including Gemini)
    fall back to cl100k_base.
    """

    def __init__(self, model_name: str = DEFAULT_PRICING_MODEL):
        self.model_name = model_name
        self._encoding: Optional[tiktoken.Encoding] = None

    @property
    def encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            try:
                self._encoding = tiktoken.encoding_for_model(self.model_name)
            except KeyError:
                self._encoding = tiktoken.get_encoding("cl100k_base")
        return self._encoding

    def count_tokens(self, text: str) -> int:
        """
        Count tokens in text string.

        Args:
            text: Input text to count tokens

        Returns:
            Number of tokens
        """
        if not text:
            return 0

        return len(self.encoding.encode(text))

    def count_tokens_in_dict(self, data: Dict[str, Any]) -> int:
        """
        Count tokens in nested dictionary structure.

        Args:
            data: Dictionary with potentially nested text values

        Returns:
            Total token count for all text content
        """
        total_tokens = 0

        for value in data.values():
            total_tokens += self._count_value(value)

        return total_tokens

    def _count_value(self, value: Any) -> int:
        if isinstance(value, str):
            return self.count_tokens(value)
        if isinstance(value, dict):
            return self.count_tokens_in_dict(value)
        if isinstance(value, list):
            return sum(self._count_value(item) for item in value)
        return 0

    def estimate_cost(
        self,
        input_tokens: int,
        output_tokens: int = 0,
        model_name: Optional[str] = None
    ) -> float:
        """
        Estimate API cost based on token count.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens
            model_name: Override model for pricing

        Returns:
            Estimated cost in USD
        """
        model = model_name or self.model_name
        rates = PRICING.get(model, PRICING[DEFAULT_PRICING_MODEL])

        input_cost = (input_tokens / 1000) * rates["input"]
        output_cost = (output_tokens / 1000) * rates["output"]

        return round(input_cost + output_cost, 6)


_default_counter: Optional[TokenCounter] = None


def get_token_counter() -> TokenCounter:
    """Get or create the shared token counter."""
    global _default_counter

    if _default_counter is None:
        _default_counter = TokenCounter()

    return _default_counter
