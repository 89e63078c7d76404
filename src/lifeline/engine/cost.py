"""Rough resource cost of a reasoning call."""

from __future__ import annotations

import math

from lifeline.types import TokenUsage

# Cents per million tokens (input, output).
PRICING_CENTS_PER_MILLION: dict[str, tuple[float, float]] = {
    "gpt-4o": (250, 1000),
    "gpt-4o-mini": (15, 60),
    "gpt-4.1": (200, 800),
    "gpt-4.1-mini": (40, 160),
    "gpt-4.1-nano": (10, 40),
    "o1": (1500, 6000),
    "o3-mini": (110, 440),
    "o4-mini": (110, 440),
    "claude-sonnet-4-5": (300, 1500),
    "claude-haiku-4-5": (100, 500),
}
DEFAULT_PRICING = PRICING_CENTS_PER_MILLION["gpt-4o"]
UNITS_PER_CENT = 10


def _model_key(model: str) -> str:
    _, _, name = model.rpartition(":")
    return name.strip().lower()


def estimate_cost(usage: TokenUsage, model: str) -> float:
    input_price, output_price = PRICING_CENTS_PER_MILLION.get(_model_key(model), DEFAULT_PRICING)
    cents = usage.prompt_tokens / 1_000_000 * input_price + usage.completion_tokens / 1_000_000 * output_price
    return float(math.ceil(cents * UNITS_PER_CENT))
