"""Pricing for the hosted transcription and chat models (USD)."""

from __future__ import annotations

RATE_PER_MINUTE = 0.006
RATE_PER_1K_TOKENS = 0.002


def transcription_cost(duration_seconds: float) -> float:
    return (duration_seconds / 60.0) * RATE_PER_MINUTE


def summarization_cost(total_tokens: int) -> float:
    return total_tokens * RATE_PER_1K_TOKENS / 1000.0
