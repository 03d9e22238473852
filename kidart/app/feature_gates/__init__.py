"""Feature gating helpers built on top of user entitlements."""

from .quota import GenerationQuotaEvaluation, evaluate_generation_quota

__all__ = [
    "GenerationQuotaEvaluation",
    "evaluate_generation_quota",
]
