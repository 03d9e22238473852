"""Generation quota evaluation for feature gating."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationQuotaEvaluation:
    """Represents the outcome of a generation quota check."""

    quota: int
    current_usage: int
    requested: int
    allowed: bool

    @property
    def remaining(self) -> int:
        return max(0, self.quota - self.current_usage)

    def to_dict(self) -> dict[str, int | bool]:
        """Serialize the evaluation for logging."""

        return {
            "quota": self.quota,
            "current_usage": self.current_usage,
            "requested": self.requested,
            "remaining": self.remaining,
            "allowed": self.allowed,
        }


def evaluate_generation_quota(
    *,
    usage: int,
    quota: int,
    requested: int = 1,
) -> GenerationQuotaEvaluation:
    """Determine whether ``requested`` more generations fit in the quota."""

    usage = max(usage, 0)
    requested = max(requested, 1)
    return GenerationQuotaEvaluation(
        quota=quota,
        current_usage=usage,
        requested=requested,
        allowed=usage + requested <= quota,
    )
