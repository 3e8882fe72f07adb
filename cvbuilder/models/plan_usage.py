"""
cvbuilder/models/plan_usage.py

Per-period usage counters for one user.

A PlanUsageLimits record holds a {used, limit} pair per usage type plus the
template access tier. limit == -1 means the usage type has no ceiling.
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict

from cvbuilder.models.common import UtcDateTime
from cvbuilder.models.plan import PlanTier, TemplateAccessLevel

UNLIMITED = -1


class UsageType(str, Enum):
    CV_GENERATION = "cv_generation"
    COVER_LETTER = "cover_letter"
    AI_OPTIMIZATION = "ai_optimization"
    EDIT = "edit"
    EXPORT = "export"


# usage type -> (column prefix, label used in limit messages)
USAGE_COUNTERS: Dict[UsageType, tuple] = {
    UsageType.CV_GENERATION: ("cv_generations", "CV generation"),
    UsageType.COVER_LETTER: ("cover_letter_generations", "cover letter"),
    UsageType.AI_OPTIMIZATION: ("ai_optimizations", "AI optimization"),
    UsageType.EDIT: ("edits", "edit"),
    UsageType.EXPORT: ("exports", "export"),
}


class UsageCounter(BaseModel):
    model_config = ConfigDict(frozen=True)

    used: int
    limit: int

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def reached(self) -> bool:
        return not self.unlimited and self.used >= self.limit

    @property
    def remaining(self) -> int:
        if self.unlimited:
            return UNLIMITED
        return max(0, self.limit - self.used)


class PlanUsageLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    plan_type: PlanTier
    period_start: UtcDateTime
    period_end: UtcDateTime
    cv_generations_used: int = 0
    cv_generations_limit: int = UNLIMITED
    cover_letter_generations_used: int = 0
    cover_letter_generations_limit: int = UNLIMITED
    ai_optimizations_used: int = 0
    ai_optimizations_limit: int = UNLIMITED
    edits_used: int = 0
    edits_limit: int = UNLIMITED
    exports_used: int = 0
    exports_limit: int = UNLIMITED
    template_access_level: TemplateAccessLevel = TemplateAccessLevel.FREE
    created_at: Optional[UtcDateTime] = None

    def counter(self, usage_type: UsageType) -> UsageCounter:
        prefix, _ = USAGE_COUNTERS[UsageType(usage_type)]
        return UsageCounter(
            used=getattr(self, f"{prefix}_used"),
            limit=getattr(self, f"{prefix}_limit"),
        )

    @property
    def allows_premium_templates(self) -> bool:
        return self.template_access_level != TemplateAccessLevel.FREE

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy for error payloads and audit metadata."""
        return self.model_dump(mode="json")
