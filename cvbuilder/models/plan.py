"""
cvbuilder/models/plan.py

Plan tiers and their configured ceilings.
"""

from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class PlanTier(str, Enum):
    """Subscription levels, lowest first."""
    BASIC = "basic"
    PRO = "pro"
    PREMIUM = "premium"


class TemplateAccessLevel(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    ALL = "all"


class PlanLimits(BaseModel):
    """
    Numeric ceilings for one tier (-1 = unlimited).

    Aliases match the keys of the pricing configuration file.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cv_generations: int = Field(-1, alias="cvGenerations")
    cover_letter_generations: int = Field(-1, alias="coverLetterGenerations")
    ai_runs: int = Field(-1, alias="aiRuns")
    edits_allowed: int = Field(-1, alias="editsAllowed")
    exports: int = Field(-1, alias="exports")
    template_access: TemplateAccessLevel = Field(TemplateAccessLevel.FREE, alias="templateAccess")


class PlanPricing(BaseModel):
    """A priced plan tier from the pricing configuration."""
    model_config = ConfigDict(frozen=True)

    tier: PlanTier
    name: str
    price: float
    currency: str = "GHS"
    limits: PlanLimits
    features: Optional[Dict[str, bool]] = None
