"""
cvbuilder/features/plans/pricing.py

Static pricing configuration keyed by plan tier.

The built-in table can be replaced by a JSON file (PRICING_CONFIG_PATH) with
the same shape:

    {"currency": "GHS",
     "plans": {"pro": {"name": "...", "price": 50,
                       "limits": {"cvGenerations": 10, ...}}}}
"""

import json
from typing import Any, Dict, Optional

from cvbuilder.core.config import settings
from cvbuilder.core.logging import get_logger
from cvbuilder.models.plan import PlanLimits, PlanPricing, PlanTier

logger = get_logger("Pricing")

DEFAULT_PRICING: Dict[str, Any] = {
    "currency": "GHS",
    "plans": {
        "basic": {
            "name": "Basic",
            "price": 20,
            "limits": {
                "cvGenerations": 3,
                "coverLetterGenerations": 1,
                "aiRuns": 3,
                "editsAllowed": 10,
                "templateAccess": "free",
            },
        },
        "pro": {
            "name": "Pro",
            "price": 50,
            "limits": {
                "cvGenerations": 10,
                "coverLetterGenerations": 5,
                "aiRuns": 20,
                "editsAllowed": 50,
                "templateAccess": "premium",
            },
        },
        "premium": {
            "name": "Premium",
            "price": 100,
            "limits": {
                "cvGenerations": -1,
                "coverLetterGenerations": -1,
                "aiRuns": -1,
                "editsAllowed": -1,
                "templateAccess": "all",
            },
        },
    },
}

_LIMIT_KEYS = ("cvGenerations", "coverLetterGenerations", "aiRuns", "editsAllowed", "exports")

_pricing_cache: Optional[Dict[PlanTier, PlanPricing]] = None


def parse_pricing(config: Dict[str, Any]) -> Dict[PlanTier, PlanPricing]:
    """Build per-tier pricing; missing numeric limits mean unlimited, 0 allows nothing."""
    currency = config.get("currency", settings.DEFAULT_CURRENCY)
    parsed: Dict[PlanTier, PlanPricing] = {}
    for tier_name, plan in (config.get("plans") or {}).items():
        try:
            tier = PlanTier(tier_name)
        except ValueError:
            logger.warning(f"Ignoring unknown plan tier in pricing config: {tier_name}")
            continue

        raw_limits = dict(plan.get("limits") or {})
        for key in _LIMIT_KEYS:
            if raw_limits.get(key) is None:
                raw_limits[key] = -1
        raw_limits["templateAccess"] = raw_limits.get("templateAccess") or "free"

        parsed[tier] = PlanPricing(
            tier=tier,
            name=plan.get("name", tier.value.title()),
            price=float(plan.get("price", 0)),
            currency=plan.get("currency", currency),
            limits=PlanLimits.model_validate(raw_limits),
            features=plan.get("features"),
        )
    return parsed


def load_pricing(path: Optional[str] = None) -> Dict[PlanTier, PlanPricing]:
    source = path or settings.PRICING_CONFIG_PATH
    if not source:
        return parse_pricing(DEFAULT_PRICING)
    with open(source, encoding="utf-8") as fh:
        return parse_pricing(json.load(fh))


def get_pricing() -> Dict[PlanTier, PlanPricing]:
    global _pricing_cache
    if _pricing_cache is None:
        _pricing_cache = load_pricing()
    return _pricing_cache


def reset_pricing_cache() -> None:
    global _pricing_cache
    _pricing_cache = None


def get_plan_pricing(tier: PlanTier) -> Optional[PlanPricing]:
    return get_pricing().get(PlanTier(tier))
