"""
cvbuilder/models/feature_usage.py

One row per feature invocation. Unlike PlanUsageLimits this is an
unaggregated event log, kept for analytics and support.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict

from cvbuilder.models.common import UtcDateTime


class FeatureUsageEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    feature_type: str
    feature_name: str
    cv_id: Optional[str] = None
    template_id: Optional[str] = None
    usage_count: int = 1
    plan_at_usage: Optional[str] = None
    was_successful: bool = True
    error_details: Optional[str] = None
    processing_time_ms: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[UtcDateTime] = None
