"""
cvbuilder/features/usage/service.py

Usage accounting service.

Handles:
- Quota decisions against the current usage-limit record
- Feature usage event log (one row per invocation)
- Deterministic usage queries
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import select, insert

from cvbuilder.core.database import get_db_session, feature_usage_tracking
from cvbuilder.models.feature_usage import FeatureUsageEvent
from cvbuilder.models.plan_usage import PlanUsageLimits, UsageCounter, UsageType


def is_successful_status(status_code: int) -> bool:
    """2xx and 3xx count as success for usage accounting."""
    return 200 <= status_code < 400


def check_usage_limit(limits: PlanUsageLimits, usage_type: UsageType) -> UsageCounter:
    """
    Return the {used, limit} pair for usage_type.

    Callers inspect `.reached`; a limit of -1 is never reached.
    """
    return limits.counter(UsageType(usage_type))


def record_feature_usage(
    user_id: str,
    feature_type: str,
    feature_name: str,
    *,
    was_successful: bool = True,
    cv_id: Optional[str] = None,
    template_id: Optional[str] = None,
    plan_at_usage: Optional[str] = None,
    error_details: Optional[str] = None,
    processing_time_ms: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> FeatureUsageEvent:
    """
    Append one feature usage row.

    Args:
        user_id: User performing the action
        feature_type: Feature family (cv_generation, export, ...)
        feature_name: Concrete feature (create_cv, export_json, ...)
        was_successful: Whether the request ended 2xx/3xx

    Returns:
        FeatureUsageEvent instance
    """
    if occurred_at is None:
        occurred_at = datetime.now(timezone.utc)
    elif occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)

    values = {
        "user_id": user_id,
        "feature_type": feature_type,
        "feature_name": feature_name,
        "cv_id": cv_id,
        "template_id": template_id,
        "usage_count": 1,
        "plan_at_usage": plan_at_usage,
        "was_successful": 1 if was_successful else 0,
        "error_details": error_details,
        "processing_time_ms": processing_time_ms,
        "metadata": metadata,
        "created_at": occurred_at,
    }
    with get_db_session() as session:
        session.execute(insert(feature_usage_tracking).values(**values))

    values["was_successful"] = was_successful
    return FeatureUsageEvent(**values)


def get_feature_usage(
    user_id: str,
    feature_type: Optional[str] = None,
) -> List[FeatureUsageEvent]:
    """
    Get feature usage rows for a user, oldest first.

    Args:
        user_id: User to query
        feature_type: Optional filter by feature family
    """
    with get_db_session() as session:
        query = select(feature_usage_tracking).where(feature_usage_tracking.c.user_id == user_id)
        if feature_type:
            query = query.where(feature_usage_tracking.c.feature_type == feature_type)
        query = query.order_by(feature_usage_tracking.c.created_at.asc(), feature_usage_tracking.c.id.asc())
        rows = session.execute(query).all()

        return [
            FeatureUsageEvent(
                user_id=row.user_id,
                feature_type=row.feature_type,
                feature_name=row.feature_name,
                cv_id=row.cv_id,
                template_id=row.template_id,
                usage_count=row.usage_count,
                plan_at_usage=row.plan_at_usage,
                was_successful=bool(row.was_successful),
                error_details=row.error_details,
                processing_time_ms=row.processing_time_ms,
                metadata=row.metadata,
                created_at=row.created_at,
            )
            for row in rows
        ]
