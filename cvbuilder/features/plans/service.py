"""
cvbuilder/features/plans/service.py

Plan usage records and plan history.

Handles:
- Current usage-limit lookup (one current record per user per period)
- Provisioning a fresh record for a billing period
- Counter increments
- Plan history ledger and plan rotation
"""

from datetime import datetime, timezone, timedelta
from typing import List, Optional, Tuple
from sqlalchemy import select, insert, update
from sqlalchemy.orm import Session

from cvbuilder.core.database import (
    session_scope,
    plan_usage_limits,
    user_plan_history,
)
from cvbuilder.core.logging import get_logger
from cvbuilder.features.plans.pricing import get_plan_pricing
from cvbuilder.features.users.service import get_user, update_user_plan
from cvbuilder.models.common import as_utc
from cvbuilder.models.plan import PlanLimits, PlanTier
from cvbuilder.models.plan_history import UserPlanHistory
from cvbuilder.models.plan_usage import PlanUsageLimits, UsageType, USAGE_COUNTERS

logger = get_logger("Plans")


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return as_utc(now)


def billing_period(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Period from now to the last second of the current calendar month."""
    start = _normalize_now(now)
    if start.month == 12:
        next_month = start.replace(year=start.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        next_month = start.replace(month=start.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return start, next_month - timedelta(seconds=1)


def _to_usage_limits(row) -> PlanUsageLimits:
    return PlanUsageLimits(**dict(row._mapping))


def _current_usage_row(session: Session, user_id: str, now: datetime):
    return session.execute(
        select(plan_usage_limits)
        .where(plan_usage_limits.c.user_id == user_id)
        .where(plan_usage_limits.c.period_start <= now)
        .where(plan_usage_limits.c.period_end >= now)
        .order_by(plan_usage_limits.c.created_at.desc(), plan_usage_limits.c.id.desc())
        .limit(1)
    ).first()


def get_current_usage_limits(
    user_id: str,
    now: Optional[datetime] = None,
    session: Optional[Session] = None,
) -> Optional[PlanUsageLimits]:
    """
    Get the user's current usage-limit record.

    The most recently created record whose period contains `now` wins;
    superseded records are kept but never returned.
    """
    normalized_now = _normalize_now(now)
    with session_scope(session) as s:
        row = _current_usage_row(s, user_id, normalized_now)
        return _to_usage_limits(row) if row else None


def create_usage_limits(
    user_id: str,
    plan_type: PlanTier,
    limits: PlanLimits,
    *,
    now: Optional[datetime] = None,
    session: Optional[Session] = None,
) -> PlanUsageLimits:
    """Provision a new record for the current period with all counters at zero."""
    period_start, period_end = billing_period(now)
    values = {
        "user_id": user_id,
        "plan_type": PlanTier(plan_type).value,
        "period_start": period_start,
        "period_end": period_end,
        "cv_generations_used": 0,
        "cv_generations_limit": limits.cv_generations,
        "cover_letter_generations_used": 0,
        "cover_letter_generations_limit": limits.cover_letter_generations,
        "ai_optimizations_used": 0,
        "ai_optimizations_limit": limits.ai_runs,
        "edits_used": 0,
        "edits_limit": limits.edits_allowed,
        "exports_used": 0,
        "exports_limit": limits.exports,
        "template_access_level": limits.template_access.value,
        "created_at": period_start,
        "updated_at": period_start,
    }
    with session_scope(session) as s:
        result = s.execute(insert(plan_usage_limits).values(**values))
        record_id = result.inserted_primary_key[0]
    return PlanUsageLimits(id=record_id, **values)


def increment_usage(
    user_id: str,
    usage_type: UsageType,
    now: Optional[datetime] = None,
) -> bool:
    """
    Add one use to the current record's counter for usage_type.

    Returns False when the user has no current record. The update is not
    conditioned on the ceiling; enforcement happens before the request runs.
    """
    prefix, _ = USAGE_COUNTERS[UsageType(usage_type)]
    column = f"{prefix}_used"
    normalized_now = _normalize_now(now)
    with session_scope() as s:
        row = _current_usage_row(s, user_id, normalized_now)
        if not row:
            return False
        s.execute(
            update(plan_usage_limits)
            .where(plan_usage_limits.c.id == row.id)
            .values({column: plan_usage_limits.c[column] + 1, "updated_at": normalized_now})
        )
    return True


def _to_history(row) -> UserPlanHistory:
    return UserPlanHistory(
        id=row.id,
        user_id=row.user_id,
        plan_type=row.plan_type,
        previous_plan=row.previous_plan,
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=bool(row.is_active),
        amount=row.amount,
        currency=row.currency,
        payment_method=row.payment_method,
        transaction_reference=row.transaction_reference,
    )


def deactivate_previous_plans(user_id: str, now: Optional[datetime] = None, session: Optional[Session] = None) -> int:
    """Close every active history row for the user; returns the number closed."""
    normalized_now = _normalize_now(now)
    with session_scope(session) as s:
        result = s.execute(
            update(user_plan_history)
            .where(user_plan_history.c.user_id == user_id)
            .where(user_plan_history.c.is_active == 1)
            .values(is_active=0, end_date=normalized_now)
        )
        return result.rowcount or 0


def create_plan_history(
    user_id: str,
    plan_type: PlanTier,
    previous_plan: Optional[PlanTier],
    *,
    amount: Optional[float] = None,
    currency: Optional[str] = None,
    payment_method: Optional[str] = None,
    transaction_reference: Optional[str] = None,
    now: Optional[datetime] = None,
    session: Optional[Session] = None,
) -> UserPlanHistory:
    normalized_now = _normalize_now(now)
    values = {
        "user_id": user_id,
        "plan_type": PlanTier(plan_type).value,
        "previous_plan": PlanTier(previous_plan).value if previous_plan else None,
        "start_date": normalized_now,
        "is_active": 1,
        "amount": amount,
        "currency": currency,
        "payment_method": payment_method,
        "transaction_reference": transaction_reference,
        "created_at": normalized_now,
    }
    with session_scope(session) as s:
        result = s.execute(insert(user_plan_history).values(**values))
        history_id = result.inserted_primary_key[0]
    values.pop("created_at")
    values["is_active"] = True
    return UserPlanHistory(id=history_id, **values)


def get_plan_history(user_id: str) -> List[UserPlanHistory]:
    """Plan history for a user, newest first."""
    with session_scope() as s:
        rows = s.execute(
            select(user_plan_history)
            .where(user_plan_history.c.user_id == user_id)
            .order_by(user_plan_history.c.start_date.desc(), user_plan_history.c.id.desc())
        ).all()
        return [_to_history(row) for row in rows]


def rotate_plan(
    user_id: str,
    new_plan: PlanTier,
    *,
    amount: Optional[float] = None,
    currency: Optional[str] = None,
    payment_method: Optional[str] = None,
    transaction_reference: Optional[str] = None,
    now: Optional[datetime] = None,
    session: Optional[Session] = None,
) -> Optional[PlanUsageLimits]:
    """
    Move a user onto new_plan.

    Steps: close active history rows, insert the new active row, update the
    user's current plan, provision a usage record for the current period.
    Pass a session to make the rotation part of a larger transaction.

    Returns the new usage record, or None when the tier has no pricing entry
    (history and current plan are still rotated).
    """
    normalized_now = _normalize_now(now)
    tier = PlanTier(new_plan)
    with session_scope(session) as s:
        user = get_user(user_id, session=s)
        previous_plan = user.current_plan if user else PlanTier.BASIC

        closed = deactivate_previous_plans(user_id, normalized_now, session=s)
        create_plan_history(
            user_id,
            tier,
            previous_plan,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            transaction_reference=transaction_reference,
            now=normalized_now,
            session=s,
        )
        update_user_plan(user_id, tier, session=s)

        pricing = get_plan_pricing(tier)
        usage = None
        if pricing:
            usage = create_usage_limits(user_id, tier, pricing.limits, now=normalized_now, session=s)
        else:
            logger.warning("No pricing configured for plan", extra={"meta": {"plan_type": tier.value}})

    logger.info(
        "Plan rotated",
        extra={"meta": {
            "user_id": user_id,
            "previous_plan": previous_plan.value if previous_plan else None,
            "plan_type": tier.value,
            "closed_history_rows": closed,
        }},
    )
    return usage
