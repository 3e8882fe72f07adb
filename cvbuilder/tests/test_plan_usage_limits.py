from datetime import datetime, timezone, timedelta

import pytest
from sqlalchemy import select

from cvbuilder.core.database import get_db_session, get_engine, plan_usage_limits, user_plan_history
from cvbuilder.features.plans.pricing import get_plan_pricing
from cvbuilder.features.plans.service import (
    billing_period,
    create_usage_limits,
    get_current_usage_limits,
    get_plan_history,
    increment_usage,
    rotate_plan,
)
from cvbuilder.features.users.service import get_or_create_user, get_user
from cvbuilder.models.plan import PlanLimits, PlanTier
from cvbuilder.models.plan_usage import UsageType


def test_billing_period_ends_last_second_of_month():
    start, end = billing_period(datetime(2026, 2, 10, 8, 30, tzinfo=timezone.utc))
    assert start == datetime(2026, 2, 10, 8, 30, tzinfo=timezone.utc)
    assert end == datetime(2026, 2, 28, 23, 59, 59, tzinfo=timezone.utc)


def test_billing_period_rolls_over_december():
    _, end = billing_period(datetime(2026, 12, 31, 12, 0, tzinfo=timezone.utc))
    assert end == datetime(2026, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def test_billing_period_treats_naive_as_utc():
    start, _ = billing_period(datetime(2026, 5, 1, 0, 0))
    assert start.tzinfo is not None


def test_no_record_means_no_current_limits():
    get_or_create_user("u1")
    assert get_current_usage_limits("u1") is None


def test_new_record_starts_at_zero_with_tier_limits():
    get_or_create_user("u1")
    record = create_usage_limits("u1", PlanTier.BASIC, get_plan_pricing(PlanTier.BASIC).limits)

    current = get_current_usage_limits("u1")
    assert current.id == record.id
    assert current.cv_generations_used == 0
    assert current.cv_generations_limit == 3
    assert current.exports_limit == -1


def test_most_recent_record_is_current():
    get_or_create_user("u1")
    now = datetime.now(timezone.utc)
    create_usage_limits("u1", PlanTier.BASIC, get_plan_pricing(PlanTier.BASIC).limits, now=now - timedelta(seconds=5))
    newer = create_usage_limits("u1", PlanTier.PRO, get_plan_pricing(PlanTier.PRO).limits, now=now)

    current = get_current_usage_limits("u1", now=now + timedelta(seconds=1))
    assert current.id == newer.id
    assert current.plan_type == PlanTier.PRO


def test_expired_record_is_not_current():
    get_or_create_user("u1")
    create_usage_limits(
        "u1",
        PlanTier.BASIC,
        get_plan_pricing(PlanTier.BASIC).limits,
        now=datetime(2020, 1, 15, tzinfo=timezone.utc),
    )
    assert get_current_usage_limits("u1") is None


def test_increment_touches_only_matching_counter():
    get_or_create_user("u1")
    create_usage_limits("u1", PlanTier.BASIC, get_plan_pricing(PlanTier.BASIC).limits)

    assert increment_usage("u1", UsageType.EDIT) is True
    assert increment_usage("u1", UsageType.EDIT) is True

    current = get_current_usage_limits("u1")
    assert current.edits_used == 2
    assert current.cv_generations_used == 0
    assert current.exports_used == 0


def test_increment_without_record_returns_false():
    get_or_create_user("u1")
    assert increment_usage("u1", UsageType.EXPORT) is False


def test_counter_helpers():
    get_or_create_user("u1")
    limits = PlanLimits(cvGenerations=2, coverLetterGenerations=1)
    create_usage_limits("u1", PlanTier.BASIC, limits)
    increment_usage("u1", UsageType.CV_GENERATION)

    current = get_current_usage_limits("u1")
    cv = current.counter(UsageType.CV_GENERATION)
    assert (cv.used, cv.limit, cv.remaining, cv.reached) == (1, 2, 1, False)
    ai = current.counter(UsageType.AI_OPTIMIZATION)
    assert ai.unlimited and not ai.reached and ai.remaining == -1


def test_rotate_plan_keeps_one_active_history_row():
    get_or_create_user("u1")
    rotate_plan("u1", PlanTier.PRO, amount=50, currency="GHS", payment_method="paystack", transaction_reference="ref-1")
    rotate_plan("u1", PlanTier.PREMIUM, amount=100, currency="GHS", payment_method="paystack", transaction_reference="ref-2")

    history = get_plan_history("u1")
    active = [h for h in history if h.is_active]
    assert len(history) == 2
    assert len(active) == 1
    assert active[0].plan_type == PlanTier.PREMIUM
    assert active[0].previous_plan == PlanTier.PRO

    closed = [h for h in history if not h.is_active][0]
    assert closed.end_date is not None
    assert get_user("u1").current_plan == PlanTier.PREMIUM
    assert get_current_usage_limits("u1").plan_type == PlanTier.PREMIUM


def test_rotate_plan_in_failed_transaction_leaves_no_trace():
    get_or_create_user("u1")

    with pytest.raises(RuntimeError):
        with get_db_session() as session:
            rotate_plan("u1", PlanTier.PRO, session=session)
            raise RuntimeError("status update failed")

    with get_engine().connect() as conn:
        assert conn.execute(select(user_plan_history)).fetchall() == []
        assert conn.execute(select(plan_usage_limits)).fetchall() == []
    assert get_user("u1").current_plan == PlanTier.BASIC
