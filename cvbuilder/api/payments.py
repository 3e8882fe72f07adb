"""
Payment and plan API routes.

- POST /api/payments/initiate: Create a pending plan purchase
- POST /api/payments/verify: Verify a payment and rotate the user's plan
- GET  /api/payments/history: Caller's transactions
- GET  /api/plans/history: Caller's plan history
- GET  /api/plans/usage: Current period usage and remaining quota
- GET  /api/plans/pricing: Plan pricing table
"""
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from cvbuilder.core.auth import get_current_user_id
from cvbuilder.core.config import settings
from cvbuilder.core.errors import NotFoundError
from cvbuilder.core.logging import get_logger
from cvbuilder.core.monitoring import PerformanceMonitor
from cvbuilder.features.audit.service import AuditLogger, get_audit_logger
from cvbuilder.features.payments.provider import PaymentProvider, get_payment_provider
from cvbuilder.features.payments.service import (
    initiate_payment,
    list_transactions,
    verify_payment,
)
from cvbuilder.features.plans.pricing import get_pricing
from cvbuilder.features.plans.service import get_current_usage_limits, get_plan_history
from cvbuilder.models.plan import PlanTier
from cvbuilder.models.plan_usage import UsageType


logger = get_logger("PaymentAPI")
perf_monitor = PerformanceMonitor("PaymentAPI", enabled=settings.ENABLE_PERFORMANCE_MONITORING)

router = APIRouter(prefix="/api", tags=["payments"])


class InitiatePaymentRequest(BaseModel):
    """Request to start a plan purchase."""
    model_config = ConfigDict(populate_by_name=True)

    plan_type: PlanTier = Field(alias="planType")
    amount: float = Field(gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=10)


class VerifyPaymentRequest(BaseModel):
    """Request to verify a payment by provider reference."""
    reference: str = Field(min_length=1)


def _operation_id(name: str) -> str:
    return f"{name}_{time.time_ns()}"


@router.post("/payments/initiate")
def initiate(
    body: InitiatePaymentRequest,
    user_id: str = Depends(get_current_user_id),
    audit: AuditLogger = Depends(get_audit_logger),
) -> Dict[str, Any]:
    """
    Create a pending plan purchase.

    Returns:
        {"success": true, "transaction": {id, status, amount, currency, reference}}

    Errors:
        400: Invalid plan type or non-positive amount
        401: Not authenticated
    """
    operation_id = _operation_id("initiate_payment")
    perf_monitor.start_timer(operation_id)
    try:
        transaction = initiate_payment(user_id, body.plan_type, body.amount, body.currency, audit=audit)
    except Exception:
        perf_monitor.end_timer(operation_id, {"status": "error"})
        raise
    perf_monitor.end_timer(operation_id, {"status": "success"})

    return {
        "success": True,
        "transaction": {
            "id": transaction.id,
            "status": transaction.status.value,
            "amount": transaction.amount,
            "currency": transaction.currency,
            "reference": transaction.provider_reference,
        },
    }


@router.post("/payments/verify")
def verify(
    body: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    audit: AuditLogger = Depends(get_audit_logger),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> Dict[str, Any]:
    """
    Verify a payment; on success the user's plan is rotated.

    Errors:
        402: Provider did not confirm the payment
        403: Transaction belongs to another user
        404: Unknown reference
        409: Transaction already failed
    """
    operation_id = _operation_id("verify_payment")
    perf_monitor.start_timer(operation_id)
    try:
        transaction = verify_payment(user_id, body.reference, provider=provider, audit=audit)
    except Exception:
        perf_monitor.end_timer(operation_id, {"status": "error"})
        raise
    perf_monitor.end_timer(operation_id, {"status": "success"})

    return {
        "success": True,
        "transaction": {
            "id": transaction.id,
            "status": transaction.status.value,
            "planType": transaction.plan_type.value if transaction.plan_type else None,
        },
    }


@router.get("/payments/history")
def payment_history(user_id: str = Depends(get_current_user_id)) -> Dict[str, Any]:
    transactions = list_transactions(user_id)
    return {
        "success": True,
        "transactions": [
            {
                "id": t.id,
                "type": t.transaction_type,
                "amount": t.amount,
                "currency": t.currency,
                "status": t.status.value,
                "planType": t.plan_type.value if t.plan_type else None,
                "reference": t.provider_reference,
                "createdAt": t.created_at.isoformat(),
                "completedAt": t.completed_at.isoformat() if t.completed_at else None,
            }
            for t in transactions
        ],
    }


@router.get("/plans/history")
def plan_history(user_id: str = Depends(get_current_user_id)) -> Dict[str, Any]:
    history = get_plan_history(user_id)
    return {
        "success": True,
        "planHistory": [
            {
                "id": h.id,
                "planType": h.plan_type.value,
                "previousPlan": h.previous_plan.value if h.previous_plan else None,
                "startDate": h.start_date.isoformat(),
                "endDate": h.end_date.isoformat() if h.end_date else None,
                "isActive": h.is_active,
                "amount": h.amount,
                "currency": h.currency,
            }
            for h in history
        ],
    }


_USAGE_RESPONSE_KEYS = {
    UsageType.CV_GENERATION: "cvGenerations",
    UsageType.COVER_LETTER: "coverLetters",
    UsageType.AI_OPTIMIZATION: "aiOptimizations",
    UsageType.EDIT: "edits",
    UsageType.EXPORT: "exports",
}


@router.get("/plans/usage")
def plan_usage(user_id: str = Depends(get_current_user_id)) -> Dict[str, Any]:
    limits = get_current_usage_limits(user_id)
    if limits is None:
        raise NotFoundError("No active plan found")

    usage: Dict[str, Any] = {
        "planType": limits.plan_type.value,
        "period": {
            "start": limits.period_start.isoformat(),
            "end": limits.period_end.isoformat(),
        },
        "templateAccessLevel": limits.template_access_level.value,
    }
    for usage_type, key in _USAGE_RESPONSE_KEYS.items():
        counter = limits.counter(usage_type)
        usage[key] = {"used": counter.used, "limit": counter.limit, "remaining": counter.remaining}

    return {"success": True, "usage": usage}


@router.get("/plans/pricing")
def pricing() -> Dict[str, Any]:
    plans = get_pricing()
    return {
        "success": True,
        "plans": {
            tier.value: plan.model_dump(mode="json", by_alias=True, exclude={"tier"})
            for tier, plan in plans.items()
        },
    }
