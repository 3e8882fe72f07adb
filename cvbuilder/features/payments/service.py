"""
cvbuilder/features/payments/service.py

Payment transactions and plan purchase verification.

Handles:
- Initiation: pending transaction with a generated provider reference
- Verification: provider confirmation, then status update and plan rotation
  committed together
- Payment history queries

Verification is idempotent for completed transactions: the stored result is
returned and nothing is provisioned twice.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import select, insert, update

from cvbuilder.core.database import get_db_session, payment_transactions
from cvbuilder.core.errors import (
    ConflictError,
    NotFoundError,
    PaymentFailedError,
    PermissionError,
    ServiceUnavailableError,
    ValidationError,
)
from cvbuilder.core.logging import get_logger
from cvbuilder.features.audit.service import AuditLogger
from cvbuilder.features.payments.provider import PaymentProvider, PaymentProviderError, configured_provider_name
from cvbuilder.features.plans.pricing import get_plan_pricing
from cvbuilder.features.plans.service import rotate_plan
from cvbuilder.models.payment import PaymentStatus, PaymentTransaction
from cvbuilder.models.plan import PlanTier

logger = get_logger("PaymentService")

TRANSACTION_TYPE_PLAN_PURCHASE = "plan_purchase"
AMOUNT_TOLERANCE = 0.005


def _to_transaction(row) -> PaymentTransaction:
    return PaymentTransaction(**dict(row._mapping))


def generate_reference() -> str:
    return f"cvb_{uuid.uuid4().hex}"


def get_transaction_by_reference(reference: str) -> Optional[PaymentTransaction]:
    with get_db_session() as session:
        row = session.execute(
            select(payment_transactions).where(payment_transactions.c.provider_reference == reference)
        ).first()
        return _to_transaction(row) if row else None


def list_transactions(user_id: str) -> List[PaymentTransaction]:
    """A user's transactions, newest first."""
    with get_db_session() as session:
        rows = session.execute(
            select(payment_transactions)
            .where(payment_transactions.c.user_id == user_id)
            .order_by(payment_transactions.c.created_at.desc())
        ).all()
        return [_to_transaction(row) for row in rows]


def initiate_payment(
    user_id: str,
    plan_type: PlanTier,
    amount: float,
    currency: Optional[str] = None,
    *,
    audit: AuditLogger,
    provider_name: Optional[str] = None,
) -> PaymentTransaction:
    """
    Create a pending plan-purchase transaction.

    The amount must cover the configured price of the tier, in the tier's
    currency.

    Raises:
        ValidationError: unknown plan tier, non-positive amount, amount below
            the plan price or a currency other than the plan's
    """
    try:
        tier = PlanTier(plan_type)
    except ValueError:
        raise ValidationError(f"Unknown plan type: {plan_type}")
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than zero")

    pricing = get_plan_pricing(tier)
    if pricing is None:
        raise ValidationError(f"Plan {tier.value} is not available for purchase")
    currency = (currency or pricing.currency).upper()
    if currency != pricing.currency.upper():
        raise ValidationError(
            f"The {tier.value} plan is priced in {pricing.currency}",
            extra={"details": [{"field": "currency", "message": f"Expected {pricing.currency}"}]},
        )
    if amount + AMOUNT_TOLERANCE < pricing.price:
        raise ValidationError(
            f"Amount is below the {tier.value} plan price ({pricing.price:g} {pricing.currency})",
            extra={"details": [{"field": "amount", "message": f"Must be at least {pricing.price:g}"}]},
        )

    now = datetime.now(timezone.utc)
    values = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "transaction_type": TRANSACTION_TYPE_PLAN_PURCHASE,
        "amount": float(amount),
        "currency": currency,
        "provider": provider_name or configured_provider_name(),
        "provider_reference": generate_reference(),
        "status": PaymentStatus.PENDING.value,
        "plan_type": tier.value,
        "description": f"Purchase of {tier.value} plan",
        "created_at": now,
    }
    with get_db_session() as session:
        session.execute(insert(payment_transactions).values(**values))

    transaction = PaymentTransaction(**values)

    audit.log_payment_event(
        user_id,
        "payment_initiated",
        amount=transaction.amount,
        currency=transaction.currency,
        provider=transaction.provider,
        transaction_id=transaction.id,
        metadata={"plan_type": tier.value},
    )
    logger.info(
        "Payment initiated",
        extra={"meta": {
            "user_id": user_id,
            "transaction_id": transaction.id,
            "plan_type": tier.value,
            "amount": transaction.amount,
        }},
    )
    return transaction


def _mark_failed(transaction: PaymentTransaction, provider_status: str) -> None:
    with get_db_session() as session:
        session.execute(
            update(payment_transactions)
            .where(payment_transactions.c.id == transaction.id)
            .where(payment_transactions.c.status == PaymentStatus.PENDING.value)
            .values(status=PaymentStatus.FAILED.value, provider_status=provider_status)
        )


def verify_payment(
    user_id: str,
    reference: str,
    *,
    provider: PaymentProvider,
    audit: AuditLogger,
    now: Optional[datetime] = None,
) -> PaymentTransaction:
    """
    Verify a transaction by provider reference and rotate the user's plan.

    Raises:
        NotFoundError: unknown reference
        PermissionError: transaction belongs to another user (nothing mutated)
        ConflictError: transaction already failed
        PaymentFailedError: provider reported a final failure (transaction marked
            failed) or has not confirmed the payment yet (code payment_pending,
            transaction stays pending)
        ServiceUnavailableError: provider unreachable (transaction stays pending)
    """
    transaction = get_transaction_by_reference(reference)
    if transaction is None:
        raise NotFoundError("Transaction not found")

    if transaction.user_id != user_id:
        audit.log_security_event(
            "payment_verification_denied",
            user_id=user_id,
            metadata={"transaction_id": transaction.id, "reference": reference},
            status="failure",
            error_message="Transaction belongs to another user",
        )
        raise PermissionError("You do not have access to this transaction")

    if transaction.status == PaymentStatus.COMPLETED:
        logger.info(
            "Payment already verified",
            extra={"meta": {"user_id": user_id, "transaction_id": transaction.id}},
        )
        return transaction
    if transaction.status == PaymentStatus.FAILED:
        raise ConflictError("Transaction has already failed verification")

    try:
        verification = provider.verify(reference)
    except PaymentProviderError as e:
        raise ServiceUnavailableError(str(e) or "Payment provider unavailable")

    failure_reason = None
    if not verification.success:
        if not verification.is_final_failure:
            logger.info(
                "Payment not confirmed yet",
                extra={"meta": {"user_id": user_id, "transaction_id": transaction.id, "provider_status": verification.provider_status}},
            )
            raise PaymentFailedError(
                "Payment has not been confirmed yet",
                code="payment_pending",
                extra={"provider_status": verification.provider_status},
            )
        failure_reason = verification.message or f"Provider status: {verification.provider_status}"
    elif verification.currency and verification.currency.upper() != transaction.currency.upper():
        failure_reason = "Paid currency does not match transaction currency"
    elif verification.amount is not None and abs(verification.amount - transaction.amount) > AMOUNT_TOLERANCE:
        failure_reason = "Paid amount does not match transaction amount"

    if failure_reason:
        _mark_failed(transaction, verification.provider_status)
        audit.log_payment_event(
            user_id,
            "payment_failed",
            amount=transaction.amount,
            currency=transaction.currency,
            provider=transaction.provider,
            transaction_id=transaction.id,
            status="failure",
            error_message=failure_reason,
        )
        logger.warning(
            "Payment verification failed",
            extra={"meta": {"user_id": user_id, "transaction_id": transaction.id, "reason": failure_reason}},
        )
        raise PaymentFailedError(failure_reason, extra={"provider_status": verification.provider_status})

    completed_at = now or datetime.now(timezone.utc)
    with get_db_session() as session:
        result = session.execute(
            update(payment_transactions)
            .where(payment_transactions.c.id == transaction.id)
            .where(payment_transactions.c.status == PaymentStatus.PENDING.value)
            .values(
                status=PaymentStatus.COMPLETED.value,
                completed_at=completed_at,
                provider_status="success",
            )
        )
        # rowcount 0 means a concurrent verify completed it first
        first_completion = (result.rowcount or 0) == 1

        if first_completion and transaction.plan_type:
            rotate_plan(
                user_id,
                transaction.plan_type,
                amount=transaction.amount,
                currency=transaction.currency,
                payment_method=provider.name,
                transaction_reference=reference,
                now=completed_at,
                session=session,
            )

    verified = get_transaction_by_reference(reference)
    if not first_completion:
        return verified

    audit.log_payment_event(
        user_id,
        "payment_verified",
        amount=transaction.amount,
        currency=transaction.currency,
        provider=transaction.provider,
        transaction_id=transaction.id,
        status="success",
        metadata={"plan_type": transaction.plan_type.value if transaction.plan_type else None},
    )
    logger.info(
        "Payment verified",
        extra={"meta": {"user_id": user_id, "transaction_id": transaction.id, "reference": reference}},
    )
    return verified
