"""
cvbuilder/models/payment.py

Payment transaction model.

Lifecycle: pending -> completed | failed. A transaction is written once on
initiation and mutated once on verification; it is immutable afterwards.
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict

from cvbuilder.models.common import UtcDateTime
from cvbuilder.models.plan import PlanTier


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    transaction_type: str
    amount: float
    currency: str
    provider: str
    provider_reference: str
    status: PaymentStatus
    plan_type: Optional[PlanTier] = None
    provider_status: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: UtcDateTime
    completed_at: Optional[UtcDateTime] = None
