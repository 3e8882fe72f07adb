"""
cvbuilder/models/plan_history.py

Append-only ledger of plan transitions. Exactly one row per user is active.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict

from cvbuilder.models.common import UtcDateTime
from cvbuilder.models.plan import PlanTier


class UserPlanHistory(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    plan_type: PlanTier
    previous_plan: Optional[PlanTier] = None
    start_date: UtcDateTime
    end_date: Optional[UtcDateTime] = None
    is_active: bool
    amount: Optional[float] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    transaction_reference: Optional[str] = None
