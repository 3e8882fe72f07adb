from typing import Optional
from pydantic import BaseModel, ConfigDict

from cvbuilder.models.common import UtcDateTime
from cvbuilder.models.plan import PlanTier


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    created_at: UtcDateTime
    email: Optional[str] = None
    full_name: Optional[str] = None
    current_plan: PlanTier = PlanTier.BASIC
    is_admin: bool = False
    is_active: bool = True
    last_login_at: Optional[UtcDateTime] = None
