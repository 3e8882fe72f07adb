from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict

from cvbuilder.models.common import UtcDateTime


class Template(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    is_premium: bool = False


class CvDocument(BaseModel):
    """A CV or cover letter owned by one user."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    kind: str  # "cv" | "cover_letter"
    title: str
    template_id: Optional[str] = None
    content: Dict[str, Any]
    created_at: UtcDateTime
    updated_at: Optional[UtcDateTime] = None
