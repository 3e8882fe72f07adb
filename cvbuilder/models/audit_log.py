"""
cvbuilder/models/audit_log.py

Audit trail entries. Entries are appended and never mutated.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class AuditLogEntry(BaseModel):
    """An audit event as handed to an audit sink."""
    model_config = ConfigDict(frozen=True)

    action: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: str = "success"
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
