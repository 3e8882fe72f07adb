"""
cvbuilder/features/audit/service.py

Audit logging for security, user and payment events.

The AuditLogger is constructed explicitly and handed to callers (FastAPI
dependency get_audit_logger); it writes through an AuditSink. Audit failures
are logged and swallowed: the audited operation never fails because its
audit trail could not be written.
"""

from typing import Any, Dict, List, Optional, Protocol

from fastapi import Request
from sqlalchemy import insert

from cvbuilder.core.config import settings
from cvbuilder.core.database import audit_logs, get_db_session
from cvbuilder.core.logging import get_logger
from cvbuilder.models.audit_log import AuditLogEntry


class AuditSink(Protocol):
    def write(self, entry: AuditLogEntry) -> None:
        ...


class DatabaseAuditSink:
    """Appends entries to the audit_logs table."""

    def write(self, entry: AuditLogEntry) -> None:
        with get_db_session() as session:
            session.execute(insert(audit_logs).values(**entry.model_dump()))


class InMemoryAuditSink:
    """Keeps entries in a list (tests, DB-less development)."""

    def __init__(self):
        self.entries: List[AuditLogEntry] = []

    def write(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)

    def actions(self) -> List[str]:
        return [e.action for e in self.entries]


class AuditLogger:
    def __init__(self, sink: AuditSink, enabled: bool = False):
        self.sink = sink
        self.enabled = enabled
        self.logger = get_logger("AuditLogger")

    def log(self, action: str, **fields: Any) -> None:
        """Persist one audit event; status defaults to 'success'."""
        if not self.enabled:
            return

        try:
            if fields.get("status") is None:
                fields["status"] = "success"
            entry = AuditLogEntry(action=action, **fields)
            self.sink.write(entry)

            self.logger.info(
                "Audit event",
                extra={"meta": {
                    "action": entry.action,
                    "user_id": entry.user_id,
                    "entity_type": entry.entity_type,
                    "status": entry.status,
                }},
            )
        except Exception:
            self.logger.error("Failed to create audit log", exc_info=True, extra={"meta": {"action": action}})

    def log_user_action(
        self,
        user_id: str,
        action: str,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.log(
            action,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            metadata=metadata,
            ip_address=ip_address,
            user_agent=user_agent,
            status="success",
        )

    def log_security_event(
        self,
        action: str,
        *,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: str = "success",
        error_message: Optional[str] = None,
    ) -> None:
        self.log(
            action,
            user_id=user_id,
            user_email=user_email,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata,
            status=status,
            error_message=error_message,
        )

    def log_payment_event(
        self,
        user_id: str,
        action: str,
        *,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        provider: Optional[str] = None,
        transaction_id: Optional[str] = None,
        status: str = "success",
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        payment_meta: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "provider": provider,
        }
        if metadata:
            payment_meta.update(metadata)
        self.log(
            action,
            user_id=user_id,
            entity_type="payment",
            entity_id=transaction_id,
            metadata=payment_meta,
            status=status,
            error_message=error_message,
        )


def build_audit_logger(settings_obj=None, sink: Optional[AuditSink] = None) -> AuditLogger:
    cfg = settings_obj or settings
    return AuditLogger(sink or DatabaseAuditSink(), enabled=cfg.ENABLE_AUDIT_LOGGING)


def get_audit_logger(request: Request) -> AuditLogger:
    """FastAPI dependency: the app's audit logger (built lazily on first use)."""
    audit = getattr(request.app.state, "audit_logger", None)
    if audit is None:
        audit = build_audit_logger()
        request.app.state.audit_logger = audit
    return audit
