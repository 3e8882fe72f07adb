import logging
from types import SimpleNamespace

from sqlalchemy import select

from cvbuilder.core.database import audit_logs, get_engine
from cvbuilder.features.audit.service import (
    AuditLogger,
    DatabaseAuditSink,
    InMemoryAuditSink,
    build_audit_logger,
)


class BrokenSink:
    def write(self, entry):
        raise RuntimeError("audit store down")


def test_disabled_logger_is_a_noop():
    sink = InMemoryAuditSink()
    AuditLogger(sink, enabled=False).log("login", user_id="u1")
    assert sink.entries == []


def test_status_defaults_to_success():
    sink = InMemoryAuditSink()
    AuditLogger(sink, enabled=True).log("login", user_id="u1")
    assert sink.entries[0].status == "success"


def test_security_event_keeps_explicit_status():
    sink = InMemoryAuditSink()
    AuditLogger(sink, enabled=True).log_security_event(
        "login_failed", user_id="u1", status="failure", error_message="bad password"
    )
    entry = sink.entries[0]
    assert entry.status == "failure"
    assert entry.error_message == "bad password"


def test_payment_event_folds_payment_fields_into_metadata():
    sink = InMemoryAuditSink()
    AuditLogger(sink, enabled=True).log_payment_event(
        "u1",
        "payment_initiated",
        amount=50.0,
        currency="GHS",
        provider="paystack",
        transaction_id="txn-1",
        metadata={"plan_type": "pro"},
    )
    entry = sink.entries[0]
    assert entry.entity_type == "payment"
    assert entry.entity_id == "txn-1"
    assert entry.metadata == {"amount": 50.0, "currency": "GHS", "provider": "paystack", "plan_type": "pro"}


def test_sink_failure_is_logged_and_swallowed(caplog):
    with caplog.at_level(logging.ERROR, logger="cvbuilder"):
        AuditLogger(BrokenSink(), enabled=True).log_user_action("u1", "cv_created")
    assert "Failed to create audit log" in caplog.text


def test_database_sink_appends_row():
    AuditLogger(DatabaseAuditSink(), enabled=True).log_user_action(
        "u1",
        "cv_created",
        entity_type="cv",
        entity_id="cv-1",
        new_values={"title": "My CV"},
    )

    with get_engine().connect() as conn:
        rows = conn.execute(select(audit_logs)).fetchall()
    assert len(rows) == 1
    assert rows[0].action == "cv_created"
    assert rows[0].status == "success"
    assert rows[0].new_values == {"title": "My CV"}


def test_build_audit_logger_follows_flag():
    enabled = build_audit_logger(SimpleNamespace(ENABLE_AUDIT_LOGGING=True), sink=InMemoryAuditSink())
    disabled = build_audit_logger(SimpleNamespace(ENABLE_AUDIT_LOGGING=False), sink=InMemoryAuditSink())
    assert enabled.enabled is True
    assert disabled.enabled is False
