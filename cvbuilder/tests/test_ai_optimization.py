from types import SimpleNamespace

import pytest

import cvbuilder.features.ai.service as ai_service
from cvbuilder.core.config import settings
from cvbuilder.core.errors import ServiceUnavailableError, ValidationError
from cvbuilder.features.plans.service import get_current_usage_limits
from cvbuilder.tests.mocks import FailingGroq, FakeGroq


@pytest.fixture
def fake_groq(monkeypatch):
    monkeypatch.setattr(settings, "GROQ_API_KEY", "gsk_test")
    monkeypatch.setattr(ai_service, "groq", SimpleNamespace(Groq=FakeGroq))


def _create_cv(client, user_id):
    resp = client.post("/api/cvs", json={"title": "CV", "content": {"experience": "did stuff"}}, headers={"X-User-Id": user_id})
    assert resp.status_code == 201
    return resp.json()["cv"]["id"]


def test_optimize_without_api_key_is_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    with pytest.raises(ServiceUnavailableError):
        ai_service.optimize_cv_text("Managed projects")


def test_empty_text_is_rejected(fake_groq):
    with pytest.raises(ValidationError):
        ai_service.optimize_cv_text("   ")


def test_optimize_returns_model_output(fake_groq):
    result = ai_service.optimize_cv_text("did stuff", section="experience")
    assert result.startswith("- Led a team")


def test_provider_failure_is_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "GROQ_API_KEY", "gsk_test")
    monkeypatch.setattr(ai_service, "groq", SimpleNamespace(Groq=FailingGroq))
    with pytest.raises(ServiceUnavailableError):
        ai_service.optimize_cv_text("did stuff")


def test_optimize_route_counts_ai_run(client, provision_plan, fake_groq):
    provision_plan("u1", "basic")
    cv_id = _create_cv(client, "u1")

    resp = client.post(
        f"/api/cvs/{cv_id}/optimize",
        json={"text": "did stuff", "section": "experience"},
        headers={"X-User-Id": "u1"},
    )
    assert resp.status_code == 200
    assert resp.json()["optimized"].startswith("- Led a team")
    assert get_current_usage_limits("u1").ai_optimizations_used == 1


def test_unconfigured_ai_consumes_no_quota(client, provision_plan, monkeypatch):
    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    provision_plan("u1", "basic")
    cv_id = _create_cv(client, "u1")

    resp = client.post(f"/api/cvs/{cv_id}/optimize", json={"text": "did stuff"}, headers={"X-User-Id": "u1"})
    assert resp.status_code == 503
    assert get_current_usage_limits("u1").ai_optimizations_used == 0


def test_ai_limit_blocks_fourth_run_on_basic(client, provision_plan, fake_groq):
    provision_plan("u1", "basic", ai_optimizations_used=3)
    cv_id = _create_cv(client, "u1")

    resp = client.post(f"/api/cvs/{cv_id}/optimize", json={"text": "did stuff"}, headers={"X-User-Id": "u1"})
    assert resp.status_code == 403
    assert "AI optimization limit (3)" in resp.json()["error"]["message"]
