# cvbuilder/conftest.py
import os
import pytest

# Must be set before cvbuilder settings are imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")


@pytest.fixture(scope="session", autouse=True)
def engine():
    """One in-memory SQLite engine (static pool) for the whole session."""
    from cvbuilder.core.database import init_engine
    return init_engine(os.environ["TEST_DATABASE_URL"])


@pytest.fixture(scope="function", autouse=True)
def reset_db(engine):
    """Drop and recreate all tables so every test starts empty."""
    from cvbuilder.core.database import reset_database
    from cvbuilder.features.plans.pricing import reset_pricing_cache

    reset_database()
    reset_pricing_cache()
    yield
    reset_pricing_cache()


@pytest.fixture
def audit_sink():
    from cvbuilder.features.audit.service import InMemoryAuditSink
    return InMemoryAuditSink()


@pytest.fixture
def audit_logger(audit_sink):
    from cvbuilder.features.audit.service import AuditLogger
    return AuditLogger(audit_sink, enabled=True)


@pytest.fixture
def app(audit_logger):
    """The application with an in-memory, enabled audit logger."""
    from cvbuilder.main import app as fastapi_app

    previous = getattr(fastapi_app.state, "audit_logger", None)
    fastapi_app.state.audit_logger = audit_logger
    yield fastapi_app
    fastapi_app.state.audit_logger = previous
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def provision_plan():
    """Create a user with a usage record for the given tier.

    Usage counters can be preset, e.g. provision_plan("u1", "basic", cv_generations_used=2).
    """
    from sqlalchemy import update
    from cvbuilder.core.database import get_db_session, plan_usage_limits
    from cvbuilder.features.plans.pricing import get_plan_pricing
    from cvbuilder.features.plans.service import create_usage_limits, get_current_usage_limits
    from cvbuilder.features.users.service import get_or_create_user
    from cvbuilder.models.plan import PlanLimits, PlanTier

    def _provision(user_id, tier="basic", limits=None, **used):
        get_or_create_user(user_id)
        plan_limits = limits or get_plan_pricing(PlanTier(tier)).limits
        if isinstance(plan_limits, dict):
            plan_limits = PlanLimits.model_validate(plan_limits)
        record = create_usage_limits(user_id, PlanTier(tier), plan_limits)
        if used:
            with get_db_session() as session:
                session.execute(
                    update(plan_usage_limits).where(plan_usage_limits.c.id == record.id).values(**used)
                )
        return get_current_usage_limits(user_id)

    return _provision
