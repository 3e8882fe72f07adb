"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (in-memory SQLite)
- Table definitions for users, plans, payments, audit and usage tracking
"""
from typing import Optional, Generator
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Numeric, Index, ForeignKey
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import os

from cvbuilder.core.config import settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def normalize_database_url(url: str) -> str:
    """Accept the ``file:<path>`` shorthand for local SQLite databases."""
    if url.startswith("file:"):
        return "sqlite:///" + url[len("file:"):]
    return url


def is_memory_sqlite(url: str) -> bool:
    """In-memory SQLite lives inside one connection and must not be pooled per session."""
    if not url.startswith("sqlite"):
        return False
    return url.rstrip("/") in ("sqlite:", "sqlite://") or ":memory:" in url or "mode=memory" in url


def create_database_engine(url: str):
    url = normalize_database_url(url)

    if is_memory_sqlite(url):
        # One shared connection so in-memory databases survive across sessions
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    if url.startswith("sqlite"):
        # File databases get a connection per session
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)

    # Create engine with connection pooling
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=False,  # Set to True for SQL query logging
    )


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )
    _engine = create_database_engine(url)

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Everything executed inside the block commits together or not at all.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def session_scope(session: Optional[Session] = None):
    """Reuse a caller's session (joining its transaction) or open a new one."""
    if session is not None:
        yield session
        return
    with get_db_session() as own:
        yield own


def get_db() -> Generator[Session, None, None]:
    """FastAPI-friendly DB dependency that yields a Session and closes it."""
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except Exception as e:
        import logging
        logging.getLogger("cvbuilder.database").warning(f"Database connection check failed: {e}")
        return False


# Users table (identity owned by the auth provider, mirrored locally)
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('email', String(255), nullable=True),
    Column('full_name', Text, nullable=True),
    Column('current_plan', String(20), nullable=False, server_default='basic'),
    Column('is_admin', Boolean, nullable=False, server_default='0'),
    Column('is_active', Integer, nullable=False, server_default='1'),
    Column('last_login_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_users_created_at', 'created_at'),
)

# CV templates (premium flag gates access by plan)
templates = Table(
    'templates',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('name', String(200), nullable=False),
    Column('is_premium', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# CVs and cover letters
cv_documents = Table(
    'cv_documents',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False, index=True),
    Column('kind', String(20), nullable=False, server_default='cv'),  # 'cv', 'cover_letter'
    Column('title', Text, nullable=False),
    Column('template_id', String(100), ForeignKey('templates.id'), nullable=True),
    Column('content', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_cv_documents_user_created', 'user_id', 'created_at'),
)

# Per-period usage counters and ceilings (limit -1 = unlimited)
plan_usage_limits = Table(
    'plan_usage_limits',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False, index=True),
    Column('plan_type', String(20), nullable=False),
    Column('period_start', DateTime(timezone=True), nullable=False),
    Column('period_end', DateTime(timezone=True), nullable=False),
    Column('cv_generations_used', Integer, nullable=False, server_default='0'),
    Column('cv_generations_limit', Integer, nullable=False, server_default='-1'),
    Column('cover_letter_generations_used', Integer, nullable=False, server_default='0'),
    Column('cover_letter_generations_limit', Integer, nullable=False, server_default='-1'),
    Column('ai_optimizations_used', Integer, nullable=False, server_default='0'),
    Column('ai_optimizations_limit', Integer, nullable=False, server_default='-1'),
    Column('edits_used', Integer, nullable=False, server_default='0'),
    Column('edits_limit', Integer, nullable=False, server_default='-1'),
    Column('exports_used', Integer, nullable=False, server_default='0'),
    Column('exports_limit', Integer, nullable=False, server_default='-1'),
    Column('template_access_level', String(20), nullable=False, server_default='free'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    # Current-record lookup: (user_id, period_start, period_end)
    Index('idx_plan_usage_limits_user_period', 'user_id', 'period_start', 'period_end'),
)

# Payment attempts (pending -> completed | failed)
payment_transactions = Table(
    'payment_transactions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False, index=True),
    Column('transaction_type', String(50), nullable=False),
    Column('amount', Numeric(12, 2, asdecimal=False), nullable=False),
    Column('currency', String(10), nullable=False, server_default='GHS'),
    Column('provider', String(50), nullable=False),
    Column('provider_reference', String(100), nullable=False, unique=True, index=True),
    Column('provider_status', String(50), nullable=True),
    Column('status', String(20), nullable=False, index=True),
    Column('plan_type', String(20), nullable=True),
    Column('description', Text, nullable=True),
    Column('metadata', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('completed_at', DateTime(timezone=True), nullable=True),
    Index('idx_payment_transactions_user_created', 'user_id', 'created_at'),
)

# Plan transition ledger (exactly one is_active=1 row per user)
user_plan_history = Table(
    'user_plan_history',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False, index=True),
    Column('plan_type', String(20), nullable=False),
    Column('previous_plan', String(20), nullable=True),
    Column('start_date', DateTime(timezone=True), nullable=False),
    Column('end_date', DateTime(timezone=True), nullable=True),
    Column('is_active', Integer, nullable=False, server_default='1'),
    Column('amount', Numeric(12, 2, asdecimal=False), nullable=True),
    Column('currency', String(10), nullable=True),
    Column('payment_method', String(50), nullable=True),
    Column('transaction_reference', String(100), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_user_plan_history_user_active', 'user_id', 'is_active'),
)

# Audit trail (append-only)
audit_logs = Table(
    'audit_logs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=True, index=True),
    Column('user_email', String(255), nullable=True),
    Column('action', String(100), nullable=False, index=True),
    Column('entity_type', String(100), nullable=True),
    Column('entity_id', String(100), nullable=True),
    Column('old_values', JSON, nullable=True),
    Column('new_values', JSON, nullable=True),
    Column('ip_address', String(64), nullable=True),
    Column('user_agent', Text, nullable=True),
    Column('status', String(20), nullable=False, server_default='success'),
    Column('error_message', Text, nullable=True),
    Column('metadata', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False, index=True),
)

# Per-invocation feature usage log (unaggregated)
feature_usage_tracking = Table(
    'feature_usage_tracking',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('feature_type', String(50), nullable=False),
    Column('feature_name', String(100), nullable=False),
    Column('cv_id', String(100), nullable=True),
    Column('template_id', String(100), nullable=True),
    Column('usage_count', Integer, nullable=False, server_default='1'),
    Column('plan_at_usage', String(20), nullable=True),
    Column('was_successful', Integer, nullable=False, server_default='1'),
    Column('error_details', Text, nullable=True),
    Column('processing_time_ms', Integer, nullable=True),
    Column('metadata', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_feature_usage_user_type_created', 'user_id', 'feature_type', 'created_at'),
)
