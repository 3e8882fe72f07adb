"""
User domain service.
- get_or_create_user(user_id)
- get_user(user_id)
- update_user_plan(user_id, plan)
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert, update
from sqlalchemy.orm import Session

from cvbuilder.core.database import get_db_session, session_scope, users as app_users
from cvbuilder.models.plan import PlanTier
from cvbuilder.models.user import User


def _to_user(row) -> User:
    return User(
        user_id=row.user_id,
        created_at=row.created_at,
        email=row.email,
        full_name=row.full_name,
        current_plan=row.current_plan or PlanTier.BASIC,
        is_admin=bool(row.is_admin),
        is_active=bool(row.is_active),
        last_login_at=row.last_login_at,
    )


def get_user(user_id: str, session: Optional[Session] = None) -> Optional[User]:
    with session_scope(session) as s:
        row = s.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
        if not row:
            return None
        return _to_user(row)


def get_or_create_user(user_id: str, email: Optional[str] = None, full_name: Optional[str] = None) -> User:
    existing = get_user(user_id)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    with get_db_session() as session:
        session.execute(
            insert(app_users).values(
                user_id=user_id,
                email=email,
                full_name=full_name,
                current_plan=PlanTier.BASIC.value,
                is_admin=False,
                is_active=1,
                created_at=now,
                updated_at=now,
            )
        )

    return User(user_id=user_id, created_at=now, email=email, full_name=full_name)


def update_user_plan(user_id: str, plan: PlanTier, session: Optional[Session] = None) -> None:
    with session_scope(session) as s:
        s.execute(
            update(app_users)
            .where(app_users.c.user_id == user_id)
            .values(current_plan=PlanTier(plan).value, updated_at=datetime.now(timezone.utc))
        )
