"""
cvbuilder/features/documents/service.py

Templates and CV / cover letter documents.

Documents are owned by one user; every read or write outside of creation
checks ownership and raises NotFoundError for other users' documents.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import select, insert, update

from cvbuilder.core.database import get_db_session, templates, cv_documents
from cvbuilder.core.errors import NotFoundError, ValidationError
from cvbuilder.models.document import CvDocument, Template

DOCUMENT_KINDS = ("cv", "cover_letter")


def _to_template(row) -> Template:
    return Template(id=row.id, name=row.name, is_premium=bool(row.is_premium))


def _to_document(row) -> CvDocument:
    return CvDocument(
        id=row.id,
        user_id=row.user_id,
        kind=row.kind,
        title=row.title,
        template_id=row.template_id,
        content=row.content or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def get_template(template_id: str) -> Optional[Template]:
    with get_db_session() as session:
        row = session.execute(select(templates).where(templates.c.id == template_id)).first()
        return _to_template(row) if row else None


def create_template(template_id: str, name: str, is_premium: bool = False) -> Template:
    with get_db_session() as session:
        session.execute(
            insert(templates).values(
                id=template_id,
                name=name,
                is_premium=1 if is_premium else 0,
                created_at=datetime.now(timezone.utc),
            )
        )
    return Template(id=template_id, name=name, is_premium=is_premium)


def list_templates() -> List[Template]:
    with get_db_session() as session:
        rows = session.execute(select(templates).order_by(templates.c.name.asc())).all()
        return [_to_template(row) for row in rows]


def create_document(
    user_id: str,
    kind: str,
    title: str,
    content: Dict[str, Any],
    template_id: Optional[str] = None,
) -> CvDocument:
    if kind not in DOCUMENT_KINDS:
        raise ValidationError(f"Unknown document kind: {kind}")

    now = datetime.now(timezone.utc)
    document_id = str(uuid.uuid4())
    with get_db_session() as session:
        session.execute(
            insert(cv_documents).values(
                id=document_id,
                user_id=user_id,
                kind=kind,
                title=title,
                template_id=template_id,
                content=content,
                created_at=now,
                updated_at=now,
            )
        )
    return CvDocument(
        id=document_id,
        user_id=user_id,
        kind=kind,
        title=title,
        template_id=template_id,
        content=content,
        created_at=now,
        updated_at=now,
    )


def get_document(user_id: str, document_id: str) -> CvDocument:
    """Fetch a document owned by user_id; raises NotFoundError otherwise."""
    with get_db_session() as session:
        row = session.execute(
            select(cv_documents)
            .where(cv_documents.c.id == document_id)
            .where(cv_documents.c.user_id == user_id)
        ).first()
    if not row:
        raise NotFoundError("Document not found")
    return _to_document(row)


def update_document(
    user_id: str,
    document_id: str,
    *,
    title: Optional[str] = None,
    content: Optional[Dict[str, Any]] = None,
    template_id: Optional[str] = None,
) -> CvDocument:
    existing = get_document(user_id, document_id)

    values: Dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
    if title is not None:
        values["title"] = title
    if content is not None:
        values["content"] = content
    if template_id is not None:
        values["template_id"] = template_id

    with get_db_session() as session:
        session.execute(
            update(cv_documents)
            .where(cv_documents.c.id == existing.id)
            .values(**values)
        )
    return get_document(user_id, document_id)


def export_document(user_id: str, document_id: str) -> Dict[str, Any]:
    """JSON export of a document (rendering formats live in the front end)."""
    document = get_document(user_id, document_id)
    return {
        "id": document.id,
        "kind": document.kind,
        "title": document.title,
        "template_id": document.template_id,
        "content": document.content,
        "exported_at": datetime.now(timezone.utc).isoformat(),
    }
