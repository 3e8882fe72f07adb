"""
CV, cover letter and template routes.

Every feature route is plan-guarded: quota enforcement runs before the
handler and the usage counter moves only when the handler succeeds.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from cvbuilder.core.auth import get_current_user_id
from cvbuilder.core.config import settings
from cvbuilder.core.errors import NotFoundError
from cvbuilder.core.monitoring import PerformanceMonitor
from cvbuilder.core.routing import HookedRoute
from cvbuilder.features.ai.service import optimize_cv_text
from cvbuilder.features.documents.service import (
    create_document,
    export_document,
    get_document,
    update_document,
)
from cvbuilder.features.usage.enforcement import (
    enforce_template_access,
    enforce_usage_limits,
    track_feature_usage,
)
from cvbuilder.models.document import CvDocument, Template


ai_monitor = PerformanceMonitor("AIOptimization", enabled=settings.ENABLE_PERFORMANCE_MONITORING)

router = APIRouter(prefix="/api", tags=["documents"], route_class=HookedRoute)


class CreateDocumentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=200)
    content: Dict[str, Any] = Field(default_factory=dict)
    template_id: Optional[str] = Field(None, alias="templateId")


class UpdateDocumentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[Dict[str, Any]] = None
    template_id: Optional[str] = Field(None, alias="templateId")


class OptimizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    section: Optional[str] = None
    job_description: Optional[str] = Field(None, alias="jobDescription")


def _document_payload(document: CvDocument) -> Dict[str, Any]:
    return {
        "id": document.id,
        "kind": document.kind,
        "title": document.title,
        "templateId": document.template_id,
        "content": document.content,
        "createdAt": document.created_at.isoformat(),
        "updatedAt": document.updated_at.isoformat() if document.updated_at else None,
    }


@router.post(
    "/cvs",
    status_code=201,
    dependencies=[
        Depends(enforce_template_access()),
        Depends(enforce_usage_limits("cv_generation")),
        Depends(track_feature_usage("cv_generation", "create_cv")),
    ],
)
def create_cv(
    body: CreateDocumentRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    document = create_document(user_id, "cv", body.title, body.content, body.template_id)
    request.state.cv_id = document.id
    return {"success": True, "cv": _document_payload(document)}


@router.patch(
    "/cvs/{cv_id}",
    dependencies=[
        Depends(enforce_template_access()),
        Depends(enforce_usage_limits("edit")),
        Depends(track_feature_usage("edit", "edit_cv")),
    ],
)
def edit_cv(
    cv_id: str,
    body: UpdateDocumentRequest,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    document = update_document(
        user_id,
        cv_id,
        title=body.title,
        content=body.content,
        template_id=body.template_id,
    )
    return {"success": True, "cv": _document_payload(document)}


@router.post(
    "/cvs/{cv_id}/export",
    dependencies=[
        Depends(enforce_usage_limits("export")),
        Depends(track_feature_usage("export", "export_json")),
    ],
)
def export_cv(cv_id: str, user_id: str = Depends(get_current_user_id)) -> Dict[str, Any]:
    return {"success": True, "export": export_document(user_id, cv_id)}


@router.post(
    "/cvs/{cv_id}/optimize",
    dependencies=[
        Depends(enforce_usage_limits("ai_optimization")),
        Depends(track_feature_usage("ai_optimization", "optimize_section")),
    ],
)
async def optimize_cv(
    cv_id: str,
    body: OptimizeRequest,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    # Ownership check before spending a provider call
    await run_in_threadpool(get_document, user_id, cv_id)
    optimized = await ai_monitor.measure(
        "optimize_cv",
        lambda: run_in_threadpool(
            optimize_cv_text, body.text, section=body.section, job_description=body.job_description
        ),
        {"cv_id": cv_id, "section": body.section},
    )
    return {"success": True, "cvId": cv_id, "section": body.section, "optimized": optimized}


@router.post(
    "/cover-letters",
    status_code=201,
    dependencies=[
        Depends(enforce_template_access()),
        Depends(enforce_usage_limits("cover_letter")),
        Depends(track_feature_usage("cover_letter", "create_cover_letter")),
    ],
)
def create_cover_letter(
    body: CreateDocumentRequest,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    document = create_document(user_id, "cover_letter", body.title, body.content, body.template_id)
    return {"success": True, "coverLetter": _document_payload(document)}


@router.get("/templates/{template_id}")
def get_template_route(
    template_id: str,
    template: Optional[Template] = Depends(enforce_template_access()),
) -> Dict[str, Any]:
    if template is None:
        raise NotFoundError("Template not found")
    return {
        "success": True,
        "template": {"id": template.id, "name": template.name, "isPremium": template.is_premium},
    }
