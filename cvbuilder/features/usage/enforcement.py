"""
cvbuilder/features/usage/enforcement.py

Request-level plan enforcement, expressed as FastAPI dependencies.

- enforce_usage_limits(usage_type): quota check before the handler runs,
  counter increment after a successful (2xx/3xx) response
- enforce_template_access(): premium template gate
- track_feature_usage(feature_type, feature_name): per-invocation usage log

Post-response work is registered with register_post_response_hook and runs
only on routes using HookedRoute.
"""

import time
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from cvbuilder.core.auth import get_optional_user_id
from cvbuilder.core.config import settings
from cvbuilder.core.errors import (
    AppError,
    NoActivePlanError,
    NotFoundError,
    PermissionError,
    UnauthorizedError,
    UsageLimitError,
)
from cvbuilder.core.logging import get_logger
from cvbuilder.core.routing import register_post_response_hook
from cvbuilder.features.audit.service import AuditLogger, get_audit_logger
from cvbuilder.features.documents.service import get_template
from cvbuilder.features.plans.service import get_current_usage_limits, increment_usage
from cvbuilder.features.usage.service import check_usage_limit, is_successful_status, record_feature_usage
from cvbuilder.features.users.service import get_user
from cvbuilder.models.document import Template
from cvbuilder.models.plan import PlanTier
from cvbuilder.models.plan_usage import PlanUsageLimits, UsageType, USAGE_COUNTERS

logger = get_logger("UsageEnforcement")


async def request_json_body(request: Request) -> Dict[str, Any]:
    """JSON object body of the request, or {} when absent or not an object."""
    if request.method in ("GET", "HEAD", "DELETE"):
        return {}
    try:
        body = await request.json()
    except Exception:
        return {}
    return body if isinstance(body, dict) else {}


def _first(*values: Optional[Any]) -> Optional[str]:
    for value in values:
        if value:
            return str(value)
    return None


def enforce_usage_limits(usage_type: str):
    """
    Build a dependency enforcing the caller's quota for usage_type.

    Raises ValueError immediately for an unknown usage type.
    """
    usage = UsageType(usage_type)
    _, label = USAGE_COUNTERS[usage]

    def usage_limit_dependency(
        request: Request,
        user_id: Optional[str] = Depends(get_optional_user_id),
        audit: AuditLogger = Depends(get_audit_logger),
    ) -> PlanUsageLimits:
        if not user_id:
            raise UnauthorizedError("Authentication required")

        try:
            limits = get_current_usage_limits(user_id)
        except Exception:
            logger.error(
                "Usage limit check failed",
                exc_info=True,
                extra={"meta": {"user_id": user_id, "usage_type": usage.value}},
            )
            raise AppError("Failed to check usage limits", code="usage_check_failed", status_code=500)

        if limits is None:
            raise NoActivePlanError("Please purchase a plan to use this feature")

        counter = check_usage_limit(limits, usage)
        if counter.reached:
            snapshot = limits.snapshot()
            logger.warning(
                "Usage limit reached",
                extra={"meta": {"user_id": user_id, "usage_type": usage.value, "used": counter.used, "limit": counter.limit}},
            )
            audit.log_user_action(
                user_id,
                "usage_limit_reached",
                entity_type="usage_limit",
                entity_id=str(limits.id),
                metadata={"usage_type": usage.value, "limits": snapshot},
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
            raise UsageLimitError(
                f"You have reached your {label} limit ({counter.limit}). Upgrade your plan for more.",
                extra={"limits": snapshot, "upgrade_url": settings.UPGRADE_URL},
            )

        def increment_on_success(status_code: int) -> None:
            if not is_successful_status(status_code):
                return
            if not increment_usage(user_id, usage):
                logger.warning(
                    "No current usage record to increment",
                    extra={"meta": {"user_id": user_id, "usage_type": usage.value}},
                )

        register_post_response_hook(request, increment_on_success)
        return limits

    return usage_limit_dependency


def enforce_template_access():
    """
    Build a dependency gating premium templates.

    The template id comes from the `template_id` path param or the JSON body
    (`templateId` / `template_id`). Requests naming no template pass.
    """

    def template_access_dependency(
        request: Request,
        user_id: Optional[str] = Depends(get_optional_user_id),
        body: Dict[str, Any] = Depends(request_json_body),
    ) -> Optional[Template]:
        template_id = _first(
            request.path_params.get("template_id"),
            body.get("templateId"),
            body.get("template_id"),
        )
        if not template_id:
            return None

        template = get_template(template_id)
        if template is None:
            raise NotFoundError("Template not found")
        if not template.is_premium:
            return template

        if not user_id:
            raise UnauthorizedError("Authentication required")

        limits = get_current_usage_limits(user_id)
        if limits is None:
            raise NoActivePlanError("Please purchase a plan to access premium templates")

        if not limits.allows_premium_templates:
            raise PermissionError(
                "Premium templates require a Pro or Premium plan",
                code="premium_template_required",
                extra={"upgrade_url": settings.UPGRADE_URL},
            )
        return template

    return template_access_dependency


def track_feature_usage(feature_type: str, feature_name: str):
    """
    Build a dependency appending one feature_usage_tracking row per request.

    Anonymous callers are not tracked. Handlers may set request.state.cv_id
    when the CV id is only known after the handler runs.
    """

    def feature_usage_dependency(
        request: Request,
        user_id: Optional[str] = Depends(get_optional_user_id),
        body: Dict[str, Any] = Depends(request_json_body),
    ) -> None:
        if not user_id:
            return

        started = time.perf_counter()
        template_id = _first(
            request.path_params.get("template_id"),
            body.get("templateId"),
            body.get("template_id"),
        )
        metadata = {
            "method": request.method,
            "path": request.url.path,
            "user_agent": request.headers.get("user-agent"),
        }

        def record(status_code: int) -> None:
            ok = is_successful_status(status_code)
            user = get_user(user_id)
            plan = user.current_plan if user else PlanTier.BASIC
            cv_id = _first(
                request.path_params.get("cv_id"),
                getattr(request.state, "cv_id", None),
                body.get("cvId"),
                body.get("cv_id"),
            )
            record_feature_usage(
                user_id,
                feature_type,
                feature_name,
                was_successful=ok,
                cv_id=cv_id,
                template_id=template_id,
                plan_at_usage=PlanTier(plan).value,
                error_details=None if ok else f"HTTP {status_code}",
                processing_time_ms=int((time.perf_counter() - started) * 1000),
                metadata=metadata,
            )

        register_post_response_hook(request, record)

    return feature_usage_dependency
