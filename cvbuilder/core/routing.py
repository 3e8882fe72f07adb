"""
Route class with post-response hooks.

Dependencies register callables with register_post_response_hook(); once the
endpoint has produced its final status code each hook is called with it.

- Handler returned a response: hooks run as background tasks after the
  response is sent.
- Handler raised: hooks run inline with the exception's status code, then
  the exception propagates to the registered handlers.
"""

from typing import Callable, List

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from starlette.background import BackgroundTasks
from starlette.exceptions import HTTPException

from cvbuilder.core.errors import AppError
from cvbuilder.core.logging import get_logger

logger = get_logger("Routing")

PostResponseHook = Callable[[int], None]


def register_post_response_hook(request: Request, hook: PostResponseHook) -> None:
    hooks = getattr(request.state, "post_response_hooks", None)
    if hooks is None:
        hooks = []
        request.state.post_response_hooks = hooks
    hooks.append(hook)


def _pop_hooks(request: Request) -> List[PostResponseHook]:
    hooks = getattr(request.state, "post_response_hooks", None) or []
    request.state.post_response_hooks = []
    return hooks


def status_code_for(exc: BaseException) -> int:
    if isinstance(exc, AppError):
        return exc.status_code
    if isinstance(exc, HTTPException):
        return exc.status_code
    if isinstance(exc, RequestValidationError):
        return 400
    return 500


def run_hook(hook: PostResponseHook, status_code: int) -> None:
    """Hooks never affect the response; failures are logged only."""
    try:
        hook(status_code)
    except Exception:
        logger.error(
            "Post-response hook failed",
            exc_info=True,
            extra={"meta": {"hook": getattr(hook, "__name__", repr(hook)), "status": status_code}},
        )


class HookedRoute(APIRoute):
    def get_route_handler(self) -> Callable:
        original_route_handler = super().get_route_handler()

        async def custom_route_handler(request: Request) -> Response:
            try:
                response = await original_route_handler(request)
            except Exception as exc:
                status_code = status_code_for(exc)
                for hook in _pop_hooks(request):
                    run_hook(hook, status_code)
                raise

            hooks = _pop_hooks(request)
            if hooks:
                tasks = BackgroundTasks()
                if response.background is not None:
                    tasks.tasks.append(response.background)
                for hook in hooks:
                    tasks.add_task(run_hook, hook, response.status_code)
                response.background = tasks
            return response

        return custom_route_handler
