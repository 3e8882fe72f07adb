from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.testclient import TestClient

from cvbuilder.core.errors import AppError, NotFoundError, app_error_handler
from cvbuilder.core.routing import HookedRoute, register_post_response_hook


def _make_app(seen):
    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)
    router = APIRouter(route_class=HookedRoute)

    def record_status(request: Request):
        register_post_response_hook(request, lambda status: seen.append(status))

    @router.get("/ok", dependencies=[Depends(record_status)])
    def ok():
        return {"ok": True}

    @router.get("/created", dependencies=[Depends(record_status)])
    def created():
        return JSONResponse({"ok": True}, status_code=201)

    @router.get("/redirect", dependencies=[Depends(record_status)])
    def redirect():
        return RedirectResponse("/ok", status_code=302)

    @router.get("/missing", dependencies=[Depends(record_status)])
    def missing():
        raise NotFoundError("nothing here")

    @router.get("/http-error", dependencies=[Depends(record_status)])
    def http_error():
        raise HTTPException(status_code=409, detail="conflict")

    @router.get("/explicit-error", dependencies=[Depends(record_status)])
    def explicit_error():
        return JSONResponse({"error": "bad"}, status_code=422)

    @router.get("/broken-hook")
    def broken_hook(request: Request):
        def explode(status):
            raise RuntimeError("hook failure")

        register_post_response_hook(request, explode)
        register_post_response_hook(request, lambda status: seen.append(status))
        return {"ok": True}

    app.include_router(router)
    return app


def test_hooks_see_success_status():
    seen = []
    client = TestClient(_make_app(seen))

    assert client.get("/ok").status_code == 200
    assert client.get("/created").status_code == 201
    assert client.get("/redirect", follow_redirects=False).status_code == 302
    assert seen == [200, 201, 302]


def test_hooks_see_status_of_raised_errors():
    seen = []
    client = TestClient(_make_app(seen))

    assert client.get("/missing").status_code == 404
    assert client.get("/http-error").status_code == 409
    assert seen == [404, 409]


def test_hooks_see_explicit_error_responses():
    seen = []
    client = TestClient(_make_app(seen))

    assert client.get("/explicit-error").status_code == 422
    assert seen == [422]


def test_failing_hook_does_not_affect_response_or_other_hooks():
    seen = []
    client = TestClient(_make_app(seen))

    resp = client.get("/broken-hook")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert seen == [200]
