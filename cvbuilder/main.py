import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from cvbuilder/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from cvbuilder.core.config import settings, validate_config
from cvbuilder.core.database import create_all_tables
from cvbuilder.core.logging import configure_logging
from cvbuilder.core.middleware.request_id import RequestIdMiddleware
from cvbuilder.core.middleware.request_logging import RequestLoggingMiddleware
from cvbuilder.core.monitoring import ErrorTracker
from cvbuilder.core.validation import validate_env
from cvbuilder.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_error_handler,
    unhandled_exception_handler,
)
from cvbuilder.features.audit.service import build_audit_logger
from cvbuilder.api import documents, health, payments

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("cvbuilder")
    logger.info("Starting CV builder backend...")
    app.state.startup_time = time.time()
    if settings.ENV.lower() != "production":
        try:
            create_all_tables()
        except Exception as e:
            logger.warning(f"Could not create tables on startup: {e}")
    try:
        yield
    finally:
        logging.getLogger("cvbuilder").info("Stopping CV builder backend...")


app = FastAPI(title="CV Builder - Backend", lifespan=lifespan)

app.state.audit_logger = build_audit_logger(settings)
app.state.error_tracker = ErrorTracker(enabled=settings.ENABLE_ERROR_TRACKING)

# Middlewares
app.add_middleware(RequestLoggingMiddleware, enabled=settings.ENABLE_REQUEST_LOGGING)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payments.router, tags=["payments"])
app.include_router(documents.router, tags=["documents"])
app.include_router(health.root_router, tags=["health"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("cvbuilder.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=False)
