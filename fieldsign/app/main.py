"""
FastAPI entrypoint for the field burn-in service.

The HTTP layer is a thin adapter: it decodes transport payloads, calls
the core (transformer, burner, recorder) and wraps every outcome in the
``{success, message, data}`` envelope. Domain errors become structured
failures; nothing ever returns a partial success.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from fieldsign.app.api.routes import files_router, router as burn_router
from fieldsign.app.core.config import Settings, get_settings
from fieldsign.app.core.errors import FieldSignError, InternalError, ValidationError
from fieldsign.app.schemas.transport import ErrorEnvelope
from fieldsign.app.services.audit_sink import JsonlAuditSink
from fieldsign.app.services.hash_chain import HashChainRecorder
from fieldsign.app.services.storage import ArtifactStore

logger = logging.getLogger("fieldsign.main")


def get_app_version() -> str:
    try:
        return version("fieldsign")
    except PackageNotFoundError:
        return "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info(
        "fieldsign_startup",
        extra={
            "version": get_app_version(),
            "storage_dir": str(app.state.store.root),
            "audit_log": str(settings.resolved_audit_log_path),
            "clamp_page_index": settings.clamp_page_index,
        },
    )
    try:
        yield
    finally:
        logger.info("fieldsign_shutdown")


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

def _error_response(status_code: int, body: ErrorEnvelope) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


async def domain_error_handler(request: Request, exc: FieldSignError) -> ORJSONResponse:
    if isinstance(exc, InternalError):
        body = ErrorEnvelope(
            message="Internal server error while processing PDF",
            error=exc.message,
            error_type=type(exc).__name__,
        )
    else:
        logger.warning(
            "request_rejected",
            extra={
                "path": request.url.path,
                "error_type": type(exc).__name__,
                "context": exc.context,
            },
        )
        body = ErrorEnvelope(
            message=exc.message,
            error_type=type(exc).__name__,
            context=exc.context or None,
        )

    return _error_response(exc.status_code, body)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    problems = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))

    return _error_response(
        400,
        ErrorEnvelope(
            message="Invalid request: " + "; ".join(problems),
            error_type=ValidationError.__name__,
        ),
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.getLogger("fieldsign").setLevel(settings.log_level)

    app = FastAPI(
        title="fieldsign",
        description=(
            "Burns placed fields and signatures into PDF documents and "
            "records a hash chain of every transformation."
        ),
        version=get_app_version(),
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = ArtifactStore(settings.storage_dir)
    app.state.recorder = HashChainRecorder(
        JsonlAuditSink(settings.resolved_audit_log_path)
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_exception_handler(FieldSignError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(burn_router)
    app.include_router(files_router)

    @app.get("/healthz", tags=["Monitoring"], summary="Liveness probe")
    async def health_check():
        return {
            "status": "ok",
            "service": "fieldsign",
            "version": app.version,
            "runtime": f"python {sys.version.split()[0]}",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
