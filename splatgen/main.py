"""FastAPI application entrypoint."""

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware

from splatgen.api import router as api_router
from splatgen.api.dependencies import get_auth_dependency
from splatgen.core.config import settings
from splatgen.core.errors import GenerationInProgressError, NotFoundError, SplatError, UnsupportedFormatError
from splatgen.core.logging import configure_logging, get_logger
from splatgen.services.artifact_store import SPLAT_DIRECTORY

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ForwardedProtoMiddleware(BaseHTTPMiddleware):
    """Respect X-Forwarded-Proto so generated URLs use the correct scheme behind proxies."""

    async def dispatch(self, request, call_next):
        forwarded_proto = request.headers.get("x-forwarded-proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto
        return await call_next(request)


app.add_middleware(ForwardedProtoMiddleware)

app.include_router(api_router.api_router, prefix=settings.api_v1_prefix)

app.mount(
    f"/files/{SPLAT_DIRECTORY}",
    StaticFiles(directory=settings.storage_root / SPLAT_DIRECTORY, check_dir=False),
    name="splat-files",
)


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"status": "error", "message": exc.message},
    )


@app.exception_handler(GenerationInProgressError)
def handle_in_progress(request: Request, exc: GenerationInProgressError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"status": "processing", "message": exc.message},
    )


@app.exception_handler(UnsupportedFormatError)
def handle_unsupported_format(request: Request, exc: UnsupportedFormatError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"status": "error", "message": exc.message},
    )


@app.exception_handler(SplatError)
def handle_splat_error(request: Request, exc: SplatError) -> JSONResponse:
    logger.error("splat_request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "message": exc.message},
    )


@app.get("/healthz", tags=["health"])
def health_check() -> dict:
    """Simple health probe endpoint."""

    logger.debug("health_check_invoked")
    return {"status": "ok", "environment": settings.environment}


@app.get("/auth-check", tags=["health"], dependencies=[Depends(get_auth_dependency)])
def auth_check() -> dict:
    """Endpoint to verify API auth configuration."""

    return {"status": "authorized"}
