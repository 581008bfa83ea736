"""Video Clipper Service - Main FastAPI Application."""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clipper.config import settings
from clipper.routes import download, transform, health
from clipper.services import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    logger.info(f"Video Clipper Service starting on port {settings.PORT}")

    # Verify yt-dlp is available
    try:
        import yt_dlp
        logger.info(f"yt-dlp version: {yt_dlp.version.__version__}")
    except ImportError as e:
        raise RuntimeError("yt-dlp not installed") from e

    from clipper.services.ffmpeg import ffmpeg_available
    if not ffmpeg_available():
        logger.error(f"{settings.FFMPEG_BINARY} not found - merge, clip and burn will fail")

    Path(settings.TEMP_DIR).mkdir(parents=True, exist_ok=True)
    logger.info(f"Temp directory: {settings.TEMP_DIR}")

    yield

    logger.info("Video Clipper Service shutting down")

    # Sweep workspaces left behind by a crashed process
    from clipper.services.staging import cleanup_old_workspaces
    cleanup_old_workspaces(max_age_hours=1)


# Create FastAPI app
app = FastAPI(
    title="Video Clipper Service",
    description="YouTube acquisition, clipping and subtitle burning with ffmpeg",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

# Browser clients call from any origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render errors as `{error, details?}` rather than FastAPI's `{detail}`."""
    if isinstance(exc.detail, dict):
        body = exc.detail
    elif exc.status_code == 405:
        body = {"error": "Method not allowed"}
    else:
        body = {"error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or invalid request fields are a 400, not FastAPI's 422."""
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        if loc and loc[0] not in fields:
            fields.append(loc[0])

    message = f"Missing or invalid fields: {', '.join(fields)}" if fields else "Invalid request body"
    return JSONResponse(
        status_code=400,
        content={"error": message, "details": "; ".join(e.get("msg", "") for e in exc.errors())},
    )


@app.options("/api/{path:path}", include_in_schema=False)
async def preflight(path: str) -> Response:
    """CORS preflight for clients that omit the preflight headers."""
    return Response(status_code=200)


# Include routers
app.include_router(download.router)
app.include_router(transform.router)
app.include_router(health.router)


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint."""
    return {"service": "video-clipper", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clipper.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
