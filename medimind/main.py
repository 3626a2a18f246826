"""
MediMind - FastAPI Application

Server side of the medical document assistant: the model gateway that
holds the provider credential, plus document upload.

IMPORTANT: This is NOT a diagnostic tool.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from medimind.config import settings
from medimind.api.routes import INVALID_ACTION, router
from medimind.api.middleware import (
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    setup_rate_limiting
)
from medimind.core.gateway import MissingCredentialError
from medimind.utils.logger import get_logger, configure_logging

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    configure_logging(
        log_level=settings.log_level,
        json_format=not settings.debug
    )

    logger.info(
        "Starting MediMind",
        version=settings.app_version,
        debug=settings.debug,
        gateway_configured=bool(settings.gemini_api_key)
    )
    if not settings.gemini_api_key:
        logger.warning("No API key configured; gateway requests will fail")

    yield

    logger.info("Shutting down MediMind")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="""
## MediMind - Medical Document Assistant

Upload medical documents, get summaries, ask questions answered with a
generate-verify-correct loop, and listen to answers read aloud.

### ⚠️ Important Disclaimer

**This is NOT a diagnostic tool.** Always consult a healthcare provider.

### API Endpoints

| Endpoint | Method | Description |
|----------|--------|-------------|
| `/api/gemini-proxy` | POST | Model gateway (`{action, payload}`) |
| `/documents` | POST | Read an uploaded document |
| `/health` | GET | Health check |
        """,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.debug else None,
    )

    # First added is innermost; error handling ends up outermost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)

    @app.exception_handler(MissingCredentialError)
    async def missing_credential_handler(request: Request, exc: MissingCredentialError):
        logger.error("Gateway called without a configured API key")
        return JSONResponse(status_code=500, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Malformed request", path=request.url.path, error_count=len(exc.errors()))
        if request.url.path == "/api/gemini-proxy":
            message = INVALID_ACTION
        else:
            message = "Invalid request."
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None)
        )

    setup_rate_limiting(app)

    app.include_router(router)

    return app


app = create_app()


# Run with: uvicorn medimind.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "medimind.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
