import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from user_service.auth.google import GoogleOAuthClient
from user_service.auth.jwt import TokenService
from user_service.config import Settings, get_settings
from user_service.database import Database
from user_service.errors import InternalError, ServiceError
from user_service.logging_config import configure_logging
from user_service.routes import access, auth, users

logger = logging.getLogger(__name__)


def _error_body(request: Request, error: str, message: str) -> dict:
    body = {"error": error, "message": message}
    if request.url.path.startswith("/api/auth"):
        body = {"success": False, **body}
    return body


def _describe_validation_error(exc: RequestValidationError) -> str:
    missing = [str(err["loc"][-1]) for err in exc.errors() if err.get("type") == "missing"]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        details.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(details) or "Invalid request"


def _render(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.error, exc.message),
        headers={"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _render(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(request, "validation_error", _describe_validation_error(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        error = "not_found" if exc.status_code == 404 else "http_error"
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, error, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("%s %s database error", request.method, request.url.path, exc_info=exc)
        return _render(request, InternalError("A database error occurred"))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled application error", exc_info=exc)
        return _render(request, InternalError())


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    google_client: Optional[GoogleOAuthClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    database = database or Database(settings)
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Environment check: %s", settings.secret_report())
        await database.connect()
        await database.create_all()
        logger.info("%s ready; API documentation at /api-docs", settings.APP_NAME)
        try:
            yield
        finally:
            await database.disconnect()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="RESTful API for User Management - Auth & User Service",
        debug=settings.DEBUG,
        docs_url="/api-docs",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.token_service = TokenService.from_settings(settings)
    app.state.google_client = google_client or GoogleOAuthClient(settings)

    # CORS configuration - a single origin from the environment, or all origins
    allowed_origins = [settings.CORS_ORIGIN] if settings.CORS_ORIGIN != "*" else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Holds only the OAuth state between the redirect and the callback
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="user_service_session",
        max_age=24 * 60 * 60,
        https_only=settings.PUBLIC_BASE_URL.startswith("https://"),
    )

    register_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    async def health():
        return {
            "status": "UP",
            "service": settings.SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "documentation": "/api-docs",
        }

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(access.router)
    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("user_service.main:create_app", factory=True, host="0.0.0.0", port=settings.PORT)
