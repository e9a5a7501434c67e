"""FastAPI application entry point: WhatsApp Session Gateway"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import settings, validate_settings, resolve_path
from src.core.logging import log, setup_logging
from src.core.exceptions import AppException, InternalError
from src.api.dependencies import DBSession
from src.api.routes import api_keys, gateway, groups, messages, sessions, system
from src.db.base import DATABASE_PATH
from src.db.migrate import run_migrations
from src.db.session import async_session_factory, check_database
from src.store.api_keys import ensure_default_api_key
from src.whatsapp.dispatcher import MessageDispatcher
from src.whatsapp.events import EventBridge
from src.whatsapp.gateway import GatewayClientFactory
from src.whatsapp.ratelimit import RateLimiter
from src.whatsapp.registry import ClientFactory, SessionRegistry
from src.whatsapp.sessions import restore_sessions

VERSION = "1.0.0"


def build_components(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    client_factory: ClientFactory,
) -> None:
    """Wire limiter, registry, event bridge and dispatcher onto `app.state`."""
    rate_limiter = RateLimiter(
        limit=settings.RATE_LIMIT_MESSAGES,
        window=float(settings.RATE_LIMIT_WINDOW),
        min_interval=settings.RATE_LIMIT_MIN_INTERVAL_MS / 1000,
    )
    registry = SessionRegistry(
        client_factory=client_factory,
        sessions_path=resolve_path(settings.SESSIONS_PATH),
        reconnect_max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        reconnect_base_delay=float(settings.RECONNECT_BASE_DELAY),
        reconnect_max_delay=float(settings.RECONNECT_MAX_DELAY),
    )
    registry.event_bridge = EventBridge(session_factory, registry)
    dispatcher = MessageDispatcher(
        session_factory, registry, send_timeout=float(settings.SEND_TIMEOUT)
    )

    app.state.rate_limiter = rate_limiter
    app.state.registry = registry
    app.state.dispatcher = dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging(
        debug=settings.DEBUG,
        log_format=settings.LOG_FORMAT,
        logs_dir=resolve_path(settings.get("LOGS_DIR", "logs")),
    )
    log.info(f"Starting {settings.APP_NAME}...")
    log.info(f"Environment: {settings.current_env}")
    validate_settings()

    await run_migrations(DATABASE_PATH)

    async with async_session_factory() as db:
        await ensure_default_api_key(db, settings.API_KEY or None)

    client_factory = GatewayClientFactory(
        base_url=settings.GATEWAY_URL,
        api_key=settings.GATEWAY_API_KEY,
        callback_url=f"{settings.PUBLIC_URL.rstrip('/')}{settings.API_PREFIX}/gateway/events",
        timeout=float(settings.GATEWAY_TIMEOUT),
    )
    build_components(app, async_session_factory, client_factory)

    cleanup_task = asyncio.create_task(
        app.state.rate_limiter.run_cleanup(settings.RATE_LIMIT_CLEANUP_INTERVAL),
        name="rate-limit-cleanup",
    )

    if settings.RESTORE_SESSIONS_ON_STARTUP:
        # In the background: the gateway calls back into this app while restoring
        asyncio.create_task(
            restore_sessions(async_session_factory, app.state.registry),
            name="restore-sessions",
        )

    log.info(f"{settings.APP_NAME} ready on port {settings.PORT}")

    yield

    log.info("Shutting down...")
    cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup_task
    await app.state.registry.shutdown()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="REST API for multi-tenant WhatsApp sessions",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log all requests."""
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        request.state.request_id = request_id

        with log.contextualize(request_id=request_id):
            log.info(
                "Request started",
                method=request.method,
                path=request.url.path,
            )
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000
            log.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

        response.headers["X-Request-ID"] = request_id
        return response

    def error_response(exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error_code, "message": exc.message, "details": exc.details},
            headers=exc.headers,
        )

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        """Handle application exceptions."""
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "error": "VALIDATION_ERROR",
                "message": errors[0]["message"] if errors else "Invalid request",
                "details": {"errors": errors},
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
        message = exc.detail if exc.status_code != 404 else "Endpoint not found"
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": code,
                "message": message,
                "details": {"path": request.url.path, "method": request.method},
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        log.exception("Unhandled exception")
        details = None
        if settings.DEBUG or str(settings.current_env).upper() != "PRODUCTION":
            details = {"exception": exc.__class__.__name__, "detail": str(exc)}
        return error_response(InternalError(details=details))

    # Routes
    app.include_router(sessions.router, prefix=f"{settings.API_PREFIX}/sessions", tags=["sessions"])
    app.include_router(messages.router, prefix=f"{settings.API_PREFIX}/sessions", tags=["messages"])
    app.include_router(groups.router, prefix=f"{settings.API_PREFIX}/sessions", tags=["groups"])
    app.include_router(api_keys.router, prefix=f"{settings.API_PREFIX}/api-keys", tags=["api-keys"])
    app.include_router(gateway.router, prefix=f"{settings.API_PREFIX}/gateway", tags=["gateway"])
    app.include_router(system.router, prefix=settings.API_PREFIX, tags=["system"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "app": settings.APP_NAME, "version": VERSION}

    @app.get("/ready")
    async def readiness_check(request: Request, db: DBSession):
        """Database reachable and registry wired."""
        database_ok = await check_database(db)

        registry = getattr(request.app.state, "registry", None)
        ready = database_ok and registry is not None
        return JSONResponse(
            status_code=200 if ready else 503,
            content={
                "status": "ready" if ready else "not_ready",
                "database": "ok" if database_ok else "unavailable",
                "whatsapp": registry.stats() if registry is not None else None,
            },
        )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": settings.APP_NAME,
            "version": VERSION,
            "docs": "/docs" if settings.DEBUG else None,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.main:app", host="0.0.0.0", port=settings.PORT, reload=settings.DEBUG)
