import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import get_settings, Settings
from .core.logging import init_logging, request_context_middleware
from .db.dal import Database
from .db.migrate import apply_migrations
from .core import errors
from .routers import categories, expenses, health, internal, reports
from .services.budget_usage import UsageCacheRefresher
from .services.usage_events import InternalUsageGateway, UsageRefreshNotifier


def create_app(settings_override: Settings | None = None) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB). Falls back to cached get_settings().
    """
    settings = settings_override or get_settings()
    if settings.db_path is None:
        settings.init_post_load()
    # Initialize logging early
    init_logging(debug=settings.debug)

    # Ensure database schema (idempotent) so test-injected fresh DBs have tables
    try:
        apply_migrations(settings.db_path)  # type: ignore[arg-type]
    except Exception:
        logging.getLogger("tripcost").exception("failed to apply migrations on startup")
        raise

    db = Database(settings.db_path, busy_timeout=settings.db_busy_timeout_seconds)
    gateway = InternalUsageGateway(UsageCacheRefresher(db), settings.internal_api_token)
    notifier = UsageRefreshNotifier(
        gateway, settings.internal_api_token, mode=settings.usage_refresh_mode
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        notifier.close()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db
    app.state.usage_gateway = gateway
    app.state.usage_notifier = notifier

    # Middleware (request id / structured logging)
    app.middleware("http")(request_context_middleware)

    # Error handlers
    app.add_exception_handler(errors.DomainError, errors.domain_error_handler)
    app.add_exception_handler(StarletteHTTPException, errors.not_found_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(categories.router)
    app.include_router(expenses.router)
    app.include_router(reports.router)
    app.include_router(internal.router)

    @app.get("/")
    async def root():
        return {"message": settings.app_name, "version": settings.version}

    return app
