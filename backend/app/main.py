import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from app.core.cache import CacheStore, CreateRedisClient
from app.core.errors import RegisterErrorHandlers
from app.core.logging import setup_logging
from app.core.migrations import RunMigrations
from app.core.settings import LoadSettings, Settings
from app.db import BuildConnectionUrl, CreateDbEngine, CreateSessionFactory
from app.modules.auth.router import router as auth_router
from app.modules.core.router import router as core_router
from app.modules.notes.routes.notes import router as notes_router
from app.modules.notes.services.notes_service import NotesService

logger = logging.getLogger("app.request")
startup_logger = logging.getLogger("app.startup")


def CreateApp(
    settings: Settings | None = None,
    session_factory: sessionmaker | None = None,
    cache: CacheStore | None = None,
) -> FastAPI:
    """Build the API with its storage handles on `app.state`.

    Tests pass their own session factory and cache; production builds both
    from settings.
    """
    settings = settings or LoadSettings()

    if settings.RunMigrationsOnStartup:
        RunMigrations(BuildConnectionUrl(settings))

    if session_factory is None:
        session_factory = CreateSessionFactory(CreateDbEngine(settings))
    if cache is None:
        cache = CacheStore(CreateRedisClient(settings))

    app = FastAPI(title="Notekeeper API")
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.cache = cache
    app.state.notes_service = NotesService(session_factory, cache, settings)

    if settings.AllowedOrigins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.AllowedOrigins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        parts = [f"{request.method} {request.url.path}"]
        if request.url.query:
            parts.append(f"query={request.url.query}")

        status = response.status_code
        if status >= 500:
            parts.append("ERROR: server error")
        elif status >= 400:
            parts.append("ERROR: client error")
        parts.append(f"status={status}")
        parts.append(f"{duration_ms}ms")

        log_msg = " | ".join(parts)
        if status >= 500:
            logger.error(log_msg)
        elif status >= 400:
            logger.warning(log_msg)
        else:
            logger.info(log_msg)

        response.headers["X-Request-Id"] = request_id
        return response

    RegisterErrorHandlers(app)
    app.include_router(core_router)
    app.include_router(auth_router)
    app.include_router(notes_router)

    startup_logger.info("startup complete")
    return app


def BuildApp() -> FastAPI:
    """Entry point for `uvicorn app.main:BuildApp --factory`."""
    setup_logging()
    return CreateApp()
