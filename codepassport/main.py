"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codepassport.api.v1 import router as v1_router
from codepassport.core.config import Settings, get_settings
from codepassport.core.database import build_engine, build_session_factory
from codepassport.services.pipeline import ScanPipeline
from codepassport.services.scan_repository import ScanRepository
from codepassport.services.worker_pool import ScanWorkerPool

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app; components are created once and shared through app.state."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = None
        if settings.RUN_EMBEDDED_WORKERS:
            pipeline = ScanPipeline.from_settings(settings, app.state.scan_repository)
            pool = ScanWorkerPool(
                app.state.scan_repository,
                pipeline,
                concurrency=settings.WORKER_CONCURRENCY,
                poll_interval_sec=settings.WORKER_POLL_INTERVAL_SEC,
            )
            pool.start()
        app.state.worker_pool = pool
        try:
            yield
        finally:
            if pool is not None:
                pool.stop()
                pipeline.publisher.close()
            app.state.engine.dispose()

    app = FastAPI(
        title="CodePassport API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.scan_repository = ScanRepository.from_settings(session_factory, settings)
    app.state.worker_pool = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_ENV == "dev" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {"message": "CodePassport API"}

    return app


app = create_app()
