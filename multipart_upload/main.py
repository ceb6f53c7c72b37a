"""
Main FastAPI application entry point
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router, register_error_handlers
from .core import Base, engine, SessionLocal, settings, build_session_factory
from .services import (
    FinalizedObjectRepository,
    MultipartUploadService,
    ObjectStoreGateway,
    S3ObjectStoreGateway,
    SqlTaskStore,
    UploadOrchestrator,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(
    store: Optional[ObjectStoreGateway] = None,
    db_engine=None,
    config=None,
) -> FastAPI:
    """
    Build the application.

    Args:
        store: Object store gateway; an S3ObjectStoreGateway is built when omitted
        db_engine: SQLAlchemy engine; the module default when omitted
        config: Settings instance; the module singleton when omitted
    """
    config = config or settings
    db_engine = db_engine or engine
    session_factory = SessionLocal if db_engine is engine else build_session_factory(db_engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown"""
        logger.info("🚀 Starting Multipart Upload Service...")

        Base.metadata.create_all(bind=db_engine)
        logger.info("✅ Database tables created/verified")

        gateway = store
        if gateway is None:
            gateway = S3ObjectStoreGateway(config)
            gateway.ensure_bucket()

        task_store = SqlTaskStore(session_factory)
        uploads = MultipartUploadService(gateway, FinalizedObjectRepository(session_factory), config)
        orchestrator = UploadOrchestrator(uploads, gateway, task_store, config=config)
        orchestrator.start()

        app.state.upload_service = uploads
        app.state.orchestrator = orchestrator

        logger.info(f"🌐 Server ready at http://{config.SERVER_HOST}:{config.SERVER_PORT}")
        logger.info(f"📖 API docs at http://{config.SERVER_HOST}:{config.SERVER_PORT}/docs")

        yield

        logger.info("🛑 Shutting down Multipart Upload Service...")
        orchestrator.shutdown(wait=True)

    app = FastAPI(
        title=config.APP_TITLE,
        description=config.APP_DESCRIPTION,
        version=config.APP_VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": config.APP_TITLE,
            "version": config.APP_VERSION,
            "status": "running",
            "docs": "/docs",
            "health": "/health"
        }

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        orchestrator = app.state.orchestrator
        return {
            "status": "healthy",
            "workers": "running" if orchestrator.pool.started else "stopped",
            "tracked_uploads": len(orchestrator.progress),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
