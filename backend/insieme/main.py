"""
Insieme Backend - Main FastAPI Application

Worksheet generation and grading service.
Version: 2.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient

from .config.settings import settings
from .context import ServiceContext
from .errors import InsiemeError
from .routes.grading_routes import create_grading_routes
from .routes.problem_routes import create_problem_routes
from .routes.worksheet_routes import create_worksheet_routes
from .services import GeminiBackend, GeminiFileIngestion, WorksheetOrchestrationService
from .store import DocumentStore, create_indexes

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def _connect() -> ServiceContext:
    """Connect MongoDB and Gemini and bundle them into a context."""
    settings.validate()
    logger.info("✅ Settings validated")

    client = AsyncIOMotorClient(
        settings.MONGODB_URL,
        maxPoolSize=50,
        serverSelectionTimeoutMS=5000,
    )

    # Test connection
    await client.server_info()
    db = client[settings.DATABASE_NAME]
    logger.info(f"✅ Connected to MongoDB: {settings.DATABASE_NAME}")

    await create_indexes(db, settings)
    logger.info("✅ Database indexes created")

    return ServiceContext(
        store=DocumentStore(db),
        ai_backend=GeminiBackend(),
        file_ingestion=GeminiFileIngestion(),
        settings=settings,
    )


def create_app(context: Optional[ServiceContext] = None) -> FastAPI:
    """
    Build the application.

    Args:
        context: Pre-built collaborators; when omitted MongoDB and Gemini
            are connected at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan context manager for startup/shutdown."""
        # STARTUP
        logger.info("🚀 Insieme Backend Starting Up...")
        owned_context = None

        if getattr(app.state, "orchestrator", None) is None:
            try:
                owned_context = await _connect()
            except Exception as e:
                logger.error(f"❌ Startup failed: {e}")
                raise
            app.state.context = owned_context
            app.state.orchestrator = WorksheetOrchestrationService(owned_context)

        logger.info("✅ Application startup complete")

        yield

        # SHUTDOWN
        logger.info("🛑 Shutting down...")
        if owned_context is not None:
            owned_context.store.db.client.close()
            logger.info("✅ Database connection closed")

    app = FastAPI(
        title="Insieme API",
        description="AI-generated worksheets with partial-credit grading",
        version="2.0.0",
        lifespan=lifespan,
    )

    if context is not None:
        app.state.context = context
        app.state.orchestrator = WorksheetOrchestrationService(context)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InsiemeError)
    async def insieme_error_handler(request: Request, exc: InsiemeError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.url.path}: {exc}")
        else:
            logger.info(f"{request.url.path} rejected: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.reason, "message": exc.public_message},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()]
        logger.info(f"{request.url.path} rejected, invalid fields: {fields}")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "missing_field",
                "message": "The request is missing required information.",
                "fields": fields,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"❌ Unhandled error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "internal_error", "message": "Something went wrong. Please try again."},
        )

    # Health check endpoint
    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": "2.0.0",
            "service": "Insieme API",
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": "Insieme",
            "version": "2.0.0",
            "docs": "/docs",
            "health": "/api/health",
        }

    app.include_router(create_worksheet_routes())
    app.include_router(create_grading_routes())
    app.include_router(create_problem_routes())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "insieme.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
