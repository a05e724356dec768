"""
brandlens - AI Answer Visibility & Citation Trust Tracker
Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from brandlens import __version__
from brandlens.adapters.llm import EngineRouter
from brandlens.config import Settings, get_settings
from brandlens.errors import PersistenceError, UpstreamError, ValidationError
from brandlens.services.event_bus import EventBus, create_event_bus
from brandlens.services.job_engine import Answerer
from brandlens.services.page_fetcher import PageContentFetcher
from brandlens.services.serper_service import SerperService
from brandlens.utils.database import Database

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the persistence handle once; close what this app opened"""
    database: Database = app.state.database
    opened_here = not database.is_open
    if opened_here:
        await database.open()
        if app.state.settings.is_development:
            await database.create_all()
    logger.info("Database handle opened")

    yield

    await app.state.events.close()
    if opened_here:
        await database.close()
    logger.info("Database handle closed")


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    events: Optional[EventBus] = None,
    answerer: Optional[Answerer] = None,
    search: Optional[SerperService] = None,
    fetcher: Optional[PageContentFetcher] = None,
) -> FastAPI:
    """Factory function to create FastAPI app"""
    settings = settings or get_settings()

    application = FastAPI(
        title="brandlens API",
        description="""
        AI Answer Visibility & Citation Trust Tracker

        Track how AI engines mention your brand against competitors, which
        sources they cite, and how far those citations can be trusted.

        ## Features
        - Analysis jobs across ChatGPT, Gemini, Perplexity and Claude
        - Explainable 0-100 visibility scores
        - Citation ledger with claim verification and domain heatmap
        - Engine authority trends and engine-pair correlations
        - Visibility drop, competitor overtake and sentiment alerts
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Collaborators shared by every request
    application.state.settings = settings
    application.state.database = database or Database.from_settings(settings)
    application.state.events = events or create_event_bus(settings)
    application.state.answerer = answerer or EngineRouter(settings)
    application.state.search = search or SerperService(settings=settings)
    application.state.fetcher = fetcher or PageContentFetcher(settings=settings)

    # CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content={"detail": exc.message, "field": exc.field},
        )

    @application.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        logger.warning(f"Upstream failure from {exc.collaborator}: {exc.message}")
        return JSONResponse(
            status_code=502,
            content={"detail": exc.message, "collaborator": exc.collaborator},
        )

    @application.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure: {exc}")
        return JSONResponse(
            status_code=503,
            content={"detail": "Storage unavailable"},
        )

    # Global exception handler
    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors"""
        if settings.DEBUG:
            return JSONResponse(
                status_code=500,
                content={
                    "detail": str(exc),
                    "type": type(exc).__name__,
                },
            )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Import and include API routes
    from brandlens.api.routes import api_router
    application.include_router(api_router, prefix="/api/v1")

    # Health check
    @application.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.APP_ENV,
            "database": "open" if application.state.database.is_open else "closed",
        }

    return application


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "brandlens.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        workers=1 if settings.is_development else settings.WORKERS,
    )
