import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crm_search.config import settings
from crm_search.database import Base, engine
from crm_search.exception_handlers import register_exception_handlers
from crm_search.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from crm_search.middleware.tenant import TenantContextMiddleware
from crm_search.routes import search
from crm_search.services.search_service import get_search_service

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    setup_structured_logging(settings.log_level, json_format=settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        description="Federated search across CRM leads, deals, customers, segments, tickets and conversations",
        debug=settings.debug,
        version=settings.app_version,
    )

    # Starlette middleware is LIFO: tenant context runs before request logging reads it back
    app.add_middleware(TenantContextMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(search.router, prefix="/api/v1/crm/search", tags=["CRM Search"])

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Starting {settings.app_name} in {settings.environment} mode")
        if settings.debug:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created (if not existing).")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down, flushing pending search history...")
        await get_search_service().drain_background_tasks()

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "version": settings.app_version}

    if settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    return app


app = create_app()
