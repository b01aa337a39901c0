from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.router import router as api_router
from core.config import config
from core.db import async_session_factory, engine
from core.exceptions.base import CustomException
from core.locks import ClassLockRegistry
from core.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager."""
    logger.info(f"Starting {config.APP_NAME}...")
    yield
    logger.info(f"Shutting down {config.APP_NAME}...")
    await engine.dispose()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Class Capacity",
        description="Class capacity and waitlist admission control API",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # One ledger store and one lock registry per process
    app.state.session_factory = async_session_factory
    app.state.class_locks = ClassLockRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CustomException)
    async def custom_exception_handler(
        request: Request, exc: CustomException
    ) -> JSONResponse:
        logger.warning(f"CustomException: {exc.error_code} - {exc.message}")
        return JSONResponse(status_code=exc.code, content=exc.to_dict())

    # Store failures and other unexpected errors
    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            f"Unhandled exception: {type(exc).__name__} - {str(exc)}", exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content={
                "error_code": "INTERNAL_ERROR",
                "message": "An internal server error occurred",
                "detail": str(exc) if config.DEBUG else None,
            },
        )

    @app.get("/health")
    async def health_check() -> dict:
        return {
            "status": "healthy",
            "version": VERSION,
            "app_name": config.APP_NAME,
        }

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()
