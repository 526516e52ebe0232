import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from pydantic import ValidationError

from ...application.gateway import GeminiGateway
from ...config import Settings
from ...domain.exceptions import ConfigurationError, QuotaExceededError
from ...logging import init_logging, shutdown_logging, info as log_info, LogRecord, LogEvent
from .errors import (
    CONFIGURATION_ERROR,
    DAILY_LIMIT_REACHED,
    INTERNAL_ERROR,
    INVALID_REQUEST,
    log_and_return_error_response,
)
from .middleware import logging_middleware
from .routes.generate import router as generate_router
from .routes.health import router as health_router


def create_app(settings: Settings, gateway: Optional[GeminiGateway] = None) -> FastAPI:
    """Creates and configures the FastAPI application instance.

    The gateway is built eagerly so that handlers work even when the ASGI
    server does not run the lifespan (for example under ``httpx.ASGITransport``).

    Args:
        settings: Configuration settings object
        gateway: Pre-built gateway, mainly for tests

    Returns:
        Fully configured FastAPI application instance
    """
    init_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_info(
            LogRecord(
                event=LogEvent.CONFIGURATION.value,
                message="Gemini gateway started",
                data={
                    "model": settings.gemini_default_model,
                    "persistence_backend": settings.persistence_backend,
                    "min_request_interval_seconds": settings.min_request_interval_seconds,
                    "gemini_api_key_configured": bool(settings.gemini_api_key),
                },
            )
        )
        try:
            yield
        finally:
            logging.info("Initiating application shutdown")
            try:
                await app.state.gateway.close()
            except Exception as e:
                logging.error(f"Failed to close gateway clients: {str(e)}")
            finally:
                shutdown_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=None,
        redoc_url=None,
        description="Shared Gemini access for trading-journal features: caching, daily quotas and pacing.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    try:
        app.state.gateway = gateway or GeminiGateway.from_settings(settings)
        logging.info("Gemini gateway initialized successfully")
    except Exception as e:
        logging.error(f"Failed to initialize Gemini gateway: {str(e)}")
        raise

    app.middleware("http")(logging_middleware)

    app.include_router(generate_router, tags=["API"])
    app.include_router(health_router, tags=["Health"])

    @app.exception_handler(QuotaExceededError)
    async def quota_exceeded_handler(request: Request, exc: QuotaExceededError):
        return await log_and_return_error_response(
            request,
            429,
            DAILY_LIMIT_REACHED,
            exc.message,
            data={"user_id": exc.user_id},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return await log_and_return_error_response(
            request,
            500,
            CONFIGURATION_ERROR,
            exc.message,
            caught_exception=exc,
            data={"config_key": exc.config_key},
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_error_handler(request: Request, exc: ValidationError):
        return await log_and_return_error_response(
            request,
            422,
            INVALID_REQUEST,
            f"Validation error: {exc.errors(include_url=False)}",
        )

    @app.exception_handler(json.JSONDecodeError)
    async def json_decode_error_handler(request: Request, exc: json.JSONDecodeError):
        return await log_and_return_error_response(
            request, 400, INVALID_REQUEST, "Invalid JSON format."
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        return await log_and_return_error_response(
            request,
            500,
            INTERNAL_ERROR,
            "An unexpected internal server error occurred.",
            caught_exception=exc,
        )

    return app
