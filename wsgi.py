"""
ASGI entry point for Uvicorn (``uvicorn wsgi:app``).
This module provides the application factory for production deployment.
"""

import sys

from dotenv import load_dotenv
from fastapi import FastAPI
from pydantic import ValidationError

from geminigate.config import Settings
from geminigate.domain.exceptions import ConfigurationError
from geminigate.interfaces.http.app import create_app

load_dotenv()


def create_application() -> FastAPI:
    """Application factory for Uvicorn."""
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"\nConfiguration Error:\n{e}", file=sys.stderr)
        raise SystemExit(1)
    try:
        return create_app(settings)
    except ConfigurationError as e:
        print(f"\nConfiguration Error:\n{e}", file=sys.stderr)
        raise SystemExit(1)


app = create_application()
