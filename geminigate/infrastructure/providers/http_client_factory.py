"""
HTTP client factory for the upstream API and the persistence endpoint.
"""

import logging
from dataclasses import dataclass

import httpx

from ...config import Settings


@dataclass
class ConnectionLimits:
    """Connection pool configuration."""

    max_keepalive: int
    max_connections: int
    keepalive_expiry: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectionLimits":
        return cls(
            max_keepalive=settings.pool_max_keepalive_connections,
            max_connections=settings.pool_max_connections,
            keepalive_expiry=settings.pool_keepalive_expiry,
        )

    def to_httpx(self) -> httpx.Limits:
        return httpx.Limits(
            max_keepalive_connections=self.max_keepalive,
            max_connections=self.max_connections,
            keepalive_expiry=self.keepalive_expiry,
        )


class HttpClientFactory:
    """Factory for creating configured ``httpx.AsyncClient`` instances."""

    @staticmethod
    def create_upstream_client(settings: Settings) -> httpx.AsyncClient:
        """Client for generateContent calls; every attempt is bounded by ``http_timeout``."""
        limits = ConnectionLimits.from_settings(settings)
        timeout = httpx.Timeout(
            settings.http_timeout, connect=settings.http_connect_timeout
        )
        logging.debug(
            f"Creating upstream HTTP client (timeout={settings.http_timeout}s, "
            f"max_connections={limits.max_connections})"
        )
        return httpx.AsyncClient(timeout=timeout, limits=limits.to_httpx())

    @staticmethod
    def create_persistence_client(settings: Settings) -> httpx.AsyncClient:
        limits = ConnectionLimits.from_settings(settings)
        timeout = httpx.Timeout(
            settings.persistence_timeout, connect=settings.http_connect_timeout
        )
        return httpx.AsyncClient(timeout=timeout, limits=limits.to_httpx())
