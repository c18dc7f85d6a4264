"""Lookup table from platform name to its client."""

from __future__ import annotations

from typing import Dict, Iterator, Optional

import httpx

from crosspost.clients.platforms.base import PlatformClient
from crosspost.clients.platforms.facebook import FacebookClient
from crosspost.clients.platforms.instagram import InstagramClient
from crosspost.clients.platforms.linkedin import LinkedInClient
from crosspost.clients.platforms.tiktok import TikTokClient
from crosspost.core.config import AppSettings
from crosspost.core.errors import ValidationError

DEFAULT_CLIENTS: tuple[type[PlatformClient], ...] = (
    FacebookClient,
    InstagramClient,
    LinkedInClient,
    TikTokClient,
)


class PlatformRegistry:
    """Holds one client instance per supported platform."""

    def __init__(self) -> None:
        self._clients: Dict[str, PlatformClient] = {}

    def register(self, client: PlatformClient) -> None:
        self._clients[client.name] = client

    def get(self, name: str) -> Optional[PlatformClient]:
        return self._clients.get((name or "").lower())

    def require(self, name: str) -> PlatformClient:
        client = self.get(name)
        if client is None:
            raise ValidationError(f"Unsupported platform: {name}")
        return client

    def names(self) -> list[str]:
        return sorted(self._clients)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._clients

    def __iter__(self) -> Iterator[PlatformClient]:
        return iter(self._clients.values())


def build_default_registry(
    settings: AppSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PlatformRegistry:
    """Instantiate every built-in client from application settings."""
    registry = PlatformRegistry()
    platform_settings = settings.platform_settings()
    for client_cls in DEFAULT_CLIENTS:
        registry.register(
            client_cls(
                platform_settings[client_cls.name],
                timeout=settings.oauth.provider_timeout_seconds,
                transport=transport,
            )
        )
    return registry


__all__ = ["DEFAULT_CLIENTS", "PlatformRegistry", "build_default_registry"]
