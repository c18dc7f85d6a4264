"""Clients for the supported social platforms."""

from crosspost.clients.platforms.base import PlatformClient
from crosspost.clients.platforms.facebook import FacebookClient
from crosspost.clients.platforms.instagram import InstagramClient
from crosspost.clients.platforms.linkedin import LinkedInClient
from crosspost.clients.platforms.registry import PlatformRegistry, build_default_registry
from crosspost.clients.platforms.tiktok import TikTokClient

__all__ = [
    "FacebookClient",
    "InstagramClient",
    "LinkedInClient",
    "PlatformClient",
    "PlatformRegistry",
    "TikTokClient",
    "build_default_registry",
]
