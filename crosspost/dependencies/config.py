"""
FastAPI dependency for reading application settings inside route handlers.
"""

from typing import Annotated

from fastapi import Depends

from crosspost.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """Return the process-wide settings; overridable in tests."""
    return get_settings()


SettingsDependency = Annotated[AppSettings, Depends(get_app_settings)]

__all__ = ["SettingsDependency", "get_app_settings"]
