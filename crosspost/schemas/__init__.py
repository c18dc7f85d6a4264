"""Public schema exports."""

from .auth import (
    AuthorizationUrlResponse,
    ConnectedAccount,
    ConnectedPlatform,
    RefreshTokenRequest,
    RevokeTokenRequest,
    SupportedPlatformsResponse,
)
from .publish import (
    PublishPage,
    PublishStatusResponse,
    RetryTargetRequest,
    ScheduledPostUpdate,
)

__all__ = [
    "AuthorizationUrlResponse",
    "ConnectedAccount",
    "ConnectedPlatform",
    "PublishPage",
    "PublishStatusResponse",
    "RefreshTokenRequest",
    "RetryTargetRequest",
    "RevokeTokenRequest",
    "ScheduledPostUpdate",
    "SupportedPlatformsResponse",
]
