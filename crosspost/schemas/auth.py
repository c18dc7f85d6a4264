"""Schemas related to OAuth flows."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthorizationUrlResponse(BaseModel):
    """Consent URL the user should be sent to."""

    url: str = Field(..., description="Provider authorization URL carrying the state token.")


class RefreshTokenRequest(_CamelSchema):
    """Body of a token refresh request."""

    account_id: str = Field(..., min_length=1, description="Linked account to refresh.")


class RevokeTokenRequest(BaseModel):
    """Body of a token revocation request."""

    token: str = Field(..., min_length=1, description="Access token to revoke.")


class SupportedPlatformsResponse(BaseModel):
    platforms: List[str]


class ConnectedAccount(_CamelSchema):
    id: str
    name: str | None = None
    provider_user_id: str


class ConnectedPlatform(_CamelSchema):
    """Active accounts a user has linked on one platform."""

    platform: str
    accounts: List[ConnectedAccount] = Field(default_factory=list)


__all__ = [
    "AuthorizationUrlResponse",
    "ConnectedAccount",
    "ConnectedPlatform",
    "RefreshTokenRequest",
    "RevokeTokenRequest",
    "SupportedPlatformsResponse",
]
