"""
Domain models for OAuth state, token records and linked accounts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthFlowState(str, Enum):
    """Steps of a single authorization-code attempt, used for flow logging."""

    INITIATED = "INITIATED"
    CALLBACK_RECEIVED = "CALLBACK_RECEIVED"
    TOKEN_EXCHANGED = "TOKEN_EXCHANGED"
    ACCOUNT_LINKED = "ACCOUNT_LINKED"
    STATE_INVALID = "STATE_INVALID"
    EXCHANGE_FAILED = "EXCHANGE_FAILED"
    PROFILE_FETCH_FAILED = "PROFILE_FETCH_FAILED"


class OAuthState(_CamelModel):
    """Single-use anti-forgery state bound to the user who started the flow."""

    token: str
    platform: str
    user_id: str
    created_at: datetime = Field(default_factory=utcnow)
    ttl: int

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(
            self.created_at.timestamp() + self.ttl, tz=timezone.utc
        )


class TokenRecord(_CamelModel):
    """Provider token payload normalized to one shape for every platform."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: List[str] = Field(default_factory=list)
    provider_user_id: Optional[str] = Field(
        None, description="User id some providers return with the token."
    )
    open_id: Optional[str] = Field(None, description="TikTok open_id.")


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


class LinkedAccount(_CamelModel):
    """A social account connected by a user, with its current token pair."""

    id: str
    platform: str
    user_id: str
    provider_user_id: str
    display_name: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: List[str] = Field(default_factory=list)
    profile: Dict[str, Any] = Field(default_factory=dict)
    status: AccountStatus = AccountStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


class AccountFields(BaseModel):
    """Provider-specific profile fields assembled when an account is linked."""

    provider_user_id: str
    display_name: Optional[str] = None
    profile: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AccountFields",
    "AccountStatus",
    "AuthFlowState",
    "LinkedAccount",
    "OAuthState",
    "TokenRecord",
    "utcnow",
]
