"""
FastAPI routes for account linking and cross-platform publishing.
"""

from __future__ import annotations

import logging
from datetime import datetime
from http import HTTPStatus
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from fastapi.responses import RedirectResponse
from pydantic import ValidationError as PydanticValidationError

from crosspost.core.errors import AuthenticationError, ValidationError
from crosspost.dependencies import (
    SettingsDependency,
    get_account_service,
    get_auth_orchestrator,
    get_publish_orchestrator,
    get_scheduler_service,
)
from crosspost.models.oauth import TokenRecord
from crosspost.models.publish import (
    MediaUpload,
    PublishRecord,
    PublishRequest,
    PublishStatus,
    ScheduledPost,
    ScheduleStatus,
)
from crosspost.schemas import (
    AuthorizationUrlResponse,
    ConnectedPlatform,
    PublishPage,
    PublishStatusResponse,
    RefreshTokenRequest,
    RetryTargetRequest,
    RevokeTokenRequest,
    ScheduledPostUpdate,
    SupportedPlatformsResponse,
)
from crosspost.services import (
    AccountService,
    AuthOrchestrator,
    PublishOrchestrator,
    SchedulerService,
)

router = APIRouter()
logger = logging.getLogger(__name__)

AuthDependency = Annotated[AuthOrchestrator, Depends(get_auth_orchestrator)]
PublishDependency = Annotated[PublishOrchestrator, Depends(get_publish_orchestrator)]
AccountsDependency = Annotated[AccountService, Depends(get_account_service)]
SchedulerDependency = Annotated[SchedulerService, Depends(get_scheduler_service)]
UserId = Annotated[str, Query(..., min_length=1, description="Owning user identifier.")]


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(settings: SettingsDependency) -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok", "environment": settings.environment}


# ----------------------------------------------------------------------
# OAuth
# ----------------------------------------------------------------------


@router.get("/auth/platforms", response_model=SupportedPlatformsResponse)
async def list_supported_platforms(auth: AuthDependency) -> SupportedPlatformsResponse:
    return SupportedPlatformsResponse(platforms=auth.supported_platforms())


@router.get("/auth/{platform}/authorize", status_code=HTTPStatus.OK)
async def start_oauth_flow(
    platform: str,
    request: Request,
    auth: AuthDependency,
    user_id: UserId,
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the provider consent screen.",
    ),
) -> Any:
    """Kick off the OAuth flow by issuing a state token and consent URL."""
    url = await auth.get_authorization_url(platform, user_id)

    wants_html = "text/html" in request.headers.get("accept", "").lower()
    if redirect or wants_html:
        return RedirectResponse(url=url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return AuthorizationUrlResponse(url=url)


@router.get("/auth/{platform}/callback", response_model=TokenRecord)
async def handle_oauth_callback(
    platform: str,
    auth: AuthDependency,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
) -> TokenRecord:
    """Complete the code exchange and link the account to the state's user."""
    if error:
        logger.warning(
            "Provider %s returned OAuth error %s: %s", platform, error, error_description
        )
        raise AuthenticationError(f"Provider denied authorization: {error}")
    if not code or not state:
        raise ValidationError("Both code and state are required")
    return await auth.handle_callback(platform, code, state)


@router.post("/auth/{platform}/refresh", response_model=TokenRecord)
async def refresh_oauth_token(
    platform: str,
    payload: RefreshTokenRequest,
    auth: AuthDependency,
    user_id: UserId,
) -> TokenRecord:
    return await auth.refresh_token(platform, payload.account_id, user_id)


@router.post("/auth/{platform}/revoke", status_code=HTTPStatus.NO_CONTENT)
async def revoke_oauth_token(
    platform: str,
    payload: RevokeTokenRequest,
    auth: AuthDependency,
) -> Response:
    await auth.revoke_token(platform, payload.token)
    return Response(status_code=HTTPStatus.NO_CONTENT)


# ----------------------------------------------------------------------
# Publishing
# ----------------------------------------------------------------------


def _parse_publish_request(payload: str) -> PublishRequest:
    try:
        return PublishRequest.model_validate_json(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid publish request",
            errors=[
                f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
                for err in exc.errors()
            ],
        ) from exc


async def _read_uploads(files: Optional[List[UploadFile]]) -> List[MediaUpload]:
    return [
        MediaUpload(
            filename=upload.filename or "file",
            content_type=upload.content_type or "application/octet-stream",
            data=await upload.read(),
        )
        for upload in files or []
    ]


@router.post("/publish", response_model=PublishRecord)
async def publish_content(
    publisher: PublishDependency,
    payload: str = Form(..., description="JSON encoded publish request."),
    files: Optional[List[UploadFile]] = File(default=None),
) -> PublishRecord:
    """Publish to every requested platform; partial failure still returns 200."""
    publish_request = _parse_publish_request(payload)
    return await publisher.publish(publish_request, await _read_uploads(files))


@router.post("/publish/schedule", response_model=ScheduledPost)
async def schedule_content(
    scheduler: SchedulerDependency,
    payload: str = Form(..., description="JSON publish request with scheduleTime."),
    files: Optional[List[UploadFile]] = File(default=None),
) -> ScheduledPost:
    publish_request = _parse_publish_request(payload)
    return await scheduler.schedule_post(publish_request, await _read_uploads(files))


@router.get("/publish/scheduled", response_model=List[ScheduledPost])
async def list_scheduled_posts(
    scheduler: SchedulerDependency,
    user_id: UserId,
    status: Optional[ScheduleStatus] = Query(default=None),
    start: Optional[datetime] = Query(default=None, description="Earliest scheduled time."),
    end: Optional[datetime] = Query(default=None, description="Latest scheduled time."),
    platform: Optional[str] = Query(default=None),
) -> List[ScheduledPost]:
    return await scheduler.list_scheduled_posts(
        user_id, status=status, start=start, end=end, platform=platform
    )


@router.get("/publish/scheduled/{post_id}", response_model=ScheduledPost)
async def get_scheduled_post(
    post_id: str,
    scheduler: SchedulerDependency,
    user_id: UserId,
) -> ScheduledPost:
    return await scheduler.get_scheduled_post(post_id, user_id)


@router.patch("/publish/scheduled/{post_id}", response_model=ScheduledPost)
async def update_scheduled_post(
    post_id: str,
    changes: ScheduledPostUpdate,
    scheduler: SchedulerDependency,
    user_id: UserId,
) -> ScheduledPost:
    return await scheduler.update_scheduled_post(post_id, user_id, changes)


@router.delete("/publish/scheduled/{post_id}", status_code=HTTPStatus.NO_CONTENT)
async def cancel_scheduled_post(
    post_id: str,
    scheduler: SchedulerDependency,
    user_id: UserId,
) -> Response:
    await scheduler.cancel_scheduled_post(post_id, user_id)
    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.post("/publish/{publish_id}/retry", response_model=PublishRecord)
async def retry_publish_target(
    publish_id: str,
    target: RetryTargetRequest,
    publisher: PublishDependency,
    user_id: UserId,
) -> PublishRecord:
    """Retry one failed target immediately."""
    return await publisher.retry_publish(
        publish_id, user_id, target.platform, target.account_id
    )


@router.get("/publish/{publish_id}/status", response_model=PublishStatusResponse)
async def get_publish_status(
    publish_id: str,
    publisher: PublishDependency,
    user_id: UserId,
) -> PublishStatusResponse:
    status = await publisher.get_publish_status(publish_id, user_id)
    return PublishStatusResponse(status=status)


@router.get("/publish/{publish_id}", response_model=PublishRecord)
async def get_publish_record(
    publish_id: str,
    publisher: PublishDependency,
    user_id: UserId,
) -> PublishRecord:
    return await publisher.get_publish_record(publish_id, user_id)


@router.get("/publish", response_model=PublishPage)
async def list_publish_records(
    publisher: PublishDependency,
    user_id: UserId,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[PublishStatus] = Query(default=None),
) -> PublishPage:
    return await publisher.list_publish_records(
        user_id, page=page, limit=limit, status=status
    )


# ----------------------------------------------------------------------
# Connected accounts
# ----------------------------------------------------------------------


@router.get("/accounts", response_model=List[ConnectedPlatform])
async def list_connected_platforms(
    accounts: AccountsDependency,
    user_id: UserId,
) -> List[ConnectedPlatform]:
    return await accounts.get_connected_platforms(user_id)


@router.delete(
    "/accounts/{platform}/{account_id}", status_code=HTTPStatus.NO_CONTENT
)
async def disconnect_account(
    platform: str,
    account_id: str,
    accounts: AccountsDependency,
    user_id: UserId,
) -> Response:
    await accounts.disconnect(user_id, platform, account_id)
    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.get("/accounts/{platform}/{account_id}/metrics")
async def get_account_metrics(
    platform: str,
    account_id: str,
    accounts: AccountsDependency,
    user_id: UserId,
) -> Dict[str, Any]:
    return await accounts.get_account_metrics(user_id, platform, account_id)


@router.get("/accounts/{platform}/{account_id}/posts/{post_id}/metrics")
async def get_post_metrics(
    platform: str,
    account_id: str,
    post_id: str,
    accounts: AccountsDependency,
    user_id: UserId,
) -> Dict[str, Any]:
    return await accounts.get_post_metrics(user_id, platform, account_id, post_id)


__all__ = ["router"]
