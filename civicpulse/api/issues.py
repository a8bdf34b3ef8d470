"""REST endpoints for issue chat, merge consent and merging.

All routes require a bearer token. Consent answers and chat posts travel
over these request/response calls rather than the live channel, so every
privileged action is checked against the database.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from civicpulse.auth import get_current_user
from civicpulse.chat.consent import consent_service
from civicpulse.chat.merge import merge_service
from civicpulse.chat.service import chat_service
from civicpulse.chat.store import IssueStore
from civicpulse.config import settings
from civicpulse.db.engine import get_session
from civicpulse.errors import RateLimitedError
from civicpulse.models.user import User
from civicpulse.schemas.chat import (
    ApiResponse,
    ConsentRequest,
    ConsentStatusOut,
    MergeRequest,
    PagedResponse,
    PendingConsentOut,
    PostMessageRequest,
)
from civicpulse.security.rate_limiter import rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/issues", tags=["issues"])


# ── Consent ──────────────────────────────────────────────────────────


@router.get("/consent/pending")
async def pending_consents(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Consent requests still awaiting the caller's answer."""
    records = await consent_service.pending_for_user(IssueStore(db), user.id)
    data = [
        PendingConsentOut(
            issue_id=r.issue_id,
            canonical_issue_id=r.canonical_issue_id,
            requested_at=r.created_at,
        )
        for r in records
    ]
    return JSONResponse(ApiResponse[list[PendingConsentOut]](data=data).to_json())


@router.get("/{issue_id}/consent")
async def get_consent(
    issue_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Authoritative consent state of the caller for an issue."""
    state = await consent_service.get_consent_status(IssueStore(db), issue_id, user.id)
    out = ConsentStatusOut.of(issue_id, state)
    return JSONResponse(ApiResponse[ConsentStatusOut](data=out).to_json())


@router.post("/{issue_id}/consent")
async def respond_to_consent(
    issue_id: uuid.UUID,
    body: ConsentRequest,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Accept or decline joining the merged discussion."""
    state = await consent_service.respond(IssueStore(db), issue_id, user, body.accept)
    out = ConsentStatusOut.of(issue_id, state)
    return JSONResponse(ApiResponse[ConsentStatusOut](data=out).to_json())


# ── Chat ─────────────────────────────────────────────────────────────


@router.get("/{issue_id}/chat")
async def get_messages(
    issue_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, le=settings.chat.chat_max_page_size),
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """History page; page 1 is the newest, each page oldest → newest."""
    result = await chat_service.get_messages(IssueStore(db), issue_id, user, page=page, limit=limit)
    response = PagedResponse(
        data=result.messages,
        pagination=result.pagination,
        canonical_issue_id=result.canonical_issue_id,
    )
    return JSONResponse(response.to_json())


@router.post("/{issue_id}/chat", status_code=status.HTTP_201_CREATED)
async def post_message(
    issue_id: uuid.UUID,
    body: PostMessageRequest,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Post a message; it is stored before being pushed live."""
    allowed, retry_after = await rate_limiter.check(
        f"rate:{user.id}:chat",
        limit=settings.chat.chat_rate_limit,
        window=settings.chat.chat_rate_window,
    )
    if not allowed:
        logger.warning("Chat rate limit hit by user %s", user.id)
        raise RateLimitedError(retry_after)

    message = await chat_service.post_message(IssueStore(db), issue_id, user, body.message)
    return JSONResponse(
        ApiResponse(data=message.to_json()).to_json(),
        status_code=status.HTTP_201_CREATED,
    )


# ── Merge ────────────────────────────────────────────────────────────


@router.post("/{issue_id}/merge")
async def merge_issue(
    issue_id: uuid.UUID,
    body: MergeRequest,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Mark an issue as a duplicate (government only) and prompt its reporter."""
    result = await merge_service.merge(IssueStore(db), issue_id, body.canonical_issue_id, user)
    return JSONResponse(ApiResponse(data=result.to_json()).to_json())
