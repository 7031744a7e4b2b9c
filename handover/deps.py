"""FastAPI dependencies: caller identity, LLM client, webhook secret."""
from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ai.llm import LLMClient

from . import models, policies
from .config import settings
from .db import get_session

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when the caller cannot be identified."""
    pass


async def get_current_user(
    x_user_id: str | None = Header(default=None, description="Caller id issued by the identity provider"),
    session: AsyncSession = Depends(get_session),
) -> models.User:
    if not x_user_id:
        raise AuthenticationError("Missing X-User-Id header")
    user = await session.get(models.User, x_user_id)
    if user is None:
        logger.warning(f"Unknown caller {x_user_id}")
        raise AuthenticationError("Unknown user")
    return user


async def require_monitor(user: models.User = Depends(get_current_user)) -> models.User:
    """Admins and HR managers only."""
    policies.require(policies.is_monitor(user), "HR manager or admin privileges required")
    return user


async def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    policies.require_admin(user)
    return user


def get_llm_client() -> LLMClient:
    return LLMClient()


async def verify_webhook_secret(
    x_webhook_secret: str | None = Header(default=None),
) -> None:
    """Enforced only when WEBHOOK_INGEST_SECRET is set."""
    expected = settings.webhooks.ingest_secret
    if not expected:
        return
    if not x_webhook_secret or not secrets.compare_digest(x_webhook_secret, expected):
        logger.warning("Rejected insight webhook with a bad or missing secret")
        raise AuthenticationError("Invalid webhook secret")
