"""Best-effort identity resolution for inbound insight payloads.

A webhook may identify its subject by handover id, by user id, by e-mail
in place of a user id, through a metadata block, or only through the
storage path of the analysed document. The chain below tries the specific
signals before the broad ones and stops at the first hit for each target.
Lookups that find nothing are not errors; they only narrow what gets
attached to the stored record.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from handover import models

logger = logging.getLogger(__name__)

# Stable identifiers are canonical 36-character UUID strings
STABLE_ID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


@dataclass
class IdentityHints:
    """Raw identifiers as supplied by the caller."""
    handover_id: str | None = None
    user_id: str | None = None
    file_path: str | None = None

    @classmethod
    def from_payload(
        cls,
        *,
        handover_id: str | None = None,
        user_id: str | None = None,
        file_path: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> IdentityHints:
        """Top-level fields win; the metadata block fills the gaps."""
        metadata = metadata or {}

        def pick(value: str | None, key: str) -> str | None:
            if value:
                return value
            candidate = metadata.get(key)
            return str(candidate) if candidate else None

        return cls(
            handover_id=pick(handover_id, "handover_id"),
            user_id=pick(user_id, "user_id"),
            file_path=pick(file_path, "file_path"),
        )


@dataclass
class ResolvedIdentity:
    """Outcome of the chain; either side may stay unresolved."""
    handover_id: str | None = None
    user_id: str | None = None


def looks_like_stable_id(value: str | None) -> bool:
    return bool(value) and bool(STABLE_ID_PATTERN.match(value))


def first_path_segment(file_path: str | None) -> str | None:
    if not file_path:
        return None
    segments = [segment for segment in file_path.strip().split("/") if segment]
    return segments[0] if segments else None


async def find_user_id_by_email(session: AsyncSession, email: str) -> str | None:
    result = await session.execute(
        select(models.User.id).where(func.lower(models.User.email) == email.strip().lower()).limit(1)
    )
    return result.scalar_one_or_none()


async def find_handover_for_user(session: AsyncSession, user_id: str) -> str | None:
    """The handover the user leaves, else the one they take over."""
    for column in (models.Handover.employee_id, models.Handover.successor_id):
        result = await session.execute(
            select(models.Handover.id)
            .where(column == user_id)
            .order_by(models.Handover.created_at.desc())
            .limit(1)
        )
        handover_id = result.scalar_one_or_none()
        if handover_id:
            return handover_id
    return None


async def resolve_identity(session: AsyncSession, hints: IdentityHints) -> ResolvedIdentity:
    """Run the resolution chain once.

    1. An e-mail in place of a user id is swapped for the stable id.
    2. Without a handover id, the user's handover is looked up
       (as employee, then as successor).
    3. Still without one, the first segment of the storage path is tried
       as a user id, provided it has the stable-id shape.
    """
    handover_id = hints.handover_id
    user_id = hints.user_id

    if user_id and "@" in user_id:
        resolved = await find_user_id_by_email(session, user_id)
        if resolved:
            logger.info(f"Resolved e-mail {user_id} to user {resolved}")
            user_id = resolved
        else:
            logger.warning(f"No user found for e-mail {user_id}; keeping it as user_id")

    if not handover_id and user_id:
        handover_id = await find_handover_for_user(session, user_id)
        if not handover_id:
            logger.info(f"No handover found for user {user_id}")

    if not handover_id and hints.file_path:
        candidate = first_path_segment(hints.file_path)
        if looks_like_stable_id(candidate):
            handover_id = await find_handover_for_user(session, candidate)
            if not handover_id:
                logger.info(f"No handover found for path owner {candidate}")
            if not user_id:
                user_id = candidate
        else:
            logger.info(f"Path segment {candidate!r} is not a stable id; skipping path resolution")

    return ResolvedIdentity(handover_id=handover_id, user_id=user_id)
