"""Handover pipeline: listing, statistics, lifecycle and identity sync."""
from __future__ import annotations

import logging
from dataclasses import asdict

import pandas as pd
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from handover import models, policies
from handover.config import settings
from handover.events import stats_cache
from handover.pipelines.stats import (
    HandoverDetails,
    HandoverStats,
    build_handover_details,
    filter_by_department,
    normalize_department,
    summarize_handovers,
    task_progress,
)

logger = logging.getLogger(__name__)


class HandoverError(Exception):
    """Raised when a handover operation cannot be carried out."""
    pass


class NotFound(HandoverError):
    """Raised when a referenced row does not exist."""
    pass


def _is_connectivity_error(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def _handover_query():
    return (
        select(models.Handover)
        .options(
            selectinload(models.Handover.employee),
            selectinload(models.Handover.successor),
            selectinload(models.Handover.tasks),
        )
        .order_by(models.Handover.created_at.desc())
    )


@retry(
    retry=retry_if_exception(_is_connectivity_error),
    stop=stop_after_attempt(settings.handover.fetch_retries + 1),
    wait=wait_exponential(multiplier=settings.handover.fetch_retry_base_seconds, max=30),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def fetch_handover_rows(
    session: AsyncSession,
    user: models.User | None = None,
) -> list[models.Handover]:
    """Handovers with participants and tasks loaded, newest first.

    The only read that retries: transient connectivity errors get up to
    ``fetch_retries`` further attempts with exponential back-off.
    """
    query = _handover_query()
    if user is not None:
        query = policies.scope_handovers(query, user)
    try:
        result = await session.execute(query)
    except DBAPIError:
        # Leave the session usable for the next attempt
        await session.rollback()
        raise
    return list(result.scalars().unique().all())


async def list_handovers(
    session: AsyncSession,
    user: models.User | None = None,
    department: str | None = None,
) -> list[HandoverDetails]:
    """List rows for the HR view, optionally for one department."""
    rows = await fetch_handover_rows(session, user)
    return [build_handover_details(h) for h in filter_by_department(rows, department)]


async def handover_stats(session: AsyncSession, department: str | None = None) -> HandoverStats:
    """Dashboard aggregates, cached until handovers, tasks or users change."""
    key = normalize_department(department)
    cached = stats_cache.get(key)
    if cached is not None:
        return cached

    rows = await fetch_handover_rows(session)
    stats = summarize_handovers(filter_by_department(rows, department))
    stats_cache.put(key, stats)
    return stats


async def export_handovers_csv(
    session: AsyncSession,
    user: models.User | None = None,
    department: str | None = None,
) -> str:
    """CSV report of the list rows."""
    details = await list_handovers(session, user, department)
    columns = list(HandoverDetails.__dataclass_fields__)
    df = pd.DataFrame([asdict(d) for d in details], columns=columns)
    if not df.empty:
        df["created_at"] = pd.to_datetime(df["created_at"]).dt.strftime("%Y-%m-%d %H:%M:%S")
    return df.to_csv(index=False)


async def get_handover(session: AsyncSession, handover_id: str) -> models.Handover:
    result = await session.execute(
        _handover_query()
        .where(models.Handover.id == handover_id)
        .execution_options(populate_existing=True)
    )
    handover = result.scalar_one_or_none()
    if handover is None:
        raise NotFound(f"Handover {handover_id} not found")
    return handover


async def get_user(session: AsyncSession, user_id: str) -> models.User:
    user = await session.get(models.User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


async def create_handover(
    session: AsyncSession,
    *,
    employee_id: str,
    successor_id: str | None = None,
) -> models.Handover:
    """Open a handover for an exiting employee."""
    await get_user(session, employee_id)
    if successor_id:
        if successor_id == employee_id:
            raise HandoverError("An employee cannot succeed themselves")
        await get_user(session, successor_id)

    handover = models.Handover(employee_id=employee_id, successor_id=successor_id, progress=0)
    session.add(handover)
    await session.commit()
    logger.info(f"Created handover {handover.id} for employee {employee_id}")
    return await get_handover(session, handover.id)


async def assign_successor(
    session: AsyncSession,
    handover_id: str,
    successor_id: str | None,
) -> models.Handover:
    """Assign, replace or clear (None) the successor."""
    handover = await get_handover(session, handover_id)
    if successor_id:
        if successor_id == handover.employee_id:
            raise HandoverError("An employee cannot succeed themselves")
        await get_user(session, successor_id)

    handover.successor_id = successor_id
    await session.commit()
    logger.info(f"Handover {handover_id} successor set to {successor_id}")
    return await get_handover(session, handover_id)


async def update_progress(session: AsyncSession, handover_id: str, progress: int) -> models.Handover:
    if not 0 <= progress <= 100:
        raise HandoverError(f"Progress must be between 0 and 100, got {progress}")
    handover = await get_handover(session, handover_id)
    handover.progress = progress
    await session.commit()
    return handover


async def recalculate_progress(session: AsyncSession, handover_id: str) -> int:
    """Store the task-derived progress; returns the new value."""
    handover = await get_handover(session, handover_id)
    progress = task_progress(handover.tasks, handover.progress)
    if progress != handover.progress:
        handover.progress = progress
        await session.commit()
        logger.debug(f"Handover {handover_id} progress recalculated to {progress}")
    return progress


async def ensure_identity_consistency(session: AsyncSession, email: str, user_id: str) -> int:
    """Point handovers held by duplicate user rows at ``user_id``.

    Duplicates are other users whose e-mail matches case-insensitively.
    Returns the number of handover references changed.
    """
    await get_user(session, user_id)
    result = await session.execute(
        select(models.User.id).where(
            func.lower(models.User.email) == email.strip().lower(),
            models.User.id != user_id,
        )
    )
    stale_ids = list(result.scalars().all())
    if not stale_ids:
        return 0

    changed = 0
    for column in ("employee_id", "successor_id"):
        outcome = await session.execute(
            update(models.Handover)
            .where(getattr(models.Handover, column).in_(stale_ids))
            .values({column: user_id})
            .execution_options(synchronize_session="fetch")
        )
        changed += outcome.rowcount or 0
    await session.commit()
    # Bulk updates bypass the flush hooks
    stats_cache.clear()

    logger.info(f"Repointed {changed} handover references for {email} to {user_id}")
    return changed


async def sync_all_identities(session: AsyncSession) -> dict[str, int]:
    """Run the consistency repair for every e-mail held by several users.

    The oldest user row of each group is kept as the canonical identity.
    """
    result = await session.execute(
        select(func.lower(models.User.email))
        .group_by(func.lower(models.User.email))
        .having(func.count(models.User.id) > 1)
    )
    duplicated = list(result.scalars().all())

    repointed: dict[str, int] = {}
    for email in duplicated:
        canonical = await session.execute(
            select(models.User.id)
            .where(func.lower(models.User.email) == email)
            .order_by(models.User.created_at.asc())
            .limit(1)
        )
        repointed[email] = await ensure_identity_consistency(session, email, canonical.scalar_one())
    return repointed


async def handovers_for_user(session: AsyncSession, user_id: str) -> list[str]:
    """Ids of the handovers a user leaves or takes over."""
    result = await session.execute(
        select(models.Handover.id).where(
            or_(models.Handover.employee_id == user_id, models.Handover.successor_id == user_id)
        )
    )
    return list(result.scalars().all())
