"""Knowledge transfer meetings: scheduling, completion and summaries."""
from __future__ import annotations

import logging
import secrets
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ai.insights import generate_meeting_summary
from ai.llm import LLMClient, LLMError
from handover import models, policies
from handover.pipelines.handovers import HandoverError, NotFound, get_handover, handovers_for_user

logger = logging.getLogger(__name__)

MEETING_LINK_BASE = "https://zoom.us/j/"


def generate_meeting_link() -> str:
    return f"{MEETING_LINK_BASE}{secrets.randbelow(1_000_000_000)}"


def fallback_summary(meeting: models.Meeting) -> tuple[str, list[dict]]:
    """Locally built summary used when the LLM is unavailable."""
    task_title = meeting.task.title if meeting.task else ""
    summary = (
        f'Knowledge transfer meeting "{meeting.title}" completed with {", ".join(meeting.attendees)}. '
        f'Duration: {meeting.duration}. Key topics from "{task_title}" were discussed.'
    )
    actions = [
        {"title": f"Review notes from {meeting.title}", "priority": "high"},
        {"title": "Update task status based on discussion", "priority": "medium"},
        {"title": "Schedule follow-up session if gaps remain", "priority": "low"},
    ]
    return summary, actions


async def get_meeting(session: AsyncSession, meeting_id: str) -> models.Meeting:
    result = await session.execute(
        select(models.Meeting)
        .options(selectinload(models.Meeting.task))
        .where(models.Meeting.id == meeting_id)
    )
    meeting = result.scalar_one_or_none()
    if meeting is None:
        raise NotFound(f"Meeting {meeting_id} not found")
    return meeting


async def _check_access(session: AsyncSession, user: models.User, handover_id: str | None) -> None:
    if handover_id is None:
        policies.require(policies.is_monitor(user))
        return
    handover = await get_handover(session, handover_id)
    policies.require(policies.can_view_handover(user, handover))


async def create_meeting(
    session: AsyncSession,
    user: models.User,
    *,
    title: str,
    meeting_date: date,
    meeting_time: time,
    duration: str,
    attendees: list[str],
    task_id: str | None = None,
    handover_id: str | None = None,
    description: str | None = None,
) -> models.Meeting:
    """Schedule a meeting; the handover is taken from the task when omitted."""
    if task_id:
        task = await session.get(models.Task, task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        if handover_id and handover_id != task.handover_id:
            raise HandoverError("Task does not belong to the given handover")
        handover_id = task.handover_id
    await _check_access(session, user, handover_id)

    meeting = models.Meeting(
        task_id=task_id,
        handover_id=handover_id,
        title=title,
        description=description,
        meeting_date=meeting_date.isoformat(),
        meeting_time=meeting_time.strftime("%H:%M"),
        duration=duration,
        attendees=list(attendees),
        meeting_link=generate_meeting_link(),
        status="scheduled",
        created_by=user.id,
    )
    session.add(meeting)
    await session.commit()
    logger.info(f"Scheduled meeting {meeting.id} for handover {handover_id}")
    return await get_meeting(session, meeting.id)


async def list_meetings(
    session: AsyncSession,
    user: models.User,
    *,
    task_id: str | None = None,
    handover_id: str | None = None,
) -> list[models.Meeting]:
    """Visible meetings ordered by date."""
    query = (
        select(models.Meeting)
        .options(selectinload(models.Meeting.task))
        .order_by(models.Meeting.meeting_date.asc(), models.Meeting.meeting_time.asc())
    )
    if task_id:
        query = query.where(models.Meeting.task_id == task_id)
    if handover_id:
        query = query.where(models.Meeting.handover_id == handover_id)
    if not policies.is_monitor(user):
        visible = await handovers_for_user(session, user.id)
        query = query.where(models.Meeting.handover_id.in_(visible))
    result = await session.execute(query)
    return list(result.scalars().all())


async def complete_meeting(session: AsyncSession, user: models.User, meeting_id: str) -> models.Meeting:
    meeting = await get_meeting(session, meeting_id)
    await _check_access(session, user, meeting.handover_id)
    meeting.status = "completed"
    await session.commit()
    return meeting


async def summarize_meeting(
    session: AsyncSession,
    user: models.User,
    meeting_id: str,
    client: LLMClient,
) -> models.Meeting:
    """Attach an AI summary and mark the meeting completed.

    Any LLM failure falls back to a locally built summary.
    """
    meeting = await get_meeting(session, meeting_id)
    await _check_access(session, user, meeting.handover_id)

    try:
        generated = await generate_meeting_summary(
            client,
            title=meeting.title,
            description=meeting.description,
            task_title=meeting.task.title if meeting.task else None,
            attendees=meeting.attendees,
            duration=meeting.duration,
            meeting_date=meeting.meeting_date,
        )
        summary = generated.summary
        actions = [item.model_dump() for item in generated.actionItems]
    except LLMError as e:
        logger.warning(f"Meeting summary generation failed, using fallback: {e}")
        summary, actions = fallback_summary(meeting)

    meeting.ai_summary = summary
    meeting.ai_action_items = actions
    meeting.status = "completed"
    await session.commit()
    return meeting
