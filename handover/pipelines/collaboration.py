"""Collaboration pipeline: tasks, notes, messages and help requests.

Every function takes the acting user and enforces the row policies before
touching data, so routers only translate HTTP to calls.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from handover import models, policies
from handover.pipelines.handovers import HandoverError, NotFound, get_handover, recalculate_progress

logger = logging.getLogger(__name__)

HELP_REQUEST_TYPES = {"employee", "manager"}
TASK_PRIORITIES = {"low", "medium", "high", "critical"}


async def get_task(session: AsyncSession, task_id: str) -> models.Task:
    result = await session.execute(
        select(models.Task)
        .options(selectinload(models.Task.handover))
        .where(models.Task.id == task_id)
    )
    task = result.scalar_one_or_none()
    if task is None or task.handover is None:
        raise NotFound(f"Task {task_id} not found")
    return task


async def add_task(
    session: AsyncSession,
    user: models.User,
    handover_id: str,
    *,
    title: str,
    description: str | None = None,
    priority: str = "medium",
    category: str | None = None,
    due_date: datetime | None = None,
) -> models.Task:
    handover = await get_handover(session, handover_id)
    policies.require(policies.can_edit_handover(user, handover) or policies.can_manage_handovers(user))
    if priority not in TASK_PRIORITIES:
        raise HandoverError(f"Unknown priority: {priority}")

    task = models.Task(
        handover_id=handover_id,
        title=title,
        description=description,
        priority=priority,
        category=category,
        due_date=due_date,
    )
    session.add(task)
    await session.commit()
    await recalculate_progress(session, handover_id)
    return task


async def list_tasks(session: AsyncSession, user: models.User, handover_id: str) -> list[models.Task]:
    handover = await get_handover(session, handover_id)
    policies.require(policies.can_view_handover(user, handover))
    return list(handover.tasks)


async def update_task(
    session: AsyncSession,
    user: models.User,
    task_id: str,
    *,
    status: str | None = None,
    notes: str | None = None,
) -> models.Task:
    """Update status and/or notes, then refresh the handover progress."""
    task = await get_task(session, task_id)
    policies.require(policies.can_edit_handover(user, task.handover))

    if status is not None:
        task.status = status
    if notes is not None:
        task.notes = notes
    await session.commit()

    await recalculate_progress(session, task.handover_id)
    return task


async def acknowledge_task(session: AsyncSession, user: models.User, task_id: str) -> models.Task:
    """Successor confirms they have taken over a task."""
    task = await get_task(session, task_id)
    policies.require(
        policies.can_acknowledge_task(user, task.handover),
        "Only the assigned successor can acknowledge tasks",
    )
    task.successor_acknowledged = True
    task.successor_acknowledged_at = datetime.utcnow()
    await session.commit()
    return task


async def add_note(session: AsyncSession, user: models.User, task_id: str, content: str) -> models.Note:
    task = await get_task(session, task_id)
    policies.require(policies.can_view_handover(user, task.handover))
    note = models.Note(task_id=task_id, content=content, created_by=user.id)
    session.add(note)
    await session.commit()
    return note


async def list_notes(session: AsyncSession, user: models.User, task_id: str) -> list[models.Note]:
    task = await get_task(session, task_id)
    policies.require(policies.can_view_handover(user, task.handover))
    result = await session.execute(
        select(models.Note).where(models.Note.task_id == task_id).order_by(models.Note.created_at.asc())
    )
    return list(result.scalars().all())


async def post_message(session: AsyncSession, user: models.User, handover_id: str, content: str) -> models.Message:
    handover = await get_handover(session, handover_id)
    policies.require(policies.can_view_handover(user, handover))
    if not content.strip():
        raise HandoverError("Message content is required")
    message = models.Message(handover_id=handover_id, sender_id=user.id, content=content)
    session.add(message)
    await session.commit()
    return message


async def list_messages(session: AsyncSession, user: models.User, handover_id: str) -> list[models.Message]:
    handover = await get_handover(session, handover_id)
    policies.require(policies.can_view_handover(user, handover))
    result = await session.execute(
        select(models.Message)
        .where(models.Message.handover_id == handover_id)
        .order_by(models.Message.created_at.asc())
    )
    return list(result.scalars().all())


# Help requests

async def _get_help_request(session: AsyncSession, request_id: str) -> models.HelpRequest:
    result = await session.execute(
        select(models.HelpRequest)
        .options(selectinload(models.HelpRequest.task))
        .where(models.HelpRequest.id == request_id)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound(f"Help request {request_id} not found")
    return request


async def create_help_request(
    session: AsyncSession,
    user: models.User,
    task_id: str,
    request_type: str,
    message: str,
) -> models.HelpRequest:
    """Successor asks the employee, or escalates to a manager."""
    if request_type not in HELP_REQUEST_TYPES:
        raise HandoverError(f"Unknown help request type: {request_type}")
    task = await get_task(session, task_id)
    policies.require(policies.can_view_handover(user, task.handover))

    request = models.HelpRequest(
        task_id=task_id,
        handover_id=task.handover_id,
        requester_id=user.id,
        request_type=request_type,
        message=message,
    )
    session.add(request)
    await session.commit()
    logger.info(f"Help request {request.id} ({request_type}) opened on task {task_id}")
    return await _get_help_request(session, request.id)


async def list_help_requests(
    session: AsyncSession,
    user: models.User,
    *,
    handover_id: str | None = None,
    status: str | None = None,
) -> list[models.HelpRequest]:
    """Visible help requests, newest first, with their task."""
    query = (
        select(models.HelpRequest)
        .options(selectinload(models.HelpRequest.task))
        .order_by(models.HelpRequest.created_at.desc())
    )
    if handover_id:
        query = query.where(models.HelpRequest.handover_id == handover_id)
    if status:
        query = query.where(models.HelpRequest.status == status)
    query = policies.scope_help_requests(query, user)
    result = await session.execute(query)
    return list(result.scalars().all())


async def respond_to_help_request(
    session: AsyncSession,
    user: models.User,
    request_id: str,
    response: str,
) -> models.HelpRequest:
    request = await _get_help_request(session, request_id)
    handover = await get_handover(session, request.handover_id)
    policies.require(policies.can_answer_help_request(user, request, handover))

    request.response = response
    request.responded_by = user.id
    request.responded_at = datetime.utcnow()
    request.status = "replied"
    await session.commit()
    return request


async def resolve_help_request(session: AsyncSession, user: models.User, request_id: str) -> models.HelpRequest:
    request = await _get_help_request(session, request_id)
    handover = await get_handover(session, request.handover_id)
    policies.require(
        request.requester_id == user.id or policies.can_answer_help_request(user, request, handover)
    )
    request.status = "resolved"
    await session.commit()
    return request


async def pending_help_request_count(session: AsyncSession, user: models.User) -> int:
    query = select(func.count(models.HelpRequest.id)).where(models.HelpRequest.status == "pending")
    query = policies.scope_help_requests(query, user)
    result = await session.execute(query)
    return result.scalar_one()
