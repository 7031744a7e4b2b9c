"""Meeting endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ai.llm import LLMClient

from .. import models
from ..db import get_session
from ..deps import get_current_user, get_llm_client
from ..pipelines import meetings
from ..schemas import CreateMeetingRequest, MeetingDTO

router = APIRouter(prefix="/meetings", tags=["meetings"])


@router.get("", response_model=list[MeetingDTO])
async def list_meetings(
    task_id: str | None = Query(default=None),
    handover_id: str | None = Query(default=None),
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[MeetingDTO]:
    rows = await meetings.list_meetings(session, user, task_id=task_id, handover_id=handover_id)
    return [MeetingDTO.model_validate(m) for m in rows]


@router.post("", response_model=MeetingDTO, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    request: CreateMeetingRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> MeetingDTO:
    meeting = await meetings.create_meeting(
        session,
        user,
        title=request.title,
        meeting_date=request.meeting_date,
        meeting_time=request.meeting_time,
        duration=request.duration,
        attendees=request.attendees,
        task_id=request.task_id,
        handover_id=request.handover_id,
        description=request.description,
    )
    return MeetingDTO.model_validate(meeting)


@router.post("/{meeting_id}/complete", response_model=MeetingDTO)
async def complete_meeting(
    meeting_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> MeetingDTO:
    meeting = await meetings.complete_meeting(session, user, meeting_id)
    return MeetingDTO.model_validate(meeting)


@router.post("/{meeting_id}/summary", response_model=MeetingDTO)
async def summarize_meeting(
    meeting_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    client: LLMClient = Depends(get_llm_client),
) -> MeetingDTO:
    """Generate a summary and action items; completes the meeting."""
    meeting = await meetings.summarize_meeting(session, user, meeting_id, client)
    return MeetingDTO.model_validate(meeting)
