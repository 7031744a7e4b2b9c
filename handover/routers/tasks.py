"""Tasks, notes, messages and help requests."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..db import get_session
from ..deps import get_current_user
from ..pipelines import collaboration
from ..schemas import (
    ContentRequest,
    CountResponse,
    CreateHelpRequest,
    CreateTaskRequest,
    HelpRequestDTO,
    MessageDTO,
    NoteDTO,
    RespondHelpRequest,
    TaskDTO,
    UpdateTaskRequest,
)

router = APIRouter(tags=["collaboration"])


@router.get("/handovers/{handover_id}/tasks", response_model=list[TaskDTO])
async def list_tasks(
    handover_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[TaskDTO]:
    tasks = await collaboration.list_tasks(session, user, handover_id)
    return [TaskDTO.model_validate(t) for t in tasks]


@router.post("/handovers/{handover_id}/tasks", response_model=TaskDTO, status_code=status.HTTP_201_CREATED)
async def add_task(
    handover_id: str,
    request: CreateTaskRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskDTO:
    task = await collaboration.add_task(
        session,
        user,
        handover_id,
        title=request.title,
        description=request.description,
        priority=request.priority,
        category=request.category,
        due_date=request.due_date,
    )
    return TaskDTO.model_validate(task)


@router.patch("/tasks/{task_id}", response_model=TaskDTO)
async def update_task(
    task_id: str,
    request: UpdateTaskRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskDTO:
    """Update status/notes; the handover progress follows."""
    task = await collaboration.update_task(session, user, task_id, status=request.status, notes=request.notes)
    return TaskDTO.model_validate(task)


@router.post("/tasks/{task_id}/acknowledge", response_model=TaskDTO)
async def acknowledge_task(
    task_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TaskDTO:
    task = await collaboration.acknowledge_task(session, user, task_id)
    return TaskDTO.model_validate(task)


@router.get("/tasks/{task_id}/notes", response_model=list[NoteDTO])
async def list_notes(
    task_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[NoteDTO]:
    notes = await collaboration.list_notes(session, user, task_id)
    return [NoteDTO.model_validate(n) for n in notes]


@router.post("/tasks/{task_id}/notes", response_model=NoteDTO, status_code=status.HTTP_201_CREATED)
async def add_note(
    task_id: str,
    request: ContentRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> NoteDTO:
    note = await collaboration.add_note(session, user, task_id, request.content)
    return NoteDTO.model_validate(note)


@router.get("/handovers/{handover_id}/messages", response_model=list[MessageDTO])
async def list_messages(
    handover_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[MessageDTO]:
    messages = await collaboration.list_messages(session, user, handover_id)
    return [MessageDTO.model_validate(m) for m in messages]


@router.post("/handovers/{handover_id}/messages", response_model=MessageDTO, status_code=status.HTTP_201_CREATED)
async def post_message(
    handover_id: str,
    request: ContentRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> MessageDTO:
    message = await collaboration.post_message(session, user, handover_id, request.content)
    return MessageDTO.model_validate(message)


@router.get("/help-requests", response_model=list[HelpRequestDTO])
async def list_help_requests(
    handover_id: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[HelpRequestDTO]:
    requests = await collaboration.list_help_requests(
        session, user, handover_id=handover_id, status=status_filter
    )
    return [HelpRequestDTO.model_validate(r) for r in requests]


@router.get("/help-requests/pending-count", response_model=CountResponse)
async def pending_help_requests(
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CountResponse:
    return CountResponse(count=await collaboration.pending_help_request_count(session, user))


@router.post("/help-requests", response_model=HelpRequestDTO, status_code=status.HTTP_201_CREATED)
async def create_help_request(
    request: CreateHelpRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> HelpRequestDTO:
    help_request = await collaboration.create_help_request(
        session, user, request.task_id, request.request_type, request.message
    )
    return HelpRequestDTO.model_validate(help_request)


@router.post("/help-requests/{request_id}/respond", response_model=HelpRequestDTO)
async def respond_to_help_request(
    request_id: str,
    request: RespondHelpRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> HelpRequestDTO:
    help_request = await collaboration.respond_to_help_request(session, user, request_id, request.response)
    return HelpRequestDTO.model_validate(help_request)


@router.post("/help-requests/{request_id}/resolve", response_model=HelpRequestDTO)
async def resolve_help_request(
    request_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> HelpRequestDTO:
    help_request = await collaboration.resolve_help_request(session, user, request_id)
    return HelpRequestDTO.model_validate(help_request)
