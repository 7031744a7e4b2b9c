"""Handover endpoints: HR list, statistics, lifecycle and identity sync."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, policies
from ..db import get_session
from ..deps import get_current_user, require_admin, require_monitor
from ..pipelines import admin, handovers
from ..schemas import (
    AssignSuccessorRequest,
    CreateHandoverRequest,
    HandoverDetailsDTO,
    HandoverDTO,
    HandoverStatsDTO,
    SyncIdentitiesRequest,
    SyncIdentitiesResponse,
    TaskDTO,
    UpdateProgressRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/handovers", tags=["handovers"])


@router.get("", response_model=list[HandoverDetailsDTO])
async def list_handovers(
    department: str | None = Query(default=None),
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[HandoverDetailsDTO]:
    """Handovers visible to the caller with risk level and recommendation."""
    rows = await handovers.list_handovers(session, user, department)
    return [HandoverDetailsDTO.model_validate(row) for row in rows]


@router.get("/stats", response_model=HandoverStatsDTO)
async def handover_stats(
    department: str | None = Query(default=None),
    user: models.User = Depends(require_monitor),
    session: AsyncSession = Depends(get_session),
) -> HandoverStatsDTO:
    stats = await handovers.handover_stats(session, department)
    return HandoverStatsDTO.model_validate(stats)


@router.get("/export.csv", response_class=Response)
async def export_handovers(
    department: str | None = Query(default=None),
    user: models.User = Depends(require_monitor),
    session: AsyncSession = Depends(get_session),
) -> Response:
    csv_text = await handovers.export_handovers_csv(session, user, department)
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="handovers.csv"'},
    )


@router.post("", response_model=HandoverDTO, status_code=status.HTTP_201_CREATED)
async def create_handover(
    request: CreateHandoverRequest,
    user: models.User = Depends(require_monitor),
    session: AsyncSession = Depends(get_session),
) -> HandoverDTO:
    handover = await handovers.create_handover(
        session,
        employee_id=request.employee_id,
        successor_id=request.successor_id,
    )
    return HandoverDTO.model_validate(handover)


@router.post("/admin/sync-identities", response_model=SyncIdentitiesResponse)
async def sync_identities(
    request: SyncIdentitiesRequest = SyncIdentitiesRequest(),
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> SyncIdentitiesResponse:
    """Repoint handovers held by duplicate user rows."""
    if request.email and request.user_id:
        changed = await handovers.ensure_identity_consistency(session, request.email, request.user_id)
        repointed = {request.email.strip().lower(): changed}
    else:
        repointed = await handovers.sync_all_identities(session)
    return SyncIdentitiesResponse(repointed=repointed, total=sum(repointed.values()))


@router.get("/{handover_id}", response_model=HandoverDTO)
async def get_handover(
    handover_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> HandoverDTO:
    handover = await handovers.get_handover(session, handover_id)
    policies.require(policies.can_view_handover(user, handover))
    return HandoverDTO.model_validate(handover)


@router.patch("/{handover_id}/successor", response_model=HandoverDTO)
async def assign_successor(
    handover_id: str,
    request: AssignSuccessorRequest,
    user: models.User = Depends(require_monitor),
    session: AsyncSession = Depends(get_session),
) -> HandoverDTO:
    handover = await handovers.assign_successor(session, handover_id, request.successor_id)
    return HandoverDTO.model_validate(handover)


@router.patch("/{handover_id}/progress", response_model=HandoverDTO)
async def update_progress(
    handover_id: str,
    request: UpdateProgressRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> HandoverDTO:
    handover = await handovers.get_handover(session, handover_id)
    policies.require(policies.can_edit_handover(user, handover))
    handover = await handovers.update_progress(session, handover_id, request.progress)
    return HandoverDTO.model_validate(handover)


@router.post(
    "/{handover_id}/checklist/{template_id}",
    response_model=list[TaskDTO],
    status_code=status.HTTP_201_CREATED,
)
async def apply_checklist(
    handover_id: str,
    template_id: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[TaskDTO]:
    tasks = await admin.apply_checklist_template(session, user, handover_id, template_id)
    return [TaskDTO.model_validate(task) for task in tasks]
