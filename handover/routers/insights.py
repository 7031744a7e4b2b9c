"""Insight endpoints: webhook ingestion, generated insights, feeds and
document uploads."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ai.insights import generate_handover_insights, generate_task_summary
from ai.llm import LLMClient

from .. import models, policies
from ..config import settings
from ..db import get_session
from ..deps import get_current_user, get_llm_client, require_monitor, verify_webhook_secret
from ..pipelines import admin, collaboration, documents, feeds, handovers
from ..pipelines.ingest import IngestionError, InsightPayload, ingest_insights
from ..schemas import (
    DocumentUploadDTO,
    DocumentUploadResponse,
    GenerateInsightsRequest,
    GenerateInsightsResponse,
    HRInsightDTO,
    InsightRecordDTO,
    InsightTitlesDTO,
    NormalizedInsightDTO,
    TaskSummaryRequest,
    TaskSummaryResponse,
    WebhookInsightRequest,
    WebhookInsightResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["insights"])


@router.post(
    "/webhooks/ai-insights",
    response_model=WebhookInsightResponse,
    responses={400: {"description": "insights missing"}, 500: {"description": "storage failure"}},
    dependencies=[Depends(verify_webhook_secret)],
)
async def receive_ai_insights(
    request: WebhookInsightRequest,
    session: AsyncSession = Depends(get_session),
):
    """Store an insight payload from the analysis service.

    Identity hints are resolved best effort; the record is stored even when
    neither the handover nor the user can be determined.
    """
    if request.insights is None or request.insights == "":
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing required field: insights"},
        )

    logger.info(f"Received AI insights webhook (handover={request.handover_id}, user={request.user_id})")
    try:
        record = await ingest_insights(
            session,
            InsightPayload(
                insights=request.insights,
                handover_id=request.handover_id,
                user_id=request.user_id,
                file_path=request.file_path,
                metadata=request.metadata or {},
            ),
        )
    except IngestionError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to insert AI insights", "details": str(e)},
        )

    return WebhookInsightResponse(
        success=True,
        message="AI insights received and stored successfully",
        data=[InsightRecordDTO.model_validate(record)],
    )


@router.post("/ai/insights", response_model=GenerateInsightsResponse)
async def generate_insights(
    request: GenerateInsightsRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    client: LLMClient = Depends(get_llm_client),
) -> GenerateInsightsResponse:
    """Ask the LLM for the three insight sections of a handover.

    LLM failures are mapped by the app's exception handlers; nothing is
    stored either way.
    """
    handover = await handovers.get_handover(session, request.handoverId)
    policies.require(policies.can_view_handover(user, handover))

    employee = handover.employee
    department = request.department or (employee.department if employee else None)
    employee_name = request.exitingEmployeeName or (employee.email.split("@")[0] if employee else None)
    tasks = request.tasks if request.tasks is not None else handover.tasks

    insights = await generate_handover_insights(client, tasks, employee_name, department)
    titles = await admin.get_insight_titles(session, department)
    return GenerateInsightsResponse(insights=insights, titles=InsightTitlesDTO.model_validate(titles))


@router.post("/ai/task-summary", response_model=TaskSummaryResponse)
async def task_summary(
    request: TaskSummaryRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    client: LLMClient = Depends(get_llm_client),
) -> TaskSummaryResponse:
    """Summarize a task for the successor and remember the result."""
    task_id = request.taskId or (request.task.id if request.task else None)
    if request.task is None and not request.taskId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task data is required")

    stored_task = None
    if task_id:
        try:
            stored_task = await collaboration.get_task(session, task_id)
        except handovers.NotFound:
            if request.task is None:
                raise
        if stored_task is not None:
            policies.require(policies.can_view_handover(user, stored_task.handover))

    summary = await generate_task_summary(client, request.task or stored_task, request.exitingEmployeeName)

    if stored_task is not None:
        result = await session.execute(
            select(models.TaskInsight).where(models.TaskInsight.task_id == stored_task.id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = models.TaskInsight(task_id=stored_task.id)
            session.add(row)
        row.insights = summary.summary
        row.next_action_items = list(summary.nextActionItems)
        row.has_next_actions = summary.hasNextActions
        await session.commit()

    return TaskSummaryResponse(summary=summary)


@router.get("/insights/me", response_model=list[NormalizedInsightDTO])
async def my_insights(
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[NormalizedInsightDTO]:
    items = await feeds.user_insight_feed(session, user)
    return [NormalizedInsightDTO.model_validate(item) for item in items]


@router.get("/insights/hr", response_model=list[HRInsightDTO])
async def hr_insights(
    user: models.User = Depends(require_monitor),
    session: AsyncSession = Depends(get_session),
) -> list[HRInsightDTO]:
    items = await feeds.hr_insight_feed(session)
    return [HRInsightDTO.model_validate(item) for item in items]


@router.post("/documents", response_model=DocumentUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(..., description="Handover document"),
    forward: bool = Query(default=True, description="Send to the analysis webhook"),
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> DocumentUploadResponse:
    """Store a document and (optionally) send it for analysis."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required")

    try:
        content = await file.read()
        try:
            upload = await documents.store_upload(session, user, file.filename, content)
        except documents.DocumentError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        record = None
        message = "Document stored"
        if forward and settings.webhooks.document_url:
            try:
                record = await documents.forward_document(session, upload)
                message = "Document webhook sent successfully"
            except documents.DocumentError as e:
                logger.error(f"Document forwarding failed: {e}")
                raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    finally:
        await file.close()

    return DocumentUploadResponse(
        upload=DocumentUploadDTO.model_validate(upload),
        insight=InsightRecordDTO.model_validate(record) if record is not None else None,
        message=message,
    )
