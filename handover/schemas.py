"""Pydantic request and response models for the API."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ai.insights import GeneratedInsights, TaskBrief, TaskSummary


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


# Users and handovers

class UserDTO(ORMModel):
    id: str
    email: str
    role: str
    department: str | None = None
    tenant_id: str | None = None
    created_at: datetime


class TaskDTO(ORMModel):
    id: str
    handover_id: str | None = None
    title: str
    description: str | None = None
    status: str
    priority: str
    category: str | None = None
    notes: str | None = None
    due_date: datetime | None = None
    successor_acknowledged: bool = False
    successor_acknowledged_at: datetime | None = None
    created_at: datetime


class HandoverDTO(ORMModel):
    """A handover with its participants and tasks."""
    id: str
    employee_id: str | None = None
    successor_id: str | None = None
    progress: int
    created_at: datetime
    employee: UserDTO | None = None
    successor: UserDTO | None = None
    tasks: list[TaskDTO] = Field(default_factory=list)


class HandoverDetailsDTO(ORMModel):
    """HR list row with derived fields."""
    id: str
    exiting_employee: str
    exiting_employee_email: str
    successor: str
    successor_email: str | None = None
    department: str
    progress: int
    due_date: str
    status: str
    critical_gaps: int
    risk_level: str
    recommendation: str
    task_count: int
    completed_tasks: int
    created_at: datetime


class HandoverStatsDTO(ORMModel):
    total_handovers: int
    completed_handovers: int
    in_progress_handovers: int
    overall_progress: int
    high_risk_count: int
    exiting_employees: int
    successors_assigned: int
    department_distribution: dict[str, int]


class CreateHandoverRequest(BaseModel):
    employee_id: str = Field(min_length=1)
    successor_id: str | None = None


class AssignSuccessorRequest(BaseModel):
    successor_id: str | None = None


class UpdateProgressRequest(BaseModel):
    progress: int = Field(ge=0, le=100)


class SyncIdentitiesRequest(BaseModel):
    """Repair one e-mail (email + user_id) or every duplicated e-mail (empty)."""
    email: str | None = None
    user_id: str | None = None


class SyncIdentitiesResponse(BaseModel):
    repointed: dict[str, int]
    total: int


# Insights

class WebhookInsightRequest(BaseModel):
    """Inbound insight payload; ``insights`` may be any JSON value."""
    handover_id: str | None = None
    insights: Any = None
    user_id: str | None = None
    file_path: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("handover_id", "user_id", "file_path", mode="before")
    @classmethod
    def coerce_identifiers(cls, v):
        # Third-party senders may use numeric ids
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class InsightRecordDTO(ORMModel):
    id: int
    handover_id: str | None = None
    user_id: str | None = None
    file_path: str | None = None
    insights: Any = None
    insight: str
    created_at: datetime


class WebhookInsightResponse(BaseModel):
    success: bool
    message: str
    data: list[InsightRecordDTO]


class InsightTitlesDTO(ORMModel):
    revenue_title: str
    playbook_title: str
    critical_title: str


class GenerateInsightsRequest(BaseModel):
    handoverId: str
    tasks: list[TaskBrief] | None = None
    exitingEmployeeName: str | None = None
    department: str | None = None


class GenerateInsightsResponse(BaseModel):
    insights: GeneratedInsights
    titles: InsightTitlesDTO


class TaskSummaryRequest(BaseModel):
    task: TaskBrief | None = None
    taskId: str | None = None
    exitingEmployeeName: str | None = None


class TaskSummaryResponse(BaseModel):
    summary: TaskSummary


class NormalizedInsightDTO(ORMModel):
    id: str
    title: str
    description: str
    severity: str
    icon: str
    created_at: datetime


class HRInsightDTO(ORMModel):
    type: str
    title: str
    description: str
    priority: str
    created_at: datetime


# Collaboration

class CreateTaskRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    category: str | None = None
    due_date: datetime | None = None


class UpdateTaskRequest(BaseModel):
    status: str | None = Field(default=None, min_length=1, max_length=50)
    notes: str | None = None


class ContentRequest(BaseModel):
    content: str = Field(min_length=1)


class NoteDTO(ORMModel):
    id: str
    task_id: str | None = None
    content: str | None = None
    created_by: str | None = None
    created_at: datetime


class MessageDTO(ORMModel):
    id: str
    handover_id: str | None = None
    sender_id: str | None = None
    content: str | None = None
    created_at: datetime


class CreateHelpRequest(BaseModel):
    task_id: str
    request_type: Literal["employee", "manager"]
    message: str = Field(min_length=1)


class RespondHelpRequest(BaseModel):
    response: str = Field(min_length=1)


class HelpTaskDTO(ORMModel):
    id: str
    title: str
    description: str | None = None
    status: str


class HelpRequestDTO(ORMModel):
    id: str
    task_id: str
    handover_id: str
    requester_id: str
    request_type: str
    message: str
    status: str
    response: str | None = None
    responded_by: str | None = None
    responded_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    task: HelpTaskDTO | None = None


class CountResponse(BaseModel):
    count: int


# Meetings

class CreateMeetingRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    meeting_date: date
    meeting_time: time
    duration: str = Field(min_length=1, max_length=50)
    attendees: list[str] = Field(default_factory=list)
    task_id: str | None = None
    handover_id: str | None = None
    description: str | None = None


class MeetingDTO(ORMModel):
    id: str
    task_id: str | None = None
    handover_id: str | None = None
    title: str
    description: str | None = None
    meeting_date: str
    meeting_time: str
    duration: str
    attendees: list[str]
    meeting_link: str | None = None
    status: str
    ai_summary: str | None = None
    ai_action_items: list[dict] = Field(default_factory=list)
    created_by: str | None = None
    created_at: datetime


# Administration

class CreateUserRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    role: str
    department: str | None = None
    tenant_id: str | None = None


class UpdateUserRequest(BaseModel):
    role: str | None = None
    department: str | None = None


class TenantDTO(ORMModel):
    id: str
    name: str
    domain: str | None = None
    logo_url: str | None = None
    plan: str
    status: str
    max_users: int
    settings: dict = Field(default_factory=dict)
    created_at: datetime


class CreateTenantRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str | None = None
    plan: str | None = None
    max_users: int | None = Field(default=None, ge=1)


class UpdateTenantRequest(BaseModel):
    name: str | None = None
    domain: str | None = None
    logo_url: str | None = None
    plan: str | None = None
    status: str | None = None
    max_users: int | None = Field(default=None, ge=1)
    settings: dict | None = None


class InsightConfigDTO(ORMModel):
    id: str
    department: str
    revenue_title: str
    playbook_title: str
    critical_title: str


class UpdateInsightConfigRequest(BaseModel):
    revenue_title: str | None = None
    playbook_title: str | None = None
    critical_title: str | None = None


class IntegrationDTO(ORMModel):
    id: str
    user_id: str
    integration_type: str
    integration_name: str
    status: str
    metadata: dict | None = Field(default=None, validation_alias=AliasChoices("metadata_", "metadata"))
    expires_at: datetime | None = None
    created_at: datetime


class ConnectIntegrationRequest(BaseModel):
    integration_type: str = Field(min_length=1, max_length=50)
    integration_name: str = Field(min_length=1, max_length=255)
    metadata: dict | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None


class ChecklistTaskInput(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category: str | None = None
    priority: Literal["low", "medium", "high", "critical"] = "medium"


class ChecklistTaskDTO(ORMModel):
    id: str
    title: str
    description: str | None = None
    category: str
    priority: str
    order_index: int


class CreateChecklistTemplateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    role: str
    department: str | None = None
    description: str | None = None
    tasks: list[ChecklistTaskInput] = Field(default_factory=list)


class ChecklistTemplateDTO(ORMModel):
    id: str
    name: str
    description: str | None = None
    role: str
    department: str | None = None
    is_active: bool
    tasks: list[ChecklistTaskDTO] = Field(default_factory=list)


# Documents

class DocumentUploadDTO(ORMModel):
    id: str
    user_id: str
    filename: str
    file_path: str
    webhook_sent: bool
    uploaded_at: datetime


class DocumentUploadResponse(BaseModel):
    upload: DocumentUploadDTO
    insight: InsightRecordDTO | None = None
    message: str
