"""Prompting and response shaping for generated handover insights.

Each generator builds a prompt from handover data, asks the LLM for JSON
and validates the reply against a pydantic schema. A reply that is not JSON
or does not fit the schema raises LLMParseError; nothing is stored here.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field, ValidationError

from ai.llm import LLMClient, LLMParseError
from handover.config import settings
from handover.pipelines.stats import DONE_STATUSES

logger = logging.getLogger(__name__)


class TaskBrief(BaseModel):
    """Task fields shared with the model."""
    id: str | None = None
    title: str
    status: str = "pending"
    priority: str | None = "medium"
    category: str | None = None
    notes: str | None = ""
    description: str | None = ""
    due_date: str | None = Field(default=None, alias="dueDate")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @classmethod
    def from_task(cls, task: Any) -> TaskBrief:
        """Build from an ORM task or a plain mapping."""
        if isinstance(task, TaskBrief):
            return task
        if isinstance(task, Mapping):
            return cls.model_validate(task)
        return cls(
            id=task.id,
            title=task.title,
            status=task.status,
            priority=task.priority,
            category=task.category,
            notes=task.notes or "",
            description=task.description or "",
            due_date=task.due_date.date().isoformat() if task.due_date else None,
        )


class RevenueInsight(BaseModel):
    metric: str
    value: str
    insight: str


class PlaybookAction(BaseModel):
    title: str
    detail: str


class CriticalItem(BaseModel):
    title: str
    insight: str


class GeneratedInsights(BaseModel):
    """The three sections shown on the successor dashboard."""
    revenueInsights: list[RevenueInsight] = Field(default_factory=list)
    playbookActions: list[PlaybookAction] = Field(default_factory=list)
    criticalItems: list[CriticalItem] = Field(default_factory=list)


class TaskSummary(BaseModel):
    summary: str
    nextActionItems: list[str] = Field(default_factory=list)
    hasNextActions: bool = False


class ActionItem(BaseModel):
    title: str
    priority: str = "medium"


class MeetingSummary(BaseModel):
    summary: str
    actionItems: list[ActionItem] = Field(default_factory=list)


INSIGHTS_SYSTEM_PROMPT = (
    "You are a business analyst AI that generates actionable insights from handover data. "
    "Always respond with valid JSON only."
)

TASK_SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful AI that generates task summaries for employee handovers. "
    "Always respond with valid JSON only."
)

MEETING_SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful AI that summarizes knowledge transfer meetings. "
    "Always respond with valid JSON only."
)


def _validate(schema: type[BaseModel], payload: Any):
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        logger.error(f"AI response does not match {schema.__name__}: {e}")
        raise LLMParseError() from e


def build_insights_prompt(tasks: list[TaskBrief], employee_name: str | None, department: str | None) -> str:
    completed = [t for t in tasks if t.status in DONE_STATUSES]
    critical = [t for t in tasks if t.priority in ("critical", "high")]
    task_details = json.dumps(
        [t.model_dump(include={"title", "status", "priority", "category", "notes", "description"}) for t in tasks],
        indent=2,
    )
    return f"""You are an AI assistant analyzing a knowledge transfer handover from an exiting employee to their successor.

HANDOVER CONTEXT:
- Exiting Employee: {employee_name or 'Unknown'}
- Department: {department or 'General'}
- Total Tasks: {len(tasks)}
- Completed Tasks: {len(completed)}
- Pending Tasks: {len(tasks) - len(completed)}
- Critical/High Priority Tasks: {len(critical)}

TASK DETAILS:
{task_details}

Based on this handover data, generate actionable AI insights in the following JSON format:

{{
  "revenueInsights": [
    {{"metric": "Key Business Metric", "value": "Quantified value or percentage", "insight": "Actionable insight about revenue impact"}}
  ],
  "playbookActions": [
    {{"title": "Action Item Title", "detail": "What to deprioritize or do, with timeline or impact"}}
  ],
  "criticalItems": [
    {{"title": "Critical Issue Title", "insight": "Why this is critical and the recommended action, time-boxed"}}
  ]
}}

INSTRUCTIONS:
1. Generate 3 revenue/business insights based on the handover tasks
2. Generate 3 actionable playbook items for the successor
3. Generate 3 critical/priority items that need immediate attention
4. Make insights specific to the actual task titles and categories provided
5. If there are client-related tasks, mention specific client insights
6. Focus on knowledge gaps, risks, and opportunities from the task data
7. Be specific and actionable - avoid generic advice

Return ONLY valid JSON, no additional text."""


def build_task_summary_prompt(task: TaskBrief, employee_name: str | None) -> str:
    return f"""You are an AI assistant helping with employee handover and knowledge transfer. Analyze the following task and provide a clear, actionable summary for the successor who is taking over.

TASK DETAILS:
- Title: {task.title}
- Category: {task.category or 'General'}
- Status: {task.status}
- Priority: {task.priority or 'medium'}
- Description: {task.description or 'No description provided'}
- Notes/Knowledge Transfer: {task.notes or 'No additional notes'}
- Due Date: {task.due_date or 'Not specified'}
- Previous Owner: {employee_name or 'Predecessor'}

Generate a JSON response with:
1. "summary": 2-4 sentences on what was accomplished, the key outcome, and context the successor needs
2. "nextActionItems": specific follow-up actions for the successor (empty array when none)
3. "hasNextActions": whether any next actions are required

Return ONLY valid JSON in this exact format:
{{"summary": "...", "nextActionItems": ["action 1", "action 2"], "hasNextActions": true}}"""


def build_meeting_prompt(
    title: str,
    description: str | None,
    task_title: str | None,
    attendees: Iterable[str],
    duration: str,
    meeting_date: str,
) -> str:
    return f"""Summarize this knowledge transfer meeting for the successor.

MEETING:
- Title: {title}
- Description: {description or 'No description provided'}
- Related task: {task_title or 'General handover'}
- Attendees: {', '.join(attendees)}
- Duration: {duration}
- Date: {meeting_date}

Return ONLY valid JSON in this exact format:
{{"summary": "...", "actionItems": [{{"title": "...", "priority": "high|medium|low"}}]}}"""


async def generate_handover_insights(
    client: LLMClient,
    tasks: Iterable[Any],
    employee_name: str | None = None,
    department: str | None = None,
) -> GeneratedInsights:
    briefs = [TaskBrief.from_task(t) for t in tasks]
    logger.info(f"Generating AI insights for {len(briefs)} tasks")
    payload = await client.chat_json(
        INSIGHTS_SYSTEM_PROMPT,
        build_insights_prompt(briefs, employee_name, department),
        settings.llm.insights_max_tokens,
    )
    return _validate(GeneratedInsights, payload)


async def generate_task_summary(client: LLMClient, task: Any, employee_name: str | None = None) -> TaskSummary:
    brief = TaskBrief.from_task(task)
    payload = await client.chat_json(
        TASK_SUMMARY_SYSTEM_PROMPT,
        build_task_summary_prompt(brief, employee_name),
        settings.llm.summary_max_tokens,
    )
    summary = _validate(TaskSummary, payload)
    # Keep the flag consistent with the list the model returned
    summary.hasNextActions = bool(summary.nextActionItems)
    return summary


async def generate_meeting_summary(
    client: LLMClient,
    *,
    title: str,
    description: str | None,
    task_title: str | None,
    attendees: Iterable[str],
    duration: str,
    meeting_date: str,
) -> MeetingSummary:
    payload = await client.chat_json(
        MEETING_SUMMARY_SYSTEM_PROMPT,
        build_meeting_prompt(title, description, task_title, attendees, duration, meeting_date),
        settings.llm.summary_max_tokens,
    )
    return _validate(MeetingSummary, payload)
