"""Core SQLAlchemy models (2.x style) for the handover schema.

Tables mirror the collections the UI works with: users, handovers, tasks,
notes, messages, meetings, help requests, integrations, tenants, insight
title configuration and the AI insight stores.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Tenant(Base):
    """Customer organisations."""
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(255))
    logo_url: Mapped[str | None] = mapped_column(Text)
    plan: Mapped[str] = mapped_column(String(50), default="starter", nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="active", nullable=False)
    max_users: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    settings: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class User(Base):
    """Application users: exiting employees, successors, HR managers, admins."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    department: Mapped[str | None] = mapped_column(String(100))
    tenant_id: Mapped[str | None] = mapped_column(ForeignKey("tenants.id", ondelete="SET NULL"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)


class Handover(Base):
    """An employee-to-successor knowledge transfer."""
    __tablename__ = "handovers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    employee_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True)
    successor_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    # Relationships
    employee: Mapped[User | None] = relationship("User", foreign_keys=[employee_id])
    successor: Mapped[User | None] = relationship("User", foreign_keys=[successor_id])
    tasks: Mapped[list[Task]] = relationship(
        "Task",
        back_populates="handover",
        cascade="all, delete-orphan",
        order_by="Task.created_at",
    )

    __table_args__ = (
        Index("ix_handovers_created_at", "created_at"),
    )


class Task(Base):
    """Handover tasks filled in by the exiting employee."""
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    handover_id: Mapped[str | None] = mapped_column(
        ForeignKey("handovers.id", ondelete="CASCADE"),
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    category: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    due_date: Mapped[datetime | None] = mapped_column()
    successor_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    successor_acknowledged_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    handover: Mapped[Handover | None] = relationship("Handover", back_populates="tasks")


class Note(Base):
    """Free-text notes attached to a task."""
    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    task_id: Mapped[str | None] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), index=True)
    content: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)


class Message(Base):
    """Chat messages between the participants of a handover."""
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    handover_id: Mapped[str | None] = mapped_column(ForeignKey("handovers.id", ondelete="CASCADE"), index=True)
    sender_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    content: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)


class Meeting(Base):
    """Knowledge transfer sessions."""
    __tablename__ = "meetings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    task_id: Mapped[str | None] = mapped_column(ForeignKey("tasks.id", ondelete="SET NULL"), index=True)
    handover_id: Mapped[str | None] = mapped_column(ForeignKey("handovers.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    meeting_date: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD
    meeting_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    duration: Mapped[str] = mapped_column(String(50), nullable=False)
    attendees: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    meeting_link: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="scheduled", nullable=False)
    ai_summary: Mapped[str | None] = mapped_column(Text)
    ai_action_items: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    task: Mapped[Task | None] = relationship("Task")


class HelpRequest(Base):
    """Successor questions sent to the employee or escalated to a manager."""
    __tablename__ = "help_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    task_id: Mapped[str] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    handover_id: Mapped[str] = mapped_column(
        ForeignKey("handovers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requester_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    request_type: Mapped[str] = mapped_column(String(20), nullable=False)  # employee | manager
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    response: Mapped[str | None] = mapped_column(Text)
    responded_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    responded_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    task: Mapped[Task] = relationship("Task")


class Integration(Base):
    """Third-party connections (Slack, Google Drive, ...) per user."""
    __tablename__ = "integrations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    integration_type: Mapped[str] = mapped_column(String(50), nullable=False)
    integration_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="connected", nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)
    access_token: Mapped[str | None] = mapped_column(Text)
    refresh_token: Mapped[str | None] = mapped_column(Text)
    expires_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_integrations_user_type", "user_id", "integration_type", unique=True),
    )


class AIInsightConfig(Base):
    """Per-department display titles for the three generated insight sections."""
    __tablename__ = "ai_insight_config"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    department: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    revenue_title: Mapped[str] = mapped_column(String(255), nullable=False)
    playbook_title: Mapped[str] = mapped_column(String(255), nullable=False)
    critical_title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class KnowledgeInsight(Base):
    """AI insight payloads received from webhooks or document analysis.

    handover_id and user_id are best-effort links and intentionally carry no
    foreign keys: an unresolved email may be stored as user_id.
    """
    __tablename__ = "ai_knowledge_insights_complex"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    handover_id: Mapped[str | None] = mapped_column(String(36), index=True)
    user_id: Mapped[str | None] = mapped_column(String(255), index=True)
    file_path: Mapped[str | None] = mapped_column(Text)
    insights: Mapped[Any] = mapped_column(JSON, nullable=True)
    insight: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_ai_knowledge_insights_created_at", "created_at"),
    )


class TaskInsight(Base):
    """Generated task summaries, one per task."""
    __tablename__ = "ai_task_insights"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    task_id: Mapped[str] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    insights: Mapped[str] = mapped_column(Text, nullable=False)
    next_action_items: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    has_next_actions: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class DocumentUpload(Base):
    """Documents uploaded by exiting employees for AI analysis."""
    __tablename__ = "user_document_uploads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    webhook_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)


class ChecklistTemplate(Base):
    """Reusable task lists per role and department."""
    __tablename__ = "checklist_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    tasks: Mapped[list[ChecklistTemplateTask]] = relationship(
        "ChecklistTemplateTask",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="ChecklistTemplateTask.order_index",
    )


class ChecklistTemplateTask(Base):
    """A single templated task."""
    __tablename__ = "checklist_template_tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    template_id: Mapped[str] = mapped_column(
        ForeignKey("checklist_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(100), default="General", nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    template: Mapped[ChecklistTemplate] = relationship("ChecklistTemplate", back_populates="tasks")
