"""Administration pipeline: users, tenants, insight titles, integrations
and checklist templates."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from handover import models, policies
from handover.pipelines.handovers import HandoverError, NotFound, get_handover, recalculate_progress
from handover.pipelines.stats import normalize_department

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ROLES = {role.value for role in policies.Role}

DEFAULT_REVENUE_TITLE = "Revenue Insights"
DEFAULT_PLAYBOOK_TITLE = "Playbook: What to Deprioritize"
DEFAULT_CRITICAL_TITLE = "Critical Items (Next 30 Days)"


@dataclass
class InsightTitles:
    revenue_title: str = DEFAULT_REVENUE_TITLE
    playbook_title: str = DEFAULT_PLAYBOOK_TITLE
    critical_title: str = DEFAULT_CRITICAL_TITLE


# Users

async def list_users(session: AsyncSession, *, include_exiting: bool = True) -> list[models.User]:
    """All users by e-mail; successor pickers pass include_exiting=False."""
    query = select(models.User).order_by(models.User.email.asc())
    if not include_exiting:
        query = query.where(models.User.role != policies.Role.EXITING.value)
    result = await session.execute(query)
    return list(result.scalars().all())


async def create_user(
    session: AsyncSession,
    *,
    email: str,
    role: str,
    department: str | None = None,
    tenant_id: str | None = None,
) -> models.User:
    email = email.strip()
    if not EMAIL_PATTERN.match(email):
        raise HandoverError("Invalid email format")
    if role not in ROLES:
        raise HandoverError(f"Unknown role: {role}")

    existing = await session.execute(
        select(models.User.id).where(func.lower(models.User.email) == email.lower())
    )
    if existing.first() is not None:
        raise HandoverError("User with this email already exists")

    user = models.User(email=email, role=role, department=department, tenant_id=tenant_id)
    session.add(user)
    await session.commit()
    logger.info(f"Created user {user.id} ({role})")
    return user


async def update_user(
    session: AsyncSession,
    user_id: str,
    *,
    role: str | None = None,
    department: str | None = None,
) -> models.User:
    user = await session.get(models.User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    if role is not None:
        if role not in ROLES:
            raise HandoverError(f"Unknown role: {role}")
        user.role = role
    if department is not None:
        user.department = department
    await session.commit()
    return user


async def delete_user(session: AsyncSession, user_id: str) -> None:
    user = await session.get(models.User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    await session.delete(user)
    await session.commit()
    logger.info(f"Deleted user {user_id}")


# Tenants

async def list_tenants(session: AsyncSession) -> list[models.Tenant]:
    result = await session.execute(select(models.Tenant).order_by(models.Tenant.created_at.desc()))
    return list(result.scalars().all())


async def create_tenant(
    session: AsyncSession,
    *,
    name: str,
    domain: str | None = None,
    plan: str | None = None,
    max_users: int | None = None,
) -> models.Tenant:
    tenant = models.Tenant(
        name=name,
        domain=domain,
        plan=plan or "starter",
        max_users=max_users or 50,
    )
    session.add(tenant)
    await session.commit()
    return tenant


async def update_tenant(session: AsyncSession, tenant_id: str, changes: Mapping[str, Any]) -> models.Tenant:
    tenant = await session.get(models.Tenant, tenant_id)
    if tenant is None:
        raise NotFound(f"Tenant {tenant_id} not found")
    for key in ("name", "domain", "logo_url", "plan", "status", "max_users", "settings"):
        if key in changes and changes[key] is not None:
            setattr(tenant, key, changes[key])
    await session.commit()
    return tenant


async def delete_tenant(session: AsyncSession, tenant_id: str) -> None:
    tenant = await session.get(models.Tenant, tenant_id)
    if tenant is None:
        raise NotFound(f"Tenant {tenant_id} not found")
    await session.delete(tenant)
    await session.commit()


# AI insight titles

async def get_insight_titles(session: AsyncSession, department: str | None) -> InsightTitles:
    """Configured section titles for a department, defaults otherwise."""
    if not department:
        return InsightTitles()
    candidates = {department, normalize_department(department)}
    result = await session.execute(
        select(models.AIInsightConfig).where(models.AIInsightConfig.department.in_(candidates))
    )
    config = result.scalars().first()
    if config is None:
        return InsightTitles()
    return InsightTitles(
        revenue_title=config.revenue_title,
        playbook_title=config.playbook_title,
        critical_title=config.critical_title,
    )


async def list_insight_configs(session: AsyncSession) -> list[models.AIInsightConfig]:
    result = await session.execute(
        select(models.AIInsightConfig).order_by(models.AIInsightConfig.department.asc())
    )
    return list(result.scalars().all())


async def update_insight_config(
    session: AsyncSession,
    department: str,
    *,
    revenue_title: str | None = None,
    playbook_title: str | None = None,
    critical_title: str | None = None,
) -> models.AIInsightConfig:
    """Update a department's titles, creating the row on first use."""
    result = await session.execute(
        select(models.AIInsightConfig).where(models.AIInsightConfig.department == department)
    )
    config = result.scalar_one_or_none()
    if config is None:
        config = models.AIInsightConfig(
            department=department,
            revenue_title=DEFAULT_REVENUE_TITLE,
            playbook_title=DEFAULT_PLAYBOOK_TITLE,
            critical_title=DEFAULT_CRITICAL_TITLE,
        )
        session.add(config)
    if revenue_title:
        config.revenue_title = revenue_title
    if playbook_title:
        config.playbook_title = playbook_title
    if critical_title:
        config.critical_title = critical_title
    await session.commit()
    return config


# Integrations

async def list_integrations(session: AsyncSession, user_id: str) -> list[models.Integration]:
    result = await session.execute(
        select(models.Integration)
        .where(models.Integration.user_id == user_id)
        .order_by(models.Integration.integration_type.asc())
    )
    return list(result.scalars().all())


async def connect_integration(
    session: AsyncSession,
    user_id: str,
    *,
    integration_type: str,
    integration_name: str,
    metadata: Mapping[str, Any] | None = None,
    access_token: str | None = None,
    refresh_token: str | None = None,
    expires_at: datetime | None = None,
) -> models.Integration:
    """One integration per user and type; reconnecting updates it."""
    result = await session.execute(
        select(models.Integration).where(
            models.Integration.user_id == user_id,
            models.Integration.integration_type == integration_type,
        )
    )
    integration = result.scalar_one_or_none()
    if integration is None:
        integration = models.Integration(user_id=user_id, integration_type=integration_type)
        session.add(integration)

    integration.integration_name = integration_name
    integration.status = "connected"
    integration.metadata_ = dict(metadata) if metadata is not None else None
    integration.access_token = access_token
    integration.refresh_token = refresh_token
    integration.expires_at = expires_at
    await session.commit()
    return integration


async def disconnect_integration(session: AsyncSession, user_id: str, integration_type: str) -> models.Integration:
    result = await session.execute(
        select(models.Integration).where(
            models.Integration.user_id == user_id,
            models.Integration.integration_type == integration_type,
        )
    )
    integration = result.scalar_one_or_none()
    if integration is None:
        raise NotFound(f"No {integration_type} integration for user {user_id}")
    integration.status = "disconnected"
    integration.access_token = None
    integration.refresh_token = None
    await session.commit()
    return integration


# Checklist templates

async def create_checklist_template(
    session: AsyncSession,
    user: models.User,
    *,
    name: str,
    role: str,
    tasks: Iterable[Mapping[str, Any]],
    department: str | None = None,
    description: str | None = None,
) -> models.ChecklistTemplate:
    template = models.ChecklistTemplate(
        name=name,
        role=role,
        department=department,
        description=description,
        created_by=user.id,
    )
    for index, item in enumerate(tasks):
        template.tasks.append(
            models.ChecklistTemplateTask(
                title=item["title"],
                description=item.get("description"),
                category=item.get("category") or "General",
                priority=item.get("priority") or "medium",
                order_index=item.get("order_index", index),
            )
        )
    session.add(template)
    await session.commit()
    return await get_checklist_template(session, template.id)


async def get_checklist_template(session: AsyncSession, template_id: str) -> models.ChecklistTemplate:
    result = await session.execute(
        select(models.ChecklistTemplate)
        .options(selectinload(models.ChecklistTemplate.tasks))
        .where(models.ChecklistTemplate.id == template_id)
        .execution_options(populate_existing=True)
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise NotFound(f"Checklist template {template_id} not found")
    return template


async def list_checklist_templates(
    session: AsyncSession,
    *,
    role: str | None = None,
    department: str | None = None,
    active_only: bool = True,
) -> list[models.ChecklistTemplate]:
    query = (
        select(models.ChecklistTemplate)
        .options(selectinload(models.ChecklistTemplate.tasks))
        .order_by(models.ChecklistTemplate.name.asc())
    )
    if role:
        query = query.where(models.ChecklistTemplate.role == role)
    if department:
        query = query.where(models.ChecklistTemplate.department == department)
    if active_only:
        query = query.where(models.ChecklistTemplate.is_active.is_(True))
    result = await session.execute(query)
    return list(result.scalars().all())


async def apply_checklist_template(
    session: AsyncSession,
    user: models.User,
    handover_id: str,
    template_id: str,
) -> list[models.Task]:
    """Copy a template's tasks into a handover."""
    handover = await get_handover(session, handover_id)
    policies.require(policies.can_edit_handover(user, handover) or policies.can_manage_handovers(user))
    template = await get_checklist_template(session, template_id)
    if not template.is_active:
        raise HandoverError(f"Checklist template {template_id} is inactive")

    created = [
        models.Task(
            handover_id=handover_id,
            title=item.title,
            description=item.description,
            category=item.category,
            priority=item.priority,
        )
        for item in template.tasks
    ]
    session.add_all(created)
    await session.commit()
    await recalculate_progress(session, handover_id)
    logger.info(f"Applied template {template_id} to handover {handover_id} ({len(created)} tasks)")
    return created
