"""Administration endpoints (admins only, except where noted)."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..db import get_session
from ..deps import get_current_user, require_admin, require_monitor
from ..pipelines import admin
from ..schemas import (
    ChecklistTemplateDTO,
    ConnectIntegrationRequest,
    CreateChecklistTemplateRequest,
    CreateTenantRequest,
    CreateUserRequest,
    InsightConfigDTO,
    InsightTitlesDTO,
    IntegrationDTO,
    TenantDTO,
    UpdateInsightConfigRequest,
    UpdateTenantRequest,
    UpdateUserRequest,
    UserDTO,
)

router = APIRouter(prefix="/admin", tags=["admin"])


# Users

@router.get("/users", response_model=list[UserDTO])
async def list_users(
    include_exiting: bool = Query(default=True),
    user: models.User = Depends(require_monitor),
    session: AsyncSession = Depends(get_session),
) -> list[UserDTO]:
    """HR managers read this too, to pick successors."""
    users = await admin.list_users(session, include_exiting=include_exiting)
    return [UserDTO.model_validate(u) for u in users]


@router.post("/users", response_model=UserDTO, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> UserDTO:
    created = await admin.create_user(
        session,
        email=request.email,
        role=request.role,
        department=request.department,
        tenant_id=request.tenant_id,
    )
    return UserDTO.model_validate(created)


@router.patch("/users/{user_id}", response_model=UserDTO)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> UserDTO:
    updated = await admin.update_user(session, user_id, role=request.role, department=request.department)
    return UserDTO.model_validate(updated)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_user(
    user_id: str,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await admin.delete_user(session, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Tenants

@router.get("/tenants", response_model=list[TenantDTO])
async def list_tenants(
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> list[TenantDTO]:
    return [TenantDTO.model_validate(t) for t in await admin.list_tenants(session)]


@router.post("/tenants", response_model=TenantDTO, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    request: CreateTenantRequest,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> TenantDTO:
    tenant = await admin.create_tenant(
        session,
        name=request.name,
        domain=request.domain,
        plan=request.plan,
        max_users=request.max_users,
    )
    return TenantDTO.model_validate(tenant)


@router.patch("/tenants/{tenant_id}", response_model=TenantDTO)
async def update_tenant(
    tenant_id: str,
    request: UpdateTenantRequest,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> TenantDTO:
    tenant = await admin.update_tenant(session, tenant_id, request.model_dump(exclude_unset=True))
    return TenantDTO.model_validate(tenant)


@router.delete("/tenants/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_tenant(
    tenant_id: str,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await admin.delete_tenant(session, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# AI insight titles

@router.get("/insight-config", response_model=list[InsightConfigDTO])
async def list_insight_configs(
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> list[InsightConfigDTO]:
    return [InsightConfigDTO.model_validate(c) for c in await admin.list_insight_configs(session)]


@router.get("/insight-config/{department}", response_model=InsightTitlesDTO)
async def get_insight_titles(
    department: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> InsightTitlesDTO:
    """Titles for one department (defaults when unconfigured); any signed-in user."""
    return InsightTitlesDTO.model_validate(await admin.get_insight_titles(session, department))


@router.put("/insight-config/{department}", response_model=InsightConfigDTO)
async def update_insight_config(
    department: str,
    request: UpdateInsightConfigRequest,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> InsightConfigDTO:
    config = await admin.update_insight_config(
        session,
        department,
        revenue_title=request.revenue_title,
        playbook_title=request.playbook_title,
        critical_title=request.critical_title,
    )
    return InsightConfigDTO.model_validate(config)


# Integrations (per caller)

@router.get("/integrations", response_model=list[IntegrationDTO])
async def list_integrations(
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[IntegrationDTO]:
    return [IntegrationDTO.model_validate(i) for i in await admin.list_integrations(session, user.id)]


@router.post("/integrations", response_model=IntegrationDTO)
async def connect_integration(
    request: ConnectIntegrationRequest,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> IntegrationDTO:
    integration = await admin.connect_integration(
        session,
        user.id,
        integration_type=request.integration_type,
        integration_name=request.integration_name,
        metadata=request.metadata,
        access_token=request.access_token,
        refresh_token=request.refresh_token,
        expires_at=request.expires_at,
    )
    return IntegrationDTO.model_validate(integration)


@router.delete("/integrations/{integration_type}", response_model=IntegrationDTO)
async def disconnect_integration(
    integration_type: str,
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> IntegrationDTO:
    integration = await admin.disconnect_integration(session, user.id, integration_type)
    return IntegrationDTO.model_validate(integration)


# Checklist templates

@router.get("/checklists", response_model=list[ChecklistTemplateDTO])
async def list_checklists(
    role: str | None = Query(default=None),
    department: str | None = Query(default=None),
    user: models.User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[ChecklistTemplateDTO]:
    templates = await admin.list_checklist_templates(session, role=role, department=department)
    return [ChecklistTemplateDTO.model_validate(t) for t in templates]


@router.post("/checklists", response_model=ChecklistTemplateDTO, status_code=status.HTTP_201_CREATED)
async def create_checklist(
    request: CreateChecklistTemplateRequest,
    user: models.User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> ChecklistTemplateDTO:
    template = await admin.create_checklist_template(
        session,
        user,
        name=request.name,
        role=request.role,
        department=request.department,
        description=request.description,
        tasks=[task.model_dump() for task in request.tasks],
    )
    return ChecklistTemplateDTO.model_validate(template)
