"""Row-level access policies.

Every read and write that touches a handover, its tasks or its
conversation goes through these checks. The rules:

- admin: everything.
- hr-manager: reads every handover; creates handovers, assigns successors,
  answers escalations addressed to a manager.
- exiting employee: reads and edits their own handover.
- successor: reads the handovers they take over, acknowledges tasks and asks
  for help.
"""
from __future__ import annotations

from enum import Enum

from sqlalchemy import Select, or_, select

from . import models


class Role(str, Enum):
    """User roles."""
    EXITING = "exiting"
    SUCCESSOR = "successor"
    HR_MANAGER = "hr-manager"
    ADMIN = "admin"


MONITOR_ROLES = {Role.ADMIN.value, Role.HR_MANAGER.value}


class AccessDenied(Exception):
    """Raised when the caller may not touch a row."""
    pass


def is_admin(user: models.User) -> bool:
    return user.role == Role.ADMIN.value


def is_monitor(user: models.User) -> bool:
    """Admins and HR managers see every handover."""
    return user.role in MONITOR_ROLES


def is_participant(user: models.User, handover: models.Handover) -> bool:
    return user.id in (handover.employee_id, handover.successor_id)


def can_view_handover(user: models.User, handover: models.Handover) -> bool:
    return is_monitor(user) or is_participant(user, handover)


def can_edit_handover(user: models.User, handover: models.Handover) -> bool:
    """Progress and task content belong to the exiting employee."""
    return is_admin(user) or user.id == handover.employee_id


def can_manage_handovers(user: models.User) -> bool:
    """Create handovers and (re)assign successors."""
    return is_monitor(user)


def can_acknowledge_task(user: models.User, handover: models.Handover) -> bool:
    return is_admin(user) or user.id == handover.successor_id


def can_answer_help_request(user: models.User, request: models.HelpRequest, handover: models.Handover) -> bool:
    if is_admin(user):
        return True
    if request.request_type == "manager":
        return user.role == Role.HR_MANAGER.value
    return user.id == handover.employee_id


def scope_handovers(query: Select, user: models.User) -> Select:
    """Restrict a handover query to the rows the user may see."""
    if is_monitor(user):
        return query
    return query.where(
        or_(
            models.Handover.employee_id == user.id,
            models.Handover.successor_id == user.id,
        )
    )


def scope_help_requests(query: Select, user: models.User) -> Select:
    """Help requests follow the visibility of their handover."""
    if is_monitor(user):
        return query
    visible = scope_handovers(select(models.Handover.id), user)
    return query.where(models.HelpRequest.handover_id.in_(visible))


def require(allowed: bool, message: str = "Access denied") -> None:
    if not allowed:
        raise AccessDenied(message)


def require_admin(user: models.User) -> None:
    require(is_admin(user), "Admin privileges required")
