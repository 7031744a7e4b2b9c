"""Derived handover statistics.

Pure functions over handover rows (with employee, successor and tasks
loaded): completion bucketing, heuristic risk level, recommendation text,
and the dashboard aggregates. Nothing here touches the database.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from rapidfuzz import fuzz, process

from handover import models
from handover.config import settings

logger = logging.getLogger(__name__)

DONE_STATUSES = frozenset({"completed", "done"})

CANONICAL_DEPARTMENTS = ("Sales", "Engineering", "HR", "Marketing", "Finance", "Operations")

RECOMMENDATION_NO_SUCCESSOR = "URGENT: Assign successor immediately - critical knowledge at risk"
RECOMMENDATION_LOW = "Schedule urgent knowledge transfer sessions"
RECOMMENDATION_MEDIUM = "Increase handover meeting frequency"
RECOMMENDATION_REVIEW = "Ready for final review and completion"
RECOMMENDATION_ON_TRACK = "Handover progressing well - monitor regularly"


@dataclass
class HandoverDetails:
    """One row of the HR handover list."""
    id: str
    exiting_employee: str
    exiting_employee_email: str
    successor: str
    successor_email: str | None
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


@dataclass
class HandoverStats:
    """Dashboard aggregates."""
    total_handovers: int = 0
    completed_handovers: int = 0
    in_progress_handovers: int = 0
    overall_progress: int = 0
    high_risk_count: int = 0
    exiting_employees: int = 0
    successors_assigned: int = 0
    department_distribution: dict[str, int] = field(default_factory=dict)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def derive_status(progress: float) -> str:
    if progress >= 90:
        return "review"
    if progress > 0:
        return "in-progress"
    return "pending"


def derive_risk_level(has_successor: bool, progress: float, overdue: bool = False) -> str:
    if not has_successor:
        return "critical"
    if progress < 30 or overdue:
        return "high"
    if progress < 60:
        return "medium"
    return "low"


def derive_recommendation(has_successor: bool, progress: float) -> str:
    if not has_successor:
        return RECOMMENDATION_NO_SUCCESSOR
    if progress < 30:
        return RECOMMENDATION_LOW
    if progress < 60:
        return RECOMMENDATION_MEDIUM
    if progress >= 90:
        return RECOMMENDATION_REVIEW
    return RECOMMENDATION_ON_TRACK


def critical_gaps(progress: float) -> int:
    """Coarse proxy: one gap per missing 20 percentage points."""
    return max(0, math.floor((100 - progress) / 20))


def due_date(created_at: datetime) -> datetime:
    return created_at + timedelta(days=settings.handover.deadline_days)


def is_overdue(created_at: datetime | None, now: datetime | None = None) -> bool:
    if created_at is None:
        return False
    now = now or datetime.utcnow()
    return now > due_date(created_at)


def count_done(tasks: Iterable[models.Task]) -> int:
    return sum(1 for task in tasks if task.status in DONE_STATUSES)


def task_progress(tasks: Sequence[models.Task], stored: int | None) -> int:
    """Percentage of finished tasks; the stored value when there are none."""
    if not tasks:
        return stored or 0
    return round_half_up(count_done(tasks) / len(tasks) * 100)


def effective_progress(handover: models.Handover) -> int:
    """Stored progress wins unless it is unset (zero)."""
    if handover.progress:
        return handover.progress
    if not handover.tasks:
        return 0
    return task_progress(handover.tasks, 0)


def normalize_department(name: str | None) -> str | None:
    """Map department spellings onto the canonical names.

    Known prefixes first, then a fuzzy match against the canonical list;
    anything else is returned unchanged.
    """
    if not name:
        return None
    normalized = name.lower().strip()
    if "human" in normalized or normalized == "hr":
        return "HR"
    if "engineering" in normalized or normalized == "eng":
        return "Engineering"
    if "sales" in normalized:
        return "Sales"
    if "marketing" in normalized:
        return "Marketing"

    match = process.extractOne(
        normalized,
        CANONICAL_DEPARTMENTS,
        scorer=fuzz.ratio,
        processor=str.lower,
        score_cutoff=settings.handover.department_fuzzy_threshold,
    )
    if match:
        logger.debug(f"Department '{name}' fuzzy-matched to '{match[0]}' ({match[1]:.0f})")
        return match[0]
    return name


def filter_by_department(
    handovers: Iterable[models.Handover],
    department: str | None,
) -> list[models.Handover]:
    """Keep handovers whose exiting employee belongs to the department."""
    wanted = normalize_department(department)
    if not wanted:
        return list(handovers)
    return [
        h for h in handovers
        if normalize_department(h.employee.department if h.employee else None) == wanted
    ]


def _local_part(user: models.User | None) -> str | None:
    if user is None or not user.email:
        return None
    return user.email.split("@")[0]


def build_handover_details(handover: models.Handover, now: datetime | None = None) -> HandoverDetails:
    """Compute the derived list row for one handover."""
    tasks = handover.tasks or []
    progress = effective_progress(handover)
    has_successor = bool(handover.successor_id)
    overdue = is_overdue(handover.created_at, now)

    return HandoverDetails(
        id=handover.id,
        exiting_employee=_local_part(handover.employee) or "Unknown Employee",
        exiting_employee_email=handover.employee.email if handover.employee else "",
        successor=_local_part(handover.successor) or "Not Assigned",
        successor_email=handover.successor.email if handover.successor else None,
        department=(handover.employee.department if handover.employee else None) or "Unassigned",
        progress=progress,
        due_date=due_date(handover.created_at).date().isoformat(),
        status=derive_status(progress),
        critical_gaps=critical_gaps(progress),
        risk_level=derive_risk_level(has_successor, progress, overdue),
        recommendation=derive_recommendation(has_successor, progress),
        task_count=len(tasks),
        completed_tasks=count_done(tasks),
        created_at=handover.created_at,
    )


def summarize_handovers(handovers: Sequence[models.Handover]) -> HandoverStats:
    """Aggregate dashboard numbers.

    Progress is recalculated from tasks because the stored value may lag
    behind task updates.
    """
    if not handovers:
        return HandoverStats()

    recalculated = [(h, task_progress(h.tasks or [], h.progress)) for h in handovers]

    distribution: dict[str, int] = {}
    for h in handovers:
        dept = (h.employee.department if h.employee else None) or "Unassigned"
        distribution[dept] = distribution.get(dept, 0) + 1

    return HandoverStats(
        total_handovers=len(handovers),
        completed_handovers=sum(1 for _, p in recalculated if p >= 90),
        in_progress_handovers=sum(1 for _, p in recalculated if 0 < p < 90),
        overall_progress=round_half_up(sum(p for _, p in recalculated) / len(recalculated)),
        high_risk_count=sum(1 for h, p in recalculated if p < 50 or not h.successor_id),
        exiting_employees=len(handovers),
        successors_assigned=sum(1 for h in handovers if h.successor_id),
        department_distribution=distribution,
    )
