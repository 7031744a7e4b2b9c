"""Insight feeds for the successor/employee dashboards and the HR panel."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from handover import models
from handover.config import settings
from handover.pipelines.handovers import fetch_handover_rows, handovers_for_user
from handover.pipelines.normalization import (
    HRInsightItem,
    NormalizedInsight,
    normalize_record,
    parse_hr_items,
)
from handover.pipelines.stats import round_half_up

logger = logging.getLogger(__name__)

HR_FEED_RECORD_LIMIT = 10
HR_FEED_ITEM_LIMIT = 6
SYSTEM_FALLBACK_LIMIT = 3
BEST_DEPARTMENT_THRESHOLD = 60


async def user_insight_feed(session: AsyncSession, user: models.User) -> list[NormalizedInsight]:
    """Normalized insights linked to the user or to one of their handovers."""
    handover_ids = await handovers_for_user(session, user.id)

    conditions = [
        models.KnowledgeInsight.user_id == user.id,
        # Records whose e-mail could not be resolved at ingestion time
        models.KnowledgeInsight.user_id == user.email,
    ]
    if handover_ids:
        conditions.append(models.KnowledgeInsight.handover_id.in_(handover_ids))

    result = await session.execute(
        select(models.KnowledgeInsight)
        .where(or_(*conditions))
        .order_by(models.KnowledgeInsight.created_at.desc(), models.KnowledgeInsight.id.desc())
    )
    records = list(result.scalars().all())

    if not records and settings.handover.insights_system_fallback:
        logger.info(f"No insights for user {user.id}; using system-wide fallback")
        result = await session.execute(
            select(models.KnowledgeInsight)
            .order_by(models.KnowledgeInsight.created_at.desc(), models.KnowledgeInsight.id.desc())
            .limit(SYSTEM_FALLBACK_LIMIT)
        )
        records = list(result.scalars().all())

    items: list[NormalizedInsight] = []
    for record in records:
        items.extend(normalize_record(record.id, record.insights, record.created_at))
    return items


def handover_alerts(handovers: Sequence[models.Handover], now: datetime | None = None) -> tuple[list[HRInsightItem], list[HRInsightItem]]:
    """Synthetic HR items derived from handover rows.

    Returns (leading, trailing): alerts shown before stored insights and
    trends shown after them.
    """
    now = now or datetime.utcnow()
    leading: list[HRInsightItem] = []
    trailing: list[HRInsightItem] = []
    if not handovers:
        return leading, trailing

    total = len(handovers)
    unassigned = sum(1 for h in handovers if not h.successor_id)
    low_progress = sum(1 for h in handovers if (h.progress or 0) < 30)

    if low_progress:
        leading.append(
            HRInsightItem(
                type="prediction",
                title="Knowledge Loss Risk Forecast",
                description=f"{round_half_up(low_progress / total * 100)}% of transitions at risk due to slow progress",
                priority="high",
                created_at=now,
            )
        )
    if unassigned:
        plural = "s" if unassigned > 1 else ""
        leading.append(
            HRInsightItem(
                type="alert",
                title="Unassigned Successors Alert",
                description=f"{unassigned} handover{plural} without assigned successors - immediate action required",
                priority="critical",
                created_at=now,
            )
        )

    departments: dict[str, list[int]] = {}
    for h in handovers:
        dept = (h.employee.department if h.employee else None) or "Unknown"
        departments.setdefault(dept, []).append(h.progress or 0)
    best_dept, best_avg = max(
        ((dept, sum(values) / len(values)) for dept, values in departments.items()),
        key=lambda pair: pair[1],
    )
    if best_avg > BEST_DEPARTMENT_THRESHOLD:
        trailing.append(
            HRInsightItem(
                type="trend",
                title="Department Performance Excellence",
                description=(
                    f"{best_dept} department showing {round_half_up(best_avg)}% average progress "
                    "in knowledge transfers"
                ),
                priority="positive",
                created_at=now,
            )
        )
    return leading, trailing


def system_ready_item() -> HRInsightItem:
    return HRInsightItem(
        type="recommendation",
        title="System Ready",
        description="AI monitoring system is active and analyzing handover patterns",
        priority="positive",
        created_at=datetime.utcnow(),
    )


async def hr_insight_feed(session: AsyncSession) -> list[HRInsightItem]:
    """Stored insights plus handover alerts, at most six items.

    A database failure yields the single "System Ready" placeholder.
    """
    try:
        result = await session.execute(
            select(models.KnowledgeInsight)
            .order_by(models.KnowledgeInsight.created_at.desc(), models.KnowledgeInsight.id.desc())
            .limit(HR_FEED_RECORD_LIMIT)
        )
        stored: list[HRInsightItem] = []
        for record in result.scalars().all():
            stored.extend(parse_hr_items(record.insights, record.insight, record.created_at))

        handovers = await fetch_handover_rows(session)
    except SQLAlchemyError as e:
        logger.error(f"Failed to build HR insight feed: {e}", exc_info=True)
        return [system_ready_item()]

    leading, trailing = handover_alerts(handovers)
    return (leading + stored + trailing)[:HR_FEED_ITEM_LIMIT]
