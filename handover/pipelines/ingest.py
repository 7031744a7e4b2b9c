"""Insight ingestion pipeline.

Accepts an insight payload from the webhook or from document analysis,
links it to a handover and a user where possible, and stores it together
with a short text summary.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from handover import models
from handover.pipelines.identity import IdentityHints, resolve_identity

logger = logging.getLogger(__name__)


class IngestionError(Exception):
    """Raised when an insight record cannot be persisted."""
    pass


@dataclass
class InsightPayload:
    """An inbound insight with its optional identity hints."""
    insights: Any
    handover_id: str | None = None
    user_id: str | None = None
    file_path: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


def summarize_payload(insights: Any) -> str:
    """Short text form stored alongside the structured payload.

    Strings pass through, a list contributes its first element, anything
    else is serialized to JSON.
    """
    if isinstance(insights, str):
        return insights
    if isinstance(insights, list):
        if not insights:
            return ""
        first = insights[0]
        return first if isinstance(first, str) else json.dumps(first)
    return json.dumps(insights)


async def ingest_insights(session: AsyncSession, payload: InsightPayload) -> models.KnowledgeInsight:
    """Resolve identity, store one record and commit.

    Resolution misses only leave the link columns empty; a storage failure
    rolls back and raises IngestionError.
    """
    hints = IdentityHints.from_payload(
        handover_id=payload.handover_id,
        user_id=payload.user_id,
        file_path=payload.file_path,
        metadata=payload.metadata,
    )
    identity = await resolve_identity(session, hints)

    record = models.KnowledgeInsight(
        handover_id=identity.handover_id,
        user_id=identity.user_id,
        file_path=hints.file_path,
        insights=payload.insights,
        insight=summarize_payload(payload.insights),
    )

    try:
        session.add(record)
        await session.commit()
        await session.refresh(record)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to store insight record: {e}", exc_info=True)
        raise IngestionError(str(e)) from e

    logger.info(
        f"Stored insight {record.id} (handover={record.handover_id}, user={record.user_id})"
    )
    return record
