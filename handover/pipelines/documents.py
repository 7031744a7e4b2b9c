"""Document uploads and forwarding to the external analysis webhook.

Uploaded files are kept under ``{storage root}/{user_id}/{filename}``; the
relative part of that path is what the analysis service sees and what the
identity chain later uses to find the owner.
"""
from __future__ import annotations

import base64
import logging
from datetime import datetime
from pathlib import Path, PurePosixPath

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from handover import models
from handover.config import settings
from handover.pipelines.ingest import IngestionError, InsightPayload, ingest_insights

logger = logging.getLogger(__name__)


class DocumentError(Exception):
    """Raised when a document cannot be stored or forwarded."""
    pass


def safe_filename(filename: str) -> str:
    name = PurePosixPath(filename.replace("\\", "/")).name
    if not name or name in (".", ".."):
        raise DocumentError("Filename is required")
    return name


def storage_path(relative: str, root: str | None = None) -> Path:
    return Path(root or settings.storage.root) / relative


async def store_upload(
    session: AsyncSession,
    user: models.User,
    filename: str,
    content: bytes,
    root: str | None = None,
) -> models.DocumentUpload:
    """Write the file and record the upload (re-uploads replace the file)."""
    if len(content) > settings.storage.max_upload_bytes:
        raise DocumentError(f"File exceeds {settings.storage.max_upload_bytes} bytes")

    name = safe_filename(filename)
    relative = f"{user.id}/{name}"
    target = storage_path(relative, root)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    except OSError as e:
        raise DocumentError(f"Failed to store {name}: {e}") from e

    result = await session.execute(
        select(models.DocumentUpload).where(models.DocumentUpload.file_path == relative)
    )
    upload = result.scalar_one_or_none()
    if upload is None:
        upload = models.DocumentUpload(user_id=user.id, filename=name, file_path=relative)
        session.add(upload)
    else:
        upload.uploaded_at = datetime.utcnow()
        upload.webhook_sent = False
    await session.commit()

    logger.info(f"Stored document {relative} ({len(content)} bytes)")
    return upload


async def forward_document(
    session: AsyncSession,
    upload: models.DocumentUpload,
    root: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> models.KnowledgeInsight | None:
    """Send the document for analysis and ingest the returned insights.

    The webhook answer is either ``{"insights": ...}`` or the insights
    themselves. Failing to store the insights does not undo the forward.
    """
    url = settings.webhooks.document_url
    if not url:
        raise DocumentError("Document webhook not configured")

    try:
        content = storage_path(upload.file_path, root).read_bytes()
    except OSError as e:
        raise DocumentError(f"Failed to read document: {e}") from e

    payload = {
        "filename": upload.filename,
        "content": base64.b64encode(content).decode("ascii"),
        "filePath": upload.file_path,
        "timestamp": datetime.utcnow().isoformat(),
        "source": "handover-system",
    }
    headers = {}
    if settings.webhooks.document_secret:
        headers["Authorization"] = f"Bearer {settings.webhooks.document_secret}"
        headers["X-Webhook-Secret"] = settings.webhooks.document_secret

    logger.info(f"Sending document {upload.file_path} to analysis webhook")
    try:
        async with httpx.AsyncClient(timeout=settings.webhooks.timeout, transport=transport) as client:
            response = await client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise DocumentError(f"Webhook request failed: {e}") from e

    if not response.is_success:
        logger.error(f"Webhook failed: {response.status_code} {response.text[:500]}")
        raise DocumentError(f"Webhook failed: {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise DocumentError("Webhook returned a non-JSON response") from e

    insights = data.get("insights") if isinstance(data, dict) else None
    if not insights:
        insights = data

    record = None
    try:
        record = await ingest_insights(
            session,
            InsightPayload(insights=insights, user_id=upload.user_id, file_path=upload.file_path),
        )
    except IngestionError as e:
        logger.error(f"Error storing AI insights for {upload.file_path}: {e}")

    upload.webhook_sent = True
    await session.commit()
    await session.refresh(upload)
    return record
