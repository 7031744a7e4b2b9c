"""Normalization of stored insight payloads into display items.

Payloads arrive in whatever shape the analysis service produced: a list of
insight objects, an object with a ``recommendations`` list, a single
object, or plain text. ``classify_payload`` turns the raw value into one of
the shape variants below and each variant knows how to emit items, so no
caller ever probes field names on raw JSON.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Mapping, Union

logger = logging.getLogger(__name__)

DEFAULT_LIST_TITLE = "AI Insight"
DEFAULT_RECOMMENDATION_TITLE = "Recommendation"
DEFAULT_SINGLE_TITLE = "AI Knowledge Insight"

PLAIN_TEXT_ICON = "robot"

_ICON_TAGS = {
    "critical": "target",
    "high": "target",
    "warning": "puzzle",
    "medium": "puzzle",
    "success": "trending-up",
    "low": "trending-up",
}


@dataclass
class NormalizedInsight:
    """One display item of the per-user insight feed."""
    id: str
    title: str
    description: str
    severity: str  # critical | warning | success | info
    icon: str
    created_at: datetime


def icon_for(kind: Any) -> str:
    """Icon tag for a priority or type value."""
    if not isinstance(kind, str):
        return "lightbulb"
    return _ICON_TAGS.get(kind, "lightbulb")


def _text(item: Mapping[str, Any], key: str) -> str | None:
    # Tags and labels are only taken from non-empty strings
    value = item.get(key)
    return value if isinstance(value, str) and value else None


def _first_text(item: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = item.get(key)
        if value:
            return value if isinstance(value, str) else json.dumps(value)
    return None


def _insight_severity(item: Mapping[str, Any]) -> str:
    priority = item.get("priority")
    if priority == "high":
        return "critical"
    if priority == "medium":
        return "warning"
    if item.get("type") == "success":
        return "success"
    return "info"


def _recommendation_severity(item: Mapping[str, Any]) -> str:
    # Recommendations grade one step softer than plain insights
    priority = item.get("priority")
    if priority == "critical":
        return "critical"
    if priority == "high":
        return "warning"
    if item.get("type") == "success":
        return "success"
    return "info"


def _insight_item(
    item: Mapping[str, Any],
    item_id: str,
    default_title: str,
    created_at: datetime,
) -> NormalizedInsight:
    return NormalizedInsight(
        id=item_id,
        title=_first_text(item, "title", "summary") or default_title,
        description=_first_text(item, "description", "content", "message") or json.dumps(item),
        severity=_insight_severity(item),
        icon=_text(item, "icon") or icon_for(item.get("type") or item.get("priority")),
        created_at=created_at,
    )


@dataclass
class InsightList:
    items: list[Any]

    def emit(self, record_id: str, created_at: datetime) -> Iterator[NormalizedInsight]:
        for index, item in enumerate(self.items):
            item_id = f"{record_id}-{index}"
            if isinstance(item, Mapping):
                yield _insight_item(item, item_id, DEFAULT_LIST_TITLE, created_at)
            else:
                # Bare strings or numbers inside a list still deserve an entry
                yield PlainText(item if isinstance(item, str) else json.dumps(item)).emit_one(
                    item_id, created_at, DEFAULT_LIST_TITLE
                )


@dataclass
class RecommendationsEnvelope:
    recommendations: list[Any]

    def emit(self, record_id: str, created_at: datetime) -> Iterator[NormalizedInsight]:
        for index, rec in enumerate(self.recommendations):
            if not isinstance(rec, Mapping):
                rec = {"description": rec if isinstance(rec, str) else json.dumps(rec)}
            yield NormalizedInsight(
                id=f"{record_id}-rec-{index}",
                title=_first_text(rec, "title", "category") or DEFAULT_RECOMMENDATION_TITLE,
                description=_first_text(rec, "description", "content", "text") or json.dumps(rec),
                severity=_recommendation_severity(rec),
                icon=_text(rec, "icon") or icon_for(rec.get("priority") or rec.get("type")),
                created_at=created_at,
            )


@dataclass
class SingleInsight:
    item: Mapping[str, Any]

    def emit(self, record_id: str, created_at: datetime) -> Iterator[NormalizedInsight]:
        yield _insight_item(self.item, record_id, DEFAULT_SINGLE_TITLE, created_at)


@dataclass
class PlainText:
    text: str

    def emit_one(self, item_id: str, created_at: datetime, title: str = DEFAULT_SINGLE_TITLE) -> NormalizedInsight:
        return NormalizedInsight(
            id=item_id,
            title=title,
            description=self.text,
            severity="info",
            icon=PLAIN_TEXT_ICON,
            created_at=created_at,
        )

    def emit(self, record_id: str, created_at: datetime) -> Iterator[NormalizedInsight]:
        yield self.emit_one(record_id, created_at)


@dataclass
class Unrecognized:
    """Catch-all for numbers, booleans and other JSON scalars."""
    value: Any

    def emit(self, record_id: str, created_at: datetime) -> Iterator[NormalizedInsight]:
        yield PlainText(json.dumps(self.value)).emit_one(record_id, created_at)


@dataclass
class Empty:
    def emit(self, record_id: str, created_at: datetime) -> Iterator[NormalizedInsight]:
        return iter(())


InsightShape = Union[InsightList, RecommendationsEnvelope, SingleInsight, PlainText, Unrecognized, Empty]


def classify_payload(payload: Any) -> InsightShape:
    """Pick the shape variant for a raw payload."""
    if payload is None:
        return Empty()
    if isinstance(payload, list):
        return InsightList(payload)
    if isinstance(payload, Mapping):
        recommendations = payload.get("recommendations")
        if isinstance(recommendations, list):
            return RecommendationsEnvelope(recommendations)
        return SingleInsight(payload)
    if isinstance(payload, str):
        return PlainText(payload)
    return Unrecognized(payload)


def normalize_record(record_id: Any, payload: Any, created_at: datetime) -> list[NormalizedInsight]:
    """Expand one stored record into its display items."""
    return list(classify_payload(payload).emit(str(record_id), created_at))


# HR dashboard items

HR_DEFAULT_TYPE = "recommendation"
HR_DEFAULT_TITLE = "AI Analysis"
HR_DEFAULT_PRIORITY = "medium"
HR_NO_DETAILS = "No details available"


@dataclass
class HRInsightItem:
    """One card of the HR insight panel."""
    type: str  # prediction | recommendation | trend | alert
    title: str
    description: str
    priority: str  # critical | high | medium | low | positive
    created_at: datetime


def parse_hr_items(payload: Any, summary: str | None, created_at: datetime) -> list[HRInsightItem]:
    """HR view of a stored record.

    Text payloads are decoded as JSON when they hold JSON; text that does
    not decode becomes a single item carrying the text.
    """
    if payload is None:
        return []

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return [
                HRInsightItem(
                    type=HR_DEFAULT_TYPE,
                    title=DEFAULT_LIST_TITLE,
                    description=payload,
                    priority=HR_DEFAULT_PRIORITY,
                    created_at=created_at,
                )
            ]

    if isinstance(payload, list):
        items = []
        for element in payload:
            if not isinstance(element, Mapping):
                element = {"description": element if isinstance(element, str) else json.dumps(element)}
            items.append(
                HRInsightItem(
                    type=_text(element, "type") or HR_DEFAULT_TYPE,
                    title=_text(element, "title") or HR_DEFAULT_TITLE,
                    description=(
                        _first_text(element, "description", "insight") or summary or HR_NO_DETAILS
                    ),
                    priority=_text(element, "priority") or HR_DEFAULT_PRIORITY,
                    created_at=created_at,
                )
            )
        return items

    return [
        HRInsightItem(
            type=HR_DEFAULT_TYPE,
            title=DEFAULT_SINGLE_TITLE,
            description=summary or HR_NO_DETAILS,
            priority=HR_DEFAULT_PRIORITY,
            created_at=created_at,
        )
    ]
