"""Insight payload normalization."""

import json
from datetime import datetime

import pytest

from handover.pipelines.normalization import (
    Empty,
    InsightList,
    PlainText,
    RecommendationsEnvelope,
    SingleInsight,
    Unrecognized,
    classify_payload,
    icon_for,
    normalize_record,
    parse_hr_items,
)

CREATED = datetime(2024, 5, 1, 9, 30)


@pytest.mark.parametrize("payload, shape", [
    (None, Empty),
    ([], InsightList),
    ([{"title": "a"}], InsightList),
    ({"recommendations": []}, RecommendationsEnvelope),
    ({"recommendations": "not a list"}, SingleInsight),
    ({"title": "a"}, SingleInsight),
    ("text", PlainText),
    (3.5, Unrecognized),
    (True, Unrecognized),
])
def test_classify_payload(payload, shape):
    assert isinstance(classify_payload(payload), shape)


@pytest.mark.parametrize("kind, icon", [
    ("critical", "target"),
    ("high", "target"),
    ("warning", "puzzle"),
    ("medium", "puzzle"),
    ("success", "trending-up"),
    ("low", "trending-up"),
    ("info", "lightbulb"),
    (None, "lightbulb"),
    (["risk"], "lightbulb"),
    ({"level": "high"}, "lightbulb"),
    (1, "lightbulb"),
])
def test_icon_for(kind, icon):
    assert icon_for(kind) == icon


def test_insight_list_items():
    payload = [
        {"title": "Renewals", "description": "TechCorp renews in May", "priority": "high"},
        {"summary": "CRM rules", "content": "Automation lives in the admin panel", "priority": "medium"},
        {"message": "Team is onboarded", "type": "success"},
        {"description": "Misc", "icon": "star"},
    ]

    items = normalize_record(7, payload, CREATED)

    assert [item.id for item in items] == ["7-0", "7-1", "7-2", "7-3"]
    assert [item.severity for item in items] == ["critical", "warning", "success", "info"]
    assert items[0].title == "Renewals"
    assert items[0].icon == "target"
    assert items[1].title == "CRM rules"
    assert items[1].description == "Automation lives in the admin panel"
    assert items[2].title == "AI Insight"
    assert items[2].description == "Team is onboarded"
    assert items[2].icon == "trending-up"
    assert items[3].icon == "star"
    assert all(item.created_at == CREATED for item in items)


def test_insight_without_text_fields_falls_back_to_json():
    items = normalize_record(1, [{"priority": "low"}], CREATED)
    assert items[0].description == json.dumps({"priority": "low"})


def test_bare_strings_inside_a_list():
    items = normalize_record(3, ["Check the VPN", 12], CREATED)

    assert [item.description for item in items] == ["Check the VPN", "12"]
    assert all(item.icon == "robot" for item in items)
    assert all(item.title == "AI Insight" for item in items)


def test_recommendations_envelope():
    payload = {
        "recommendations": [
            {"category": "Clients", "text": "Call TechCorp", "priority": "critical"},
            {"title": "Docs", "description": "Finish the wiki", "priority": "high"},
            {"description": "Celebrate", "type": "success"},
            "Plain advice",
        ]
    }

    items = normalize_record("r1", payload, CREATED)

    assert [item.id for item in items] == ["r1-rec-0", "r1-rec-1", "r1-rec-2", "r1-rec-3"]
    assert [item.severity for item in items] == ["critical", "warning", "success", "info"]
    assert items[0].title == "Clients"
    assert items[0].description == "Call TechCorp"
    assert items[0].icon == "target"
    assert items[3].title == "Recommendation"
    assert items[3].description == "Plain advice"


def test_single_object():
    items = normalize_record(9, {"description": "Handover is on track", "priority": "medium"}, CREATED)

    assert len(items) == 1
    assert items[0].id == "9"
    assert items[0].title == "AI Knowledge Insight"
    assert items[0].severity == "warning"
    assert items[0].icon == "puzzle"


def test_plain_text():
    items = normalize_record(4, "Keep the weekly sync", CREATED)

    assert len(items) == 1
    assert items[0].title == "AI Knowledge Insight"
    assert items[0].description == "Keep the weekly sync"
    assert items[0].severity == "info"
    assert items[0].icon == "robot"


def test_scalar_is_shown_as_json_text():
    items = normalize_record(5, 42, CREATED)
    assert items[0].description == "42"


def test_empty_payloads_emit_nothing():
    assert normalize_record(1, None, CREATED) == []
    assert normalize_record(1, [], CREATED) == []
    assert normalize_record(1, {"recommendations": []}, CREATED) == []


def test_hr_items_from_list():
    payload = [
        {"type": "alert", "title": "Coverage gap", "description": "No backup for payroll", "priority": "critical"},
        {"insight": "Docs are improving"},
        {},
    ]

    items = parse_hr_items(payload, "stored summary", CREATED)

    assert [(i.type, i.title, i.priority) for i in items] == [
        ("alert", "Coverage gap", "critical"),
        ("recommendation", "AI Analysis", "medium"),
        ("recommendation", "AI Analysis", "medium"),
    ]
    assert items[1].description == "Docs are improving"
    assert items[2].description == "stored summary"


def test_hr_items_without_any_text():
    items = parse_hr_items([{}], None, CREATED)
    assert items[0].description == "No details available"


def test_hr_items_decode_json_text():
    payload = json.dumps([{"title": "Trend", "type": "trend", "description": "Up"}])

    items = parse_hr_items(payload, None, CREATED)

    assert len(items) == 1
    assert items[0].type == "trend"
    assert items[0].title == "Trend"


def test_hr_items_from_undecodable_text():
    items = parse_hr_items("free text finding", "ignored", CREATED)

    assert len(items) == 1
    assert items[0].title == "AI Insight"
    assert items[0].description == "free text finding"
    assert items[0].type == "recommendation"


def test_hr_items_from_object():
    items = parse_hr_items({"anything": 1}, "summary text", CREATED)

    assert len(items) == 1
    assert items[0].title == "AI Knowledge Insight"
    assert items[0].description == "summary text"


def test_hr_items_from_nothing():
    assert parse_hr_items(None, "summary", CREATED) == []


def test_loosely_typed_tags_fall_back_to_defaults():
    payload = [
        {"title": "A", "type": ["risk"]},
        {"title": "B", "icon": {"name": "star"}, "priority": "high"},
        {"title": "C", "icon": "", "priority": 1},
    ]

    items = normalize_record(4, payload, CREATED)

    assert [i.icon for i in items] == ["lightbulb", "target", "lightbulb"]
    assert [i.severity for i in items] == ["info", "critical", "info"]


def test_recommendation_with_loosely_typed_tags():
    payload = {"recommendations": [{"title": "Call", "priority": ["critical"], "icon": 7}]}

    items = normalize_record(5, payload, CREATED)

    assert items[0].icon == "lightbulb"
    assert items[0].severity == "info"


def test_hr_items_with_non_text_labels():
    payload = [{"title": 5, "type": ["alert"], "description": "d", "priority": 1}]

    items = parse_hr_items(payload, None, CREATED)

    assert [(i.type, i.title, i.priority, i.description) for i in items] == [
        ("recommendation", "AI Analysis", "medium", "d"),
    ]
