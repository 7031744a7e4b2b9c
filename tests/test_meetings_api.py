"""Meeting scheduling and summaries."""

import json

from sqlalchemy import select

from ai.llm import LLMUpstreamError
from handover import models

from conftest import as_user, make_handover


async def schedule(client, user, **overrides):
    body = {
        "title": "CRM walkthrough",
        "meeting_date": "2024-06-03",
        "meeting_time": "14:30",
        "duration": "45 minutes",
        "attendees": ["john.doe@company.com", "sam@company.com"],
    }
    body.update(overrides)
    return await client.post("/meetings", json=body, headers=as_user(user))


async def first_task_id(session, handover):
    result = await session.execute(select(models.Task.id).where(models.Task.handover_id == handover.id))
    return result.scalars().first()


async def test_schedule_meeting_for_task(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    task_id = await first_task_id(session, handover)

    response = await schedule(client, people["successor"], task_id=task_id)

    assert response.status_code == 201
    body = response.json()
    assert body["handover_id"] == handover.id
    assert body["meeting_date"] == "2024-06-03"
    assert body["meeting_time"] == "14:30"
    assert body["status"] == "scheduled"
    assert body["meeting_link"].startswith("https://zoom.us/j/")


async def test_task_from_another_handover_is_rejected(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    other = await make_handover(session, people["outsider"], people["successor"])
    task_id = await first_task_id(session, handover)

    response = await schedule(client, people["hr"], task_id=task_id, handover_id=other.id)

    assert response.status_code == 400


async def test_outsider_cannot_schedule(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    response = await schedule(client, people["outsider"], handover_id=handover.id)

    assert response.status_code == 403


async def test_meetings_are_listed_for_participants(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"])
    await schedule(client, people["employee"], handover_id=handover.id, meeting_date="2024-06-10")
    await schedule(client, people["employee"], handover_id=handover.id, meeting_date="2024-06-01")

    mine = await client.get("/meetings", headers=as_user(people["successor"]))
    theirs = await client.get("/meetings", headers=as_user(people["outsider"]))

    assert [m["meeting_date"] for m in mine.json()] == ["2024-06-01", "2024-06-10"]
    assert theirs.json() == []


async def test_summary_from_llm(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"])
    meeting_id = (await schedule(client, people["employee"], handover_id=handover.id)).json()["id"]
    llm.queue(json.dumps({
        "summary": "Walked through the CRM rules.",
        "actionItems": [{"title": "Export the automation list", "priority": "high"}],
    }))

    response = await client.post(f"/meetings/{meeting_id}/summary", headers=as_user(people["successor"]))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["ai_summary"] == "Walked through the CRM rules."
    assert body["ai_action_items"] == [{"title": "Export the automation list", "priority": "high"}]
    assert "- Duration: 45 minutes" in llm.calls[0]["user"]


async def test_summary_falls_back_when_llm_fails(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    task_id = await first_task_id(session, handover)
    meeting_id = (await schedule(client, people["employee"], task_id=task_id)).json()["id"]
    llm.queue(LLMUpstreamError(500))

    response = await client.post(f"/meetings/{meeting_id}/summary", headers=as_user(people["employee"]))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["ai_summary"].startswith('Knowledge transfer meeting "CRM walkthrough" completed with')
    assert '"Task 1"' in body["ai_summary"]
    assert [item["priority"] for item in body["ai_action_items"]] == ["high", "medium", "low"]


async def test_complete_meeting(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"])
    meeting_id = (await schedule(client, people["employee"], handover_id=handover.id)).json()["id"]

    response = await client.post(f"/meetings/{meeting_id}/complete", headers=as_user(people["successor"]))
    missing = await client.post("/meetings/nope/complete", headers=as_user(people["successor"]))

    assert response.json()["status"] == "completed"
    assert missing.status_code == 404
