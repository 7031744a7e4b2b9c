"""Generated insight and task summary endpoints."""

import json

from sqlalchemy import select

from ai.llm import LLMConfigurationError, LLMRateLimitError
from handover import models
from handover.pipelines import admin

from conftest import as_user, make_handover

INSIGHTS_REPLY = json.dumps({
    "revenueInsights": [{"metric": "Renewals", "value": "3 accounts", "insight": "Call TechCorp first"}],
    "playbookActions": [{"title": "Pause cold outreach", "detail": "Two weeks"}],
    "criticalItems": [{"title": "Contract review", "insight": "Due in 10 days"}],
})


async def test_generate_insights_uses_handover_tasks(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("done", "pending"))
    llm.queue(f"```json\n{INSIGHTS_REPLY}\n```")

    response = await client.post(
        "/ai/insights", json={"handoverId": handover.id}, headers=as_user(people["successor"])
    )

    assert response.status_code == 200
    body = response.json()
    assert body["insights"]["revenueInsights"][0]["metric"] == "Renewals"
    assert body["titles"] == {
        "revenue_title": "Revenue Insights",
        "playbook_title": "Playbook: What to Deprioritize",
        "critical_title": "Critical Items (Next 30 Days)",
    }
    prompt = llm.calls[0]["user"]
    assert "- Exiting Employee: john.doe" in prompt
    assert "- Department: Sales" in prompt
    assert "- Total Tasks: 2" in prompt


async def test_generate_insights_uses_department_titles(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"])
    await admin.update_insight_config(session, "Sales", revenue_title="Pipeline Health")
    llm.queue(INSIGHTS_REPLY)

    response = await client.post(
        "/ai/insights",
        json={"handoverId": handover.id, "tasks": [{"title": "Inline", "status": "pending"}]},
        headers=as_user(people["hr"]),
    )

    assert response.status_code == 200
    titles = response.json()["titles"]
    assert titles["revenue_title"] == "Pipeline Health"
    assert titles["playbook_title"] == "Playbook: What to Deprioritize"
    assert "Inline" in llm.calls[0]["user"]


async def test_generate_insights_unparseable_reply(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"])
    llm.queue("I'm sorry, I can't help with that.")

    response = await client.post(
        "/ai/insights", json={"handoverId": handover.id}, headers=as_user(people["employee"])
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to parse AI response"}


async def test_generate_insights_rate_limited(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"])
    llm.queue(LLMRateLimitError())

    response = await client.post(
        "/ai/insights", json={"handoverId": handover.id}, headers=as_user(people["employee"])
    )

    assert response.status_code == 429
    assert response.json() == {
        "error": "Rate limit exceeded (429). Please wait a minute before trying again."
    }


async def test_generate_insights_without_api_key(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"])
    llm.queue(LLMConfigurationError())

    response = await client.post(
        "/ai/insights", json={"handoverId": handover.id}, headers=as_user(people["employee"])
    )

    assert response.status_code == 500
    assert response.json() == {"error": "OpenAI API key not configured"}


async def test_generate_insights_for_foreign_handover(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    response = await client.post(
        "/ai/insights", json={"handoverId": handover.id}, headers=as_user(people["outsider"])
    )

    assert response.status_code == 403
    assert llm.calls == []


async def test_generate_insights_unknown_handover(client, people):
    response = await client.post(
        "/ai/insights", json={"handoverId": "missing"}, headers=as_user(people["hr"])
    )
    assert response.status_code == 404


async def test_task_summary_requires_task(client, people):
    response = await client.post("/ai/task-summary", json={}, headers=as_user(people["successor"]))

    assert response.status_code == 400
    assert response.json()["detail"] == "Task data is required"


async def test_task_summary_is_stored_per_task(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("done",))
    task = (await session.execute(select(models.Task).where(models.Task.handover_id == handover.id))).scalar_one()

    llm.queue(json.dumps({"summary": "First pass", "nextActionItems": ["Call client"], "hasNextActions": False}))
    llm.queue(json.dumps({"summary": "Second pass", "nextActionItems": []}))

    first = await client.post(
        "/ai/task-summary",
        json={"taskId": task.id, "exitingEmployeeName": "John"},
        headers=as_user(people["successor"]),
    )
    second = await client.post(
        "/ai/task-summary", json={"taskId": task.id}, headers=as_user(people["successor"])
    )

    assert first.status_code == 200
    assert first.json()["summary"]["hasNextActions"] is True
    assert second.json()["summary"]["summary"] == "Second pass"
    assert "- Previous Owner: John" in llm.calls[0]["user"]

    rows = (await session.execute(
        select(models.TaskInsight).execution_options(populate_existing=True)
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].insights == "Second pass"
    assert rows[0].next_action_items == []
    assert rows[0].has_next_actions is False


async def test_task_summary_for_inline_task_is_not_stored(client, session, llm, people):
    llm.queue(json.dumps({"summary": "Ad hoc", "nextActionItems": ["Follow up"]}))

    response = await client.post(
        "/ai/task-summary",
        json={"task": {"title": "Quarterly report", "dueDate": "2024-07-01"}},
        headers=as_user(people["successor"]),
    )

    assert response.status_code == 200
    assert response.json()["summary"]["nextActionItems"] == ["Follow up"]
    assert "- Due Date: 2024-07-01" in llm.calls[0]["user"]
    assert (await session.execute(select(models.TaskInsight))).scalars().all() == []


async def test_task_summary_for_foreign_task(client, session, llm, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    task = (await session.execute(select(models.Task).where(models.Task.handover_id == handover.id))).scalar_one()

    response = await client.post(
        "/ai/task-summary", json={"taskId": task.id}, headers=as_user(people["outsider"])
    )

    assert response.status_code == 403
