"""Tasks, notes, messages and help requests."""

from sqlalchemy import select

from handover import models
from handover.pipelines import handovers

from conftest import as_user, make_handover


async def task_ids(session, handover):
    result = await session.execute(
        select(models.Task.id).where(models.Task.handover_id == handover.id).order_by(models.Task.created_at)
    )
    return list(result.scalars().all())


async def test_task_update_recalculates_progress(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("done", "pending"))
    ids = await task_ids(session, handover)

    response = await client.patch(
        f"/tasks/{ids[1]}", json={"status": "completed", "notes": "Handed over"}, headers=as_user(people["employee"])
    )

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["notes"] == "Handed over"
    refreshed = await handovers.get_handover(session, handover.id)
    assert refreshed.progress == 100


async def test_successor_cannot_edit_tasks(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    ids = await task_ids(session, handover)

    response = await client.patch(f"/tasks/{ids[0]}", json={"status": "done"}, headers=as_user(people["successor"]))

    assert response.status_code == 403


async def test_add_task_updates_progress(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("done",))

    response = await client.post(
        f"/handovers/{handover.id}/tasks",
        json={"title": "Vendor contracts", "priority": "high", "category": "Vendors"},
        headers=as_user(people["employee"]),
    )

    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    listed = await client.get(f"/handovers/{handover.id}/tasks", headers=as_user(people["successor"]))
    assert [t["title"] for t in listed.json()] == ["Task 1", "Vendor contracts"]
    refreshed = await handovers.get_handover(session, handover.id)
    assert refreshed.progress == 50


async def test_acknowledge_is_for_the_successor(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("done",))
    ids = await task_ids(session, handover)

    by_employee = await client.post(f"/tasks/{ids[0]}/acknowledge", headers=as_user(people["employee"]))
    by_successor = await client.post(f"/tasks/{ids[0]}/acknowledge", headers=as_user(people["successor"]))

    assert by_employee.status_code == 403
    assert by_employee.json()["detail"] == "Only the assigned successor can acknowledge tasks"
    assert by_successor.status_code == 200
    assert by_successor.json()["successor_acknowledged"] is True
    assert by_successor.json()["successor_acknowledged_at"] is not None


async def test_unknown_task(client, people):
    response = await client.patch("/tasks/nope", json={"status": "done"}, headers=as_user(people["admin"]))
    assert response.status_code == 404


async def test_notes_and_messages(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    ids = await task_ids(session, handover)

    note = await client.post(
        f"/tasks/{ids[0]}/notes", json={"content": "Passwords are in the vault"}, headers=as_user(people["employee"])
    )
    await client.post(
        f"/handovers/{handover.id}/messages", json={"content": "Hi Sam!"}, headers=as_user(people["employee"])
    )
    await client.post(
        f"/handovers/{handover.id}/messages", json={"content": "Thanks John"}, headers=as_user(people["successor"])
    )

    assert note.status_code == 201
    assert note.json()["created_by"] == people["employee"].id
    notes = await client.get(f"/tasks/{ids[0]}/notes", headers=as_user(people["successor"]))
    assert [n["content"] for n in notes.json()] == ["Passwords are in the vault"]
    messages = await client.get(f"/handovers/{handover.id}/messages", headers=as_user(people["hr"]))
    assert [m["content"] for m in messages.json()] == ["Hi Sam!", "Thanks John"]
    assert [m["sender_id"] for m in messages.json()] == [people["employee"].id, people["successor"].id]


async def test_outsider_cannot_read_messages(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    response = await client.get(f"/handovers/{handover.id}/messages", headers=as_user(people["outsider"]))

    assert response.status_code == 403


async def test_blank_message_is_rejected(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    response = await client.post(
        f"/handovers/{handover.id}/messages", json={"content": "   "}, headers=as_user(people["employee"])
    )

    assert response.status_code == 400


async def test_help_request_to_employee(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    ids = await task_ids(session, handover)

    created = await client.post(
        "/help-requests",
        json={"task_id": ids[0], "request_type": "employee", "message": "Where is the runbook?"},
        headers=as_user(people["successor"]),
    )
    assert created.status_code == 201
    request_id = created.json()["id"]
    assert created.json()["status"] == "pending"
    assert created.json()["task"]["title"] == "Task 1"

    pending = await client.get("/help-requests/pending-count", headers=as_user(people["employee"]))
    assert pending.json() == {"count": 1}

    answered = await client.post(
        f"/help-requests/{request_id}/respond",
        json={"response": "In the wiki"},
        headers=as_user(people["employee"]),
    )
    assert answered.status_code == 200
    assert answered.json()["status"] == "replied"
    assert answered.json()["responded_by"] == people["employee"].id

    resolved = await client.post(f"/help-requests/{request_id}/resolve", headers=as_user(people["successor"]))
    assert resolved.json()["status"] == "resolved"

    pending = await client.get("/help-requests/pending-count", headers=as_user(people["employee"]))
    assert pending.json() == {"count": 0}


async def test_manager_escalation_is_answered_by_hr(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    ids = await task_ids(session, handover)
    created = await client.post(
        "/help-requests",
        json={"task_id": ids[0], "request_type": "manager", "message": "Employee is unresponsive"},
        headers=as_user(people["successor"]),
    )
    request_id = created.json()["id"]

    by_employee = await client.post(
        f"/help-requests/{request_id}/respond", json={"response": "..."}, headers=as_user(people["employee"])
    )
    by_hr = await client.post(
        f"/help-requests/{request_id}/respond", json={"response": "I'll follow up"}, headers=as_user(people["hr"])
    )

    assert by_employee.status_code == 403
    assert by_hr.status_code == 200


async def test_help_requests_are_scoped(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    ids = await task_ids(session, handover)
    await client.post(
        "/help-requests",
        json={"task_id": ids[0], "request_type": "employee", "message": "Question"},
        headers=as_user(people["successor"]),
    )

    visible = await client.get("/help-requests", headers=as_user(people["employee"]))
    hidden = await client.get("/help-requests", headers=as_user(people["outsider"]))
    filtered = await client.get(
        "/help-requests", params={"status": "resolved"}, headers=as_user(people["hr"])
    )

    assert len(visible.json()) == 1
    assert hidden.json() == []
    assert filtered.json() == []


async def test_help_request_type_is_validated(client, session, people):
    handover = await make_handover(session, people["employee"], people["successor"], tasks=("pending",))
    ids = await task_ids(session, handover)

    response = await client.post(
        "/help-requests",
        json={"task_id": ids[0], "request_type": "friend", "message": "Hello"},
        headers=as_user(people["successor"]),
    )

    assert response.status_code == 422
