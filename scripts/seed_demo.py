"""Seed demo data: one HR manager, one successor, one exiting employee and a
handover between the latter two with tasks, notes and messages.

Idempotent: users are matched by e-mail and the demo handover's tasks,
notes and messages are recreated on every run.
"""

import asyncio
import logging

from sqlalchemy import delete, select

from handover import models
from handover.db import AsyncSessionMaker, engine
from handover.logging_config import setup_logging

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {"email": "hr.manager@company.com", "role": "hr-manager", "department": "HR"},
    {"email": "sam.successor@company.com", "role": "successor", "department": "Sales"},
    {"email": "john.doe@company.com", "role": "exiting", "department": "Sales"},
]

DEMO_TASKS = [
    {
        "title": "Client Account Handover - TechCorp",
        "description": "Transfer all TechCorp account details, meeting notes, and contact information",
        "status": "done",
        "priority": "high",
        "category": "Clients",
    },
    {
        "title": "CRM Workflow Documentation",
        "description": "Document the custom CRM workflows and automation rules",
        "status": "done",
        "priority": "medium",
        "category": "Workflows",
    },
    {
        "title": "Renewal Risk Assessment",
        "description": "Identify accounts at risk for renewal and provide mitigation strategies",
        "status": "in-progress",
        "priority": "critical",
        "category": "Clients",
    },
    {
        "title": "Team Introduction Sessions",
        "description": "Introduce successor to key team members and stakeholders",
        "status": "pending",
        "priority": "medium",
        "category": "People",
    },
]

DEMO_NOTES = {
    "Client Account Handover - TechCorp": (
        "Successfully completed client handover meeting. Next steps documented in shared folder."
    ),
    "CRM Workflow Documentation": "CRM workflows documented in wiki. Screenshots added for complex rules.",
}


async def ensure_user(session, email: str, role: str, department: str) -> models.User:
    result = await session.execute(select(models.User).where(models.User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = models.User(email=email, role=role, department=department)
        session.add(user)
    else:
        user.role = role
        user.department = department
    await session.flush()
    return user


async def seed() -> dict:
    async with AsyncSessionMaker() as session:
        users = {}
        for demo in DEMO_USERS:
            users[demo["role"]] = await ensure_user(session, demo["email"], demo["role"], demo["department"])
        employee = users["exiting"]
        successor = users["successor"]

        result = await session.execute(
            select(models.Handover).where(
                models.Handover.employee_id == employee.id,
                models.Handover.successor_id == successor.id,
            )
        )
        handover = result.scalar_one_or_none()
        if handover is None:
            handover = models.Handover(employee_id=employee.id, successor_id=successor.id, progress=68)
            session.add(handover)
            await session.flush()
        else:
            handover.progress = 68

        # Recreate the demo conversation and tasks
        await session.execute(delete(models.Message).where(models.Message.handover_id == handover.id))
        task_ids = select(models.Task.id).where(models.Task.handover_id == handover.id)
        await session.execute(delete(models.Note).where(models.Note.task_id.in_(task_ids)))
        await session.execute(delete(models.Task).where(models.Task.handover_id == handover.id))

        tasks = [models.Task(handover_id=handover.id, **fields) for fields in DEMO_TASKS]
        session.add_all(tasks)
        await session.flush()

        by_title = {task.title: task for task in tasks}
        session.add_all(
            models.Note(task_id=by_title[title].id, content=content, created_by=employee.id)
            for title, content in DEMO_NOTES.items()
        )
        session.add_all([
            models.Message(
                handover_id=handover.id,
                sender_id=employee.id,
                content="Hi Sam! I've completed the TechCorp account handover. All docs are shared.",
            ),
            models.Message(
                handover_id=handover.id,
                sender_id=successor.id,
                content="Thanks John! Can we schedule a call to discuss the renewal risk assessment?",
            ),
        ])
        await session.commit()

        return {
            "users": {u.email: u.id for u in users.values()},
            "handover_id": handover.id,
            "tasks": len(tasks),
        }


async def main():
    setup_logging()
    summary = await seed()
    logger.info(f"Seeded demo data: {summary}")
    print(f"✓ Handover {summary['handover_id']} with {summary['tasks']} tasks")
    for email, user_id in summary["users"].items():
        print(f"  {email}: {user_id}")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
