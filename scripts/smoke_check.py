"""Smoke check against a live database.

Runs the identity sync, then reads handovers and users and prints a short
report. Exits non-zero on the first failure.
"""

import asyncio
import sys

from sqlalchemy import select

from handover import models
from handover.db import AsyncSessionMaker, engine
from handover.pipelines.handovers import handover_stats, list_handovers, sync_all_identities


async def run() -> None:
    async with AsyncSessionMaker() as session:
        print("1. Identity sync...")
        repointed = await sync_all_identities(session)
        print(f"   ✓ {sum(repointed.values())} handover references repointed across {len(repointed)} e-mails")

        print("2. Handovers...")
        rows = await list_handovers(session)
        print(f"   ✓ {len(rows)} handovers")
        for row in rows[:5]:
            print(f"     {row.id} {row.exiting_employee} -> {row.successor} {row.progress}% {row.risk_level}")

        stats = await handover_stats(session)
        print(
            f"   ✓ overall progress {stats.overall_progress}%, "
            f"{stats.high_risk_count} high risk, {stats.successors_assigned} successors assigned"
        )

        print("3. Users...")
        result = await session.execute(select(models.User).order_by(models.User.email).limit(5))
        users = list(result.scalars().all())
        print(f"   ✓ {len(users)} users shown")
        for user in users:
            print(f"     {user.email} ({user.role})")


async def main():
    try:
        await run()
    except Exception as e:
        print(f"\n❌ Smoke check failed: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()
    print("\n✅ Smoke check passed")


if __name__ == "__main__":
    asyncio.run(main())
