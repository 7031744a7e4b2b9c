"""Change feed and statistics cache."""

import pytest
from sqlalchemy.exc import OperationalError

from handover import models
from handover.events import ChangeEvent, ChangeFeed, StatsCache, feed, stats_cache
from handover.pipelines import handovers

from conftest import make_handover


@pytest.fixture
def received():
    events = []
    unsubscribers = [feed.subscribe(table, events.append) for table in ("handovers", "tasks")]
    yield events
    for unsubscribe in unsubscribers:
        unsubscribe()


async def test_changes_are_published_after_commit(session, people, received):
    handover = await make_handover(session, people["employee"], tasks=("pending",))

    assert ChangeEvent("handovers", "INSERT", handover.id) in received
    assert [e.table for e in received if e.action == "INSERT"].count("tasks") == 1

    received.clear()
    handover.progress = 40
    await session.commit()

    assert received == [ChangeEvent("handovers", "UPDATE", handover.id)]


async def test_rollback_discards_pending_changes(session, people, received):
    handover = await make_handover(session, people["employee"])
    received.clear()

    handover.progress = 99
    await session.flush()
    await session.rollback()

    assert received == []


async def test_unsubscribe_and_failing_subscribers():
    local = ChangeFeed()
    seen = []

    def broken(change):
        raise RuntimeError("boom")

    local.subscribe("users", broken)
    unsubscribe = local.subscribe("users", seen.append)
    local.publish(ChangeEvent("users", "INSERT", "u1"))
    unsubscribe()
    local.publish(ChangeEvent("users", "DELETE", "u1"))

    assert seen == [ChangeEvent("users", "INSERT", "u1")]
    assert local.subscriber_count("users") == 1


def test_stats_cache_is_invalidated_by_watched_tables():
    local = ChangeFeed()
    cache = StatsCache(local, tables=("handovers",))
    cache.put(None, "cached")

    local.publish(ChangeEvent("messages", "INSERT", "m1"))
    assert cache.get(None) == "cached"

    local.publish(ChangeEvent("handovers", "UPDATE", "h1"))
    assert cache.get(None) is None


async def test_handover_stats_are_cached_until_a_change(session, people):
    await make_handover(session, people["employee"], people["successor"], progress=20)

    first = await handovers.handover_stats(session)
    assert stats_cache.get(None) is first
    assert await handovers.handover_stats(session) is first

    await make_handover(session, people["outsider"], progress=80)

    second = await handovers.handover_stats(session)
    assert second is not first
    assert second.total_handovers == 2


async def test_identity_sync_clears_the_cache(session, people):
    await handovers.handover_stats(session)
    assert stats_cache.get(None) is not None

    await handovers.ensure_identity_consistency(session, "john.doe@company.com", people["employee"].id)
    # Nothing to repoint, so the cache stays
    assert stats_cache.get(None) is not None

    duplicate = models.User(email="John.Doe@company.com", role="exiting")
    session.add(duplicate)
    await session.commit()
    await make_handover(session, duplicate)
    await handovers.handover_stats(session)

    changed = await handovers.ensure_identity_consistency(session, "john.doe@company.com", people["employee"].id)

    assert changed == 1
    assert stats_cache.get(None) is None


async def test_fetch_retries_connectivity_errors(session, people, monkeypatch):
    await make_handover(session, people["employee"])
    real_execute = session.execute
    attempts = []

    async def flaky_execute(*args, **kwargs):
        attempts.append(1)
        if len(attempts) < 3:
            raise OperationalError("SELECT", {}, Exception("server closed the connection"))
        return await real_execute(*args, **kwargs)

    monkeypatch.setattr(session, "execute", flaky_execute)

    rows = await handovers.fetch_handover_rows(session)

    assert len(rows) == 1
    assert len(attempts) == 3


async def test_fetch_gives_up_after_retries(session, monkeypatch):
    attempts = []

    async def down(*args, **kwargs):
        attempts.append(1)
        raise OperationalError("SELECT", {}, Exception("server closed the connection"))

    monkeypatch.setattr(session, "execute", down)

    with pytest.raises(OperationalError):
        await handovers.fetch_handover_rows(session)
    assert len(attempts) == 4
