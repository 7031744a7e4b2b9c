"""Change feed: publish on write, subscribe per table.

SQLAlchemy session events collect the rows touched during each flush and
hand them to subscribers once the transaction commits. A rollback discards
whatever was collected. Subscribers are plain callables and run inline in
the committing task, so they must be quick (cache invalidation, queue puts).
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "handover_pending_changes"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed change to one row."""
    table: str
    action: str  # INSERT, UPDATE, DELETE
    row_id: str | None


Subscriber = Callable[[ChangeEvent], None]


class ChangeFeed:
    """In-process registry of per-table subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, table: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it again."""
        self._subscribers[table].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[table].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, change: ChangeEvent) -> None:
        for callback in list(self._subscribers.get(change.table, ())):
            try:
                callback(change)
            except Exception:
                # One bad subscriber must not block the others
                logger.exception(f"Change subscriber failed for {change.table}")

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, ()))


feed = ChangeFeed()


def _row_id(obj) -> str | None:
    identity = inspect(obj).identity
    if identity:
        return str(identity[0])
    value = getattr(obj, "id", None)
    return str(value) if value is not None else None


def _collect(session: Session, flush_context, instances) -> None:
    # before_flush still sees new/dirty/deleted; after_flush has already reset them
    pending = session.info.setdefault(_PENDING_KEY, [])
    for action, objects in (
        ("INSERT", session.new),
        ("UPDATE", session.dirty),
        ("DELETE", session.deleted),
    ):
        for obj in objects:
            table = getattr(obj, "__tablename__", None)
            if table is None:
                continue
            if action == "UPDATE" and not session.is_modified(obj, include_collections=False):
                continue
            pending.append((table, action, obj))


def _dispatch(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for table, action, obj in pending:
        feed.publish(ChangeEvent(table=table, action=action, row_id=_row_id(obj)))


def _discard(session: Session, previous_transaction) -> None:
    session.info.pop(_PENDING_KEY, None)


def install(session_class: type[Session] = Session) -> None:
    """Attach the feed to a session class (idempotent)."""
    if not event.contains(session_class, "before_flush", _collect):
        event.listen(session_class, "before_flush", _collect)
        event.listen(session_class, "after_commit", _dispatch)
        event.listen(session_class, "after_soft_rollback", _discard)


class StatsCache:
    """Memoises derived statistics until a watched table changes."""

    def __init__(self, source: ChangeFeed, tables: tuple[str, ...] = ("handovers", "tasks", "users")) -> None:
        self._values: dict[str | None, object] = {}
        for table in tables:
            source.subscribe(table, self._invalidate)

    def _invalidate(self, change: ChangeEvent) -> None:
        if self._values:
            logger.debug(f"Invalidating stats cache after {change.action} on {change.table}")
        self._values.clear()

    def get(self, key: str | None):
        return self._values.get(key)

    def put(self, key: str | None, value: object) -> None:
        self._values[key] = value

    def clear(self) -> None:
        self._values.clear()


install()
stats_cache = StatsCache(feed)
