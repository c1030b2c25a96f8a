"""Row change notifications for committed writes.

Every ORM insert, update and delete is captured at flush time and delivered
to subscribed channels once the transaction commits (rolled back changes are
dropped). Channels bind callbacks per table, optionally filtered by column
equality, in the spirit of a `postgres_changes` subscription.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable

import structlog
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from .constants import EVT_ANY, EVT_DELETE, EVT_INSERT, EVT_UPDATE
from .utils import loaded_to_dict

logger = structlog.get_logger(__name__)

_PENDING_KEY = "reviewtrust_pending_changes"
_DIRTY_KEY = "reviewtrust_dirty_objects"


@dataclass
class ChangeEvent:
    table: str
    event: str
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)

    @property
    def record(self) -> dict:
        return self.new or self.old


@dataclass
class _Binding:
    table: str
    callback: Callable[[ChangeEvent], None]
    event: str = EVT_ANY
    filter: dict | None = None

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.event != EVT_ANY and change.event != self.event:
            return False
        if self.filter:
            record = change.record
            return all(record.get(k) == v for k, v in self.filter.items())
        return True


class Channel:
    def __init__(self, broker: "ChangeBroker", name: str):
        self.broker = broker
        self.name = name
        self.bindings: list[_Binding] = []
        self.subscribed = False

    def on(self, table: str, callback, event: str = EVT_ANY, filter: dict | None = None) -> "Channel":
        self.bindings.append(_Binding(table=table, callback=callback, event=event, filter=filter))
        return self

    def subscribe(self) -> "Channel":
        self.broker._attach(self)
        self.subscribed = True
        return self

    def unsubscribe(self) -> None:
        self.broker._detach(self)
        self.subscribed = False

    def deliver(self, change: ChangeEvent) -> None:
        for binding in self.bindings:
            if not binding.matches(change):
                continue
            try:
                binding.callback(change)
            except Exception:
                # One failing subscriber must not stop delivery to the others
                logger.exception("realtime_callback_failed", channel=self.name, table=change.table)


class ChangeBroker:
    def __init__(self):
        self._channels: list[Channel] = []
        self._lock = threading.Lock()

    def channel(self, name: str) -> Channel:
        return Channel(self, name)

    def remove_channel(self, channel: Channel) -> None:
        channel.unsubscribe()

    @property
    def channels(self) -> list[Channel]:
        with self._lock:
            return list(self._channels)

    def _attach(self, channel: Channel) -> None:
        with self._lock:
            if channel not in self._channels:
                self._channels.append(channel)

    def _detach(self, channel: Channel) -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)

    def publish(self, change: ChangeEvent) -> None:
        for channel in self.channels:
            channel.deliver(change)

    def install(self, session_class=Session) -> None:
        """Hook the broker into a Session class (all sessions by default)."""
        event.listen(session_class, "before_flush", self._mark)
        event.listen(session_class, "after_flush", self._collect)
        event.listen(session_class, "after_commit", self._dispatch)
        event.listen(session_class, "after_soft_rollback", self._discard)

    def uninstall(self, session_class=Session) -> None:
        event.remove(session_class, "before_flush", self._mark)
        event.remove(session_class, "after_flush", self._collect)
        event.remove(session_class, "after_commit", self._dispatch)
        event.remove(session_class, "after_soft_rollback", self._discard)

    def _mark(self, session, flush_context, instances) -> None:
        # SQL expression assignments are expired by the flush itself, so
        # is_modified() no longer sees them in after_flush.
        session.info[_DIRTY_KEY] = [
            obj for obj in session.dirty if session.is_modified(obj, include_collections=False)
        ]

    def _collect(self, session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        for obj in session.new:
            pending.append(ChangeEvent(_table_of(obj), EVT_INSERT, new=loaded_to_dict(obj)))
        updated = session.info.pop(_DIRTY_KEY, [])
        seen = {id(obj) for obj in updated}
        for obj in session.dirty:
            if id(obj) not in seen and session.is_modified(obj, include_collections=False):
                updated.append(obj)
        for obj in updated:
            if obj not in session.deleted:
                pending.append(ChangeEvent(_table_of(obj), EVT_UPDATE, new=_keyed_record(obj)))
        for obj in session.deleted:
            pending.append(ChangeEvent(_table_of(obj), EVT_DELETE, old=_keyed_record(obj)))

    def _dispatch(self, session) -> None:
        pending = session.info.pop(_PENDING_KEY, [])
        for change in pending:
            self.publish(change)

    def _discard(self, session, previous_transaction) -> None:
        session.info.pop(_PENDING_KEY, None)
        session.info.pop(_DIRTY_KEY, None)


def _table_of(obj) -> str:
    return obj.__table__.name


def _keyed_record(obj) -> dict:
    # Expired attributes are not reloaded here; the primary key is always known
    state = inspect(obj)
    record = loaded_to_dict(obj)
    if state.identity:
        for column, value in zip(state.mapper.primary_key, state.identity):
            record.setdefault(column.key, value)
    return record


broker = ChangeBroker()
broker.install()
