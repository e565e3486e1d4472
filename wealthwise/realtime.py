"""In-process change feed.

Every committed write in the content store is published here as an
``Insert``/``Update``/``Delete`` event on a channel named after the table.
Admin sessions subscribe to keep their cached lists current, and the admin
SSE endpoint forwards events to browsers.
"""
import logging
import queue
import threading
import uuid

logger = logging.getLogger(__name__)

EVENT_INSERT = 'INSERT'
EVENT_UPDATE = 'UPDATE'
EVENT_DELETE = 'DELETE'
EVENT_TYPES = (EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE)


class ChangeEvent:
    event_type = None

    def __init__(self, table, new=None, old=None):
        self.table = table
        self.new = new
        self.old = old

    @property
    def record_id(self):
        record = self.new or self.old or {}
        return record.get('id')

    def to_payload(self):
        return {
            'eventType': self.event_type,
            'table': self.table,
            'new': self.new,
            'old': self.old,
        }

    def __eq__(self, other):
        return (
            isinstance(other, ChangeEvent)
            and self.event_type == other.event_type
            and self.table == other.table
            and self.new == other.new
            and self.old == other.old
        )

    def __repr__(self):
        return f"<{type(self).__name__} table={self.table} id={self.record_id}>"


class Insert(ChangeEvent):
    event_type = EVENT_INSERT

    def __init__(self, table, new):
        super().__init__(table, new=dict(new))


class Update(ChangeEvent):
    event_type = EVENT_UPDATE

    def __init__(self, table, new, old=None):
        super().__init__(table, new=dict(new), old=dict(old) if old else None)


class Delete(ChangeEvent):
    event_type = EVENT_DELETE

    def __init__(self, table, old):
        super().__init__(table, old=dict(old))


_EVENT_CLASSES = {
    EVENT_INSERT: Insert,
    EVENT_UPDATE: Update,
    EVENT_DELETE: Delete,
}


def decode_change(table, payload):
    """Build the event variant for a raw ``{eventType, new, old}`` payload."""
    if not isinstance(payload, dict):
        raise ValueError('Change payload must be an object.')
    event_type = str(payload.get('eventType') or '').upper()
    new = payload.get('new') or None
    old = payload.get('old') or None
    if event_type == EVENT_INSERT and new:
        return Insert(table, new)
    if event_type == EVENT_UPDATE and new:
        return Update(table, new, old)
    if event_type == EVENT_DELETE and old:
        return Delete(table, old)
    raise ValueError(f'Unsupported change payload for {table}: {event_type or "missing eventType"}')


class Subscription:
    def __init__(self, feed, table, callback, events=None):
        self.id = uuid.uuid4().hex
        self.table = table
        self.callback = callback
        self.events = frozenset(events) if events else None
        self._feed = feed
        self.closed = False

    def wants(self, event):
        return not self.closed and (self.events is None or event.event_type in self.events)

    def unsubscribe(self):
        self._feed.unsubscribe(self)

    def __repr__(self):
        state = 'closed' if self.closed else 'active'
        return f"<Subscription {self.table} {state}>"


class ChangeFeed:
    def __init__(self):
        self._lock = threading.RLock()
        self._channels = {}

    def subscribe(self, table, callback, events=None):
        if events:
            unknown = set(events) - set(EVENT_TYPES)
            if unknown:
                raise ValueError(f"Unknown event types: {', '.join(sorted(unknown))}")
        subscription = Subscription(self, table, callback, events)
        with self._lock:
            self._channels.setdefault(table, {})[subscription.id] = subscription
        logger.debug('Subscribed %s to %s changes.', subscription.id, table)
        return subscription

    def unsubscribe(self, subscription):
        if subscription is None:
            return
        with self._lock:
            subscription.closed = True
            channel = self._channels.get(subscription.table)
            if channel is not None:
                channel.pop(subscription.id, None)
                if not channel:
                    self._channels.pop(subscription.table, None)

    def subscriber_count(self, table=None):
        with self._lock:
            if table is not None:
                return len(self._channels.get(table, {}))
            return sum(len(channel) for channel in self._channels.values())

    def publish(self, event):
        with self._lock:
            targets = list(self._channels.get(event.table, {}).values())
        delivered = 0
        for subscription in targets:
            if not subscription.wants(event):
                continue
            try:
                subscription.callback(event)
                delivered += 1
            except Exception:
                logger.exception('Change feed callback failed for %s on %s.', subscription.id, event.table)
        return delivered


class QueueSubscriber:
    """Buffers events from one or more tables for a streaming consumer."""

    def __init__(self, feed, tables, maxsize=1000):
        self._queue = queue.Queue(maxsize=maxsize)
        self._subscriptions = [feed.subscribe(table, self._enqueue) for table in tables]

    def _enqueue(self, event):
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning('Dropping %s event for %s: subscriber queue is full.', event.event_type, event.table)

    def get(self, timeout=None):
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
