"""Admin session state.

An ``AdminSession`` moves between two states, anonymous and authenticated.
Logging in loads every entity list into an ``EntityCache`` and subscribes it to
the change feed; logging out clears the caches and releases the subscriptions.
"""
import hmac
import secrets
import threading
from collections import OrderedDict

from flask import current_app

from .errors import StoreError, WealthWiseError
from .realtime import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE

STATE_ANONYMOUS = 'anonymous'
STATE_AUTHENTICATED = 'authenticated'


class EntityCache:
    def __init__(self, service):
        self.service = service
        self.items = []
        self.loading = False
        self.error = None
        self._lock = threading.RLock()

    def snapshot(self):
        with self._lock:
            return list(self.items)

    def get(self, record_id):
        with self._lock:
            for item in self.items:
                if item.get('id') == record_id:
                    return dict(item)
        return None

    def fetch(self):
        self.loading = True
        self.error = None
        try:
            items = self.service.list()
        except StoreError as exc:
            current_app.logger.error('Loading %s failed: %s', self.service.table, exc)
            items = []
            self.error = exc.user_message
        finally:
            self.loading = False
        with self._lock:
            self.items = items
        return self.snapshot()

    def _upsert(self, record):
        with self._lock:
            for index, item in enumerate(self.items):
                if item.get('id') == record.get('id'):
                    self.items[index] = record
                    return
            self.items.insert(0, record)

    def _replace(self, record):
        with self._lock:
            for index, item in enumerate(self.items):
                if item.get('id') == record.get('id'):
                    self.items[index] = record
                    return True
        return False

    def _remove(self, record_id):
        with self._lock:
            self.items = [item for item in self.items if item.get('id') != record_id]

    def _run(self, action, *args):
        try:
            return action(*args)
        except WealthWiseError as exc:
            self.error = exc.user_message
            raise

    def create(self, fields):
        record = self._run(self.service.create, fields)
        self._upsert(record)
        return record

    def update(self, record_id, fields):
        record = self._run(self.service.update, record_id, fields)
        if not self._replace(record):
            self._upsert(record)
        return record

    def update_status(self, record_id, status):
        record = self._run(self.service.update_status, record_id, status)
        if not self._replace(record):
            self._upsert(record)
        return record

    def delete(self, record_id):
        self._run(self.service.delete, record_id)
        self._remove(record_id)
        return True

    def apply(self, event):
        if event.event_type == EVENT_INSERT:
            self._upsert(event.new)
        elif event.event_type == EVENT_UPDATE:
            if not self._replace(event.new):
                self._upsert(event.new)
        elif event.event_type == EVENT_DELETE:
            self._remove(event.old.get('id'))

    def subscribe(self):
        return self.service.subscribe_to_changes(self.apply)

    def release(self):
        self.service.unsubscribe()
        with self._lock:
            self.items = []
        self.error = None
        self.loading = False

    def to_dict(self):
        return {
            'items': self.snapshot(),
            'loading': self.loading,
            'error': self.error,
        }


class AdminSession:
    def __init__(self, secret, services):
        self._secret = secret or ''
        self.services = services
        self.caches = {name: EntityCache(service) for name, service in services.items()}
        self.state = STATE_ANONYMOUS
        self.token = None

    @property
    def is_authenticated(self):
        return self.state == STATE_AUTHENTICATED

    def cache(self, name):
        return self.caches[name]

    def login(self, password):
        if not self._secret:
            current_app.logger.warning('ADMIN_PASSWORD is not configured; admin login is disabled.')
            return False
        if not isinstance(password, str) or not hmac.compare_digest(
            password.encode('utf-8'), self._secret.encode('utf-8'),
        ):
            return False
        self._start()
        return True

    def restore(self):
        """Re-open a remembered login without asking for the password again."""
        self._start()

    def _start(self):
        self.state = STATE_AUTHENTICATED
        for cache in self.caches.values():
            cache.fetch()
            cache.subscribe()

    def logout(self):
        self.state = STATE_ANONYMOUS
        for cache in self.caches.values():
            cache.release()

    def to_dict(self):
        return {
            'state': self.state,
            'authenticated': self.is_authenticated,
            'counts': {name: len(cache.items) for name, cache in self.caches.items()},
            'errors': {name: cache.error for name, cache in self.caches.items() if cache.error},
        }


class AdminSessionRegistry:
    """Live admin sessions keyed by an opaque token stored in the Flask session.

    At most ``max_sessions`` are kept; registering past the cap logs out the
    least recently used session so its subscriptions are released.
    """

    def __init__(self, max_sessions=5):
        self.max_sessions = max(1, int(max_sessions))
        self._lock = threading.Lock()
        self._sessions = OrderedDict()

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def register(self, admin_session):
        token = secrets.token_urlsafe(24)
        evicted = []
        with self._lock:
            self._sessions[token] = admin_session
            while len(self._sessions) > self.max_sessions:
                evicted.append(self._sessions.popitem(last=False)[1])
        admin_session.token = token
        for stale in evicted:
            stale.logout()
            stale.token = None
        if evicted:
            current_app.logger.info('Evicted %s idle admin session(s).', len(evicted))
        return token

    def get(self, token):
        if not token:
            return None
        with self._lock:
            admin_session = self._sessions.get(token)
            if admin_session is not None:
                self._sessions.move_to_end(token)
            return admin_session

    def latest(self):
        with self._lock:
            if not self._sessions:
                return None
            return next(reversed(self._sessions.values()))

    def discard(self, token):
        with self._lock:
            admin_session = self._sessions.pop(token, None) if token else None
        if admin_session is not None:
            admin_session.logout()
            admin_session.token = None
        return admin_session
