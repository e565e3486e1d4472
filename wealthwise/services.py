import functools
import time

from flask import current_app

from .composer import Composer
from .config import _as_bool
from .errors import NotFoundError, StoreError, ValidationError
from .models import (
    BOOKING_STATUSES,
    CONTACT_STATUSES,
    DEFAULT_AUTHOR,
    BlogPost,
    Booking,
    Contact,
    normalize_status,
)
from .utils import calculate_reading_time, clean_text, generate_slug, utc_now_naive


def retry_reads(func):
    """Retry a read on transient store failures. Never wrap writes with this."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        attempts = 1 + max(0, int(current_app.config.get('STORE_READ_RETRIES', 2)))
        delay = float(current_app.config.get('STORE_READ_RETRY_DELAY', 0.25))
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except NotFoundError:
                raise
            except StoreError as exc:
                if not exc.transient or attempt >= attempts:
                    raise
                current_app.logger.warning(
                    '%s failed on attempt %s/%s, retrying: %s', func.__qualname__, attempt, attempts, exc,
                )
                if delay:
                    time.sleep(delay)
    return wrapper


def current_store():
    return current_app.extensions['content_store']


class EntityService:
    table = None
    order_by = ('created_at',)
    nulls_first = False

    def __init__(self, store):
        self.store = store
        self._subscription = None

    @retry_reads
    def list(self):
        return self.store.select(self.table, order_by=self.order_by, nulls_first=self.nulls_first)

    @retry_reads
    def get(self, record_id):
        return self.store.get(self.table, record_id)

    def create(self, fields):
        return self.store.insert(self.table, dict(fields))

    def update(self, record_id, fields):
        return self.store.update(self.table, record_id, dict(fields))

    def delete(self, record_id):
        if not self.store.delete(self.table, record_id):
            current_app.logger.info('Delete of missing %s record %s treated as done.', self.table, record_id)
        return True

    @property
    def subscription(self):
        if self._subscription is not None and self._subscription.closed:
            self._subscription = None
        return self._subscription

    def subscribe_to_changes(self, callback, events=None):
        """One live subscription per service; repeat calls return the open one."""
        if self.subscription is not None:
            return self._subscription
        self._subscription = self.store.feed.subscribe(self.table, callback, events=events)
        return self._subscription

    def unsubscribe(self, handle=None):
        handle = handle or self._subscription
        if handle is not None:
            self.store.feed.unsubscribe(handle)
        if handle is self._subscription:
            self._subscription = None


class StatusServiceMixin:
    statuses = ()

    def update_status(self, record_id, status):
        normalized = normalize_status(status, self.statuses)
        if normalized is None:
            raise ValidationError(f'Invalid status: {status}', fields=['status'],
                                  user_message=f"Status must be one of: {', '.join(self.statuses)}.")
        return self.update(record_id, {'status': normalized})


class PostService(EntityService):
    table = BlogPost.__tablename__
    order_by = ('published_at', 'created_at')
    nulls_first = True

    def _apply_body(self, fields):
        blocks = fields.pop('blocks', None)
        if blocks is not None:
            composer = Composer.from_list(blocks)
        elif 'content' in fields:
            composer = Composer.deserialize(fields['content'])
        else:
            return
        fields['content'] = composer.serialize()
        fields['reading_time'] = calculate_reading_time(composer.plain_text())

    def _apply_publish_flag(self, fields, current=None):
        if 'published' not in fields:
            return
        published = _as_bool(fields.pop('published'))
        if not published:
            fields['published_at'] = None
        elif not (current or {}).get('published_at') and not fields.get('published_at'):
            fields['published_at'] = utc_now_naive()

    def _ensure_slug_available(self, slug, record_id=None):
        existing = self.store.find_one(self.table, slug=slug)
        if existing and existing['id'] != record_id:
            raise ValidationError(f'Slug {slug} already in use.', fields=['slug'],
                                  user_message='A post with that title already exists.')

    def create(self, fields):
        fields = dict(fields)
        title = clean_text(fields.get('title'), 300)
        slug = generate_slug(fields.get('slug') or title)
        if not slug:
            raise ValidationError('Unable to generate a slug.', fields=['title'],
                                  user_message='Please enter a title for the post.')
        self._ensure_slug_available(slug)
        fields['slug'] = slug
        fields['author'] = clean_text(fields.get('author'), 200) or DEFAULT_AUTHOR
        self._apply_body(fields)
        self._apply_publish_flag(fields)
        return self.store.insert(self.table, fields)

    def update(self, record_id, fields):
        fields = dict(fields)
        current = self.get(record_id)
        if 'slug' in fields:
            slug = generate_slug(fields['slug'])
            if not slug:
                raise ValidationError('Slug is empty.', fields=['slug'], user_message='Slug cannot be empty.')
            if slug != current['slug']:
                if current.get('published_at'):
                    raise ValidationError('Published post slugs are immutable.', fields=['slug'],
                                          user_message='The slug of a published post cannot change.')
                self._ensure_slug_available(slug, record_id)
            fields['slug'] = slug
        self._apply_body(fields)
        self._apply_publish_flag(fields, current)
        return self.store.update(self.table, record_id, fields)

    def publish(self, record_id):
        return self.update(record_id, {'published': True})

    def unpublish(self, record_id):
        return self.update(record_id, {'published': False})

    @retry_reads
    def list_published(self):
        return self.store.select(
            self.table,
            not_null=('published_at',),
            order_by=('published_at',),
        )

    @retry_reads
    def get_published_by_slug(self, slug):
        post = self.store.find_one(self.table, slug=slug)
        if post is None or not post.get('published_at'):
            raise NotFoundError(f'No published post with slug {slug}.', user_message='Post not found.')
        return post


class BookingService(StatusServiceMixin, EntityService):
    table = Booking.__tablename__
    statuses = BOOKING_STATUSES


class ContactService(StatusServiceMixin, EntityService):
    table = Contact.__tablename__
    statuses = CONTACT_STATUSES


SERVICE_CLASSES = {
    'posts': PostService,
    'bookings': BookingService,
    'contacts': ContactService,
}


def build_services(store=None):
    store = store or current_store()
    return {name: service_class(store) for name, service_class in SERVICE_CLASSES.items()}
