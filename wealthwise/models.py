import uuid

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy

from .utils import clean_text, isoformat, utc_now_naive

db = SQLAlchemy()

DEFAULT_AUTHOR = 'WealthWise Team'
DEFAULT_READING_TIME = '5 min read'

BOOKING_STATUS_PENDING = 'pending'
BOOKING_STATUS_CONFIRMED = 'confirmed'
BOOKING_STATUS_COMPLETED = 'completed'
BOOKING_STATUS_CANCELLED = 'cancelled'
BOOKING_STATUSES = (
    BOOKING_STATUS_PENDING,
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_CANCELLED,
)

CONTACT_STATUS_NEW = 'new'
CONTACT_STATUS_REVIEWED = 'reviewed'
CONTACT_STATUS_REPLIED = 'replied'
CONTACT_STATUS_CLOSED = 'closed'
CONTACT_STATUSES = (
    CONTACT_STATUS_NEW,
    CONTACT_STATUS_REVIEWED,
    CONTACT_STATUS_REPLIED,
    CONTACT_STATUS_CLOSED,
)


def new_record_id():
    return str(uuid.uuid4())


def normalize_status(value, choices, default=None):
    candidate = clean_text(value, 40).lower()
    if candidate in choices:
        return candidate
    return default


class RecordMixin:
    # Columns the store fills in itself.
    managed_fields = ('id', 'created_at', 'updated_at')
    required_fields = ()
    status_choices = ()

    def to_dict(self):
        record = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if column.name.endswith('_at'):
                value = isoformat(value)
            record[column.name] = value
        return record

    @classmethod
    def writable_fields(cls):
        return tuple(
            column.name for column in cls.__table__.columns
            if column.name not in cls.managed_fields
        )


class BlogPost(RecordMixin, db.Model):
    __tablename__ = 'blog_posts'
    required_fields = ('title', 'slug', 'excerpt', 'content', 'cover_image')

    id = db.Column(db.String(36), primary_key=True, default=new_record_id)
    slug = db.Column(db.String(200), unique=True, nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    excerpt = db.Column(db.Text, nullable=False)
    content = db.Column(db.Text, nullable=False)
    cover_image = db.Column(db.String(500), nullable=False)
    reading_time = db.Column(db.String(40), nullable=False, default=DEFAULT_READING_TIME)
    author = db.Column(db.String(200), default=DEFAULT_AUTHOR)
    published_at = db.Column(db.DateTime, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)


class Booking(RecordMixin, db.Model):
    __tablename__ = 'bookings'
    required_fields = ('name', 'email', 'phone', 'date', 'time_slot')
    status_choices = BOOKING_STATUSES

    id = db.Column(db.String(36), primary_key=True, default=new_record_id)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=False)
    date = db.Column(db.String(10), nullable=False, index=True)  # ISO date, YYYY-MM-DD
    time_slot = db.Column(db.String(20), nullable=False)
    message = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=BOOKING_STATUS_PENDING, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)


class Contact(RecordMixin, db.Model):
    __tablename__ = 'contacts'
    required_fields = ('name', 'email', 'subject', 'message')
    status_choices = CONTACT_STATUSES

    id = db.Column(db.String(36), primary_key=True, default=new_record_id)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False)
    subject = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, nullable=False)
    phone = db.Column(db.String(50))
    status = db.Column(db.String(20), nullable=False, default=CONTACT_STATUS_NEW, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)


TABLES = {
    BlogPost.__tablename__: BlogPost,
    Booking.__tablename__: Booking,
    Contact.__tablename__: Contact,
}


ADMIN_USER_ID = 'admin'


class AdminUser(UserMixin):
    """The single shared-password administrator. Not stored in the database."""

    id = ADMIN_USER_ID
    username = 'admin'
