import os
import tempfile

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_vercel_runtime():
    return bool(os.environ.get('VERCEL') or os.environ.get('VERCEL_ENV'))


def _is_production_runtime():
    flask_env = (os.environ.get('FLASK_ENV') or '').strip().lower()
    vercel_env = (os.environ.get('VERCEL_ENV') or '').strip().lower()
    return flask_env == 'production' or vercel_env == 'production'


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_weekdays(value, default):
    if value is None or not str(value).strip():
        return default
    days = set()
    for item in str(value).split(','):
        day = _as_int(item.strip(), None)
        if day is not None and 0 <= day <= 6:
            days.add(day)
    return frozenset(days)


def _content_store_url():
    raw = (os.environ.get('CONTENT_STORE_URL') or os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    return raw


def _database_url():
    configured = _content_store_url()
    if configured:
        return configured
    if _is_vercel_runtime():
        return 'sqlite:////tmp/wealthwise.db'
    return 'sqlite:///' + os.path.join(basedir, 'wealthwise.db')


def _database_engine_options(database_url):
    if database_url.startswith('sqlite'):
        return {}
    return {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }


class Config:
    SITE_NAME = (os.environ.get('SITE_NAME') or 'WealthWise').strip()
    SECRET_KEY = os.environ.get('SECRET_KEY') or ''
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD') or ''
    ADMIN_MAX_SESSIONS = max(1, _as_int(os.environ.get('ADMIN_MAX_SESSIONS'), 5))

    CONTENT_STORE_CONFIGURED = bool(_content_store_url())
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    STORE_READ_RETRIES = max(0, _as_int(os.environ.get('STORE_READ_RETRIES'), 2))
    STORE_READ_RETRY_DELAY = max(0.0, _as_float(os.environ.get('STORE_READ_RETRY_DELAY'), 0.25))

    UPLOAD_FOLDER = (os.environ.get('UPLOAD_FOLDER') or '').strip() or (
        os.path.join(tempfile.gettempdir(), 'uploads') if _is_vercel_runtime() else os.path.join(basedir, 'uploads')
    )
    STORAGE_PUBLIC_BASE_URL = (os.environ.get('STORAGE_PUBLIC_BASE_URL') or '').rstrip('/')
    MAX_UPLOAD_BYTES = _as_int(os.environ.get('MAX_UPLOAD_BYTES'), 5 * 1024 * 1024)
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + 1024 * 1024
    MAX_UPLOAD_IMAGE_PIXELS = _as_int(os.environ.get('MAX_UPLOAD_IMAGE_PIXELS'), 40_000_000)
    ALLOWED_UPLOAD_MIME_TYPES = {
        'image/png',
        'image/jpeg',
        'image/gif',
        'image/webp',
    }

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _as_bool(os.environ.get('SESSION_COOKIE_SECURE'), _is_production_runtime())
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = SESSION_COOKIE_SECURE
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), _is_vercel_runtime())
    CSRF_ENABLED = _as_bool(os.environ.get('CSRF_ENABLED'), True)

    SMTP_HOST = (os.environ.get('SMTP_HOST') or '').strip()
    SMTP_PORT = _as_int(os.environ.get('SMTP_PORT'), 587)
    SMTP_USERNAME = (os.environ.get('SMTP_USERNAME') or '').strip()
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD') or ''
    SMTP_USE_TLS = _as_bool(os.environ.get('SMTP_USE_TLS'), True)
    SMTP_USE_SSL = _as_bool(os.environ.get('SMTP_USE_SSL'), False)
    MAIL_FROM = (os.environ.get('MAIL_FROM') or SMTP_USERNAME or 'no-reply@localhost').strip()
    ADMIN_NOTIFICATION_EMAIL = os.environ.get('ADMIN_NOTIFICATION_EMAIL') or ''
    MAILGUN_API_KEY = (os.environ.get('MAILGUN_API_KEY') or '').strip()
    MAILGUN_DOMAIN = (os.environ.get('MAILGUN_DOMAIN') or '').strip()

    BOOKING_CLOSED_WEEKDAYS = _as_weekdays(os.environ.get('BOOKING_CLOSED_WEEKDAYS'), frozenset({6}))
    SEED_SAMPLE_CONTENT = _as_bool(os.environ.get('SEED_SAMPLE_CONTENT'), False)
    CHANGE_STREAM_KEEPALIVE_SECONDS = max(1.0, _as_float(os.environ.get('CHANGE_STREAM_KEEPALIVE_SECONDS'), 15.0))

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
