import json
import logging
import os
import re
import secrets
import warnings

from flask import Flask, g, has_request_context, jsonify, request, session
from flask_login import LoginManager
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .admin_state import AdminSessionRegistry
from .config import Config
from .errors import WealthWiseError
from .models import AdminUser, ADMIN_USER_ID, db
from .realtime import ChangeFeed
from .storage import BlobStorage
from .store import ContentStore

login_manager = LoginManager()
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,80}$")
_sentry_initialized = False
CSRF_SESSION_KEY = '_csrf_token'


class JsonLogFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'time': self.formatTime(record, self.datefmt),
        }
        if has_request_context():
            payload.update(
                {
                    'request_id': getattr(g, 'request_id', ''),
                    'method': request.method,
                    'path': request.path,
                    'remote_ip': request.remote_addr,
                }
            )
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(app):
    app.logger.setLevel(getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))
    if not app.config.get('LOG_JSON', True):
        return
    formatter = JsonLogFormatter()
    for handler in app.logger.handlers:
        handler.setFormatter(formatter)


@login_manager.user_loader
def load_user(user_id):
    if user_id != ADMIN_USER_ID:
        return None
    return AdminUser()


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Please log in to continue.', 'kind': 'auth'}), 401


def get_csrf_token():
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def init_sentry(app):
    global _sentry_initialized
    if _sentry_initialized:
        return

    dsn = (app.config.get('SENTRY_DSN') or '').strip()
    if not dsn:
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        traces_sample_rate = float(app.config.get('SENTRY_TRACES_SAMPLE_RATE') or 0.0)
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=traces_sample_rate,
            environment=(app.config.get('SENTRY_ENVIRONMENT') or None),
        )
        _sentry_initialized = True
        app.logger.info('Sentry monitoring enabled.')
    except Exception:
        app.logger.exception('Failed to initialize Sentry monitoring.')


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    configure_logging(app)

    if not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = secrets.token_urlsafe(32)
        warnings.warn(
            'SECRET_KEY is not set; using a random key. '
            'Sessions will not survive restarts. '
            'Set the SECRET_KEY environment variable for production.',
            stacklevel=2,
        )
    if not app.config.get('ADMIN_PASSWORD'):
        app.logger.warning('ADMIN_PASSWORD is not set; the admin area is disabled.')
    if not app.config.get('CONTENT_STORE_CONFIGURED') and str(app.config['SQLALCHEMY_DATABASE_URI']).startswith('sqlite'):
        app.logger.warning('CONTENT_STORE_URL is not set; using the local SQLite database.')

    if app.config.get('TRUST_PROXY_HEADERS'):
        # Only trust one proxy hop (the platform edge) when explicitly enabled.
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_sentry(app)
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    db.init_app(app)
    login_manager.init_app(app)

    feed = ChangeFeed()
    app.extensions['change_feed'] = feed
    app.extensions['content_store'] = ContentStore(feed)
    app.extensions['blob_storage'] = BlobStorage.from_config(app.config)
    app.extensions['admin_sessions'] = AdminSessionRegistry(app.config.get('ADMIN_MAX_SESSIONS', 5))

    @app.before_request
    def assign_request_id():
        incoming = (request.headers.get('X-Request-ID') or '').strip()
        if _REQUEST_ID_RE.match(incoming):
            g.request_id = incoming
        else:
            g.request_id = secrets.token_hex(16)

    @app.before_request
    def enforce_csrf():
        if not app.config.get('CSRF_ENABLED', True):
            return None
        if request.method not in ('POST', 'PUT', 'PATCH', 'DELETE'):
            return None
        expected = session.get(CSRF_SESSION_KEY)
        provided = request.headers.get('X-CSRF-Token') or request.form.get(CSRF_SESSION_KEY)
        if not expected or not provided or not secrets.compare_digest(expected, provided):
            return jsonify({'error': 'Your form session expired. Please retry your action.', 'kind': 'csrf'}), 400
        return None

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
        response.headers.setdefault('Permissions-Policy', 'geolocation=(), microphone=(), camera=()')
        if request.path.startswith('/admin'):
            response.headers.setdefault('X-Robots-Tag', 'noindex, nofollow, noarchive')
            response.headers['Cache-Control'] = 'no-store'
        elif request.path.startswith('/uploads/') and response.status_code in (200, 304):
            response.headers['Cache-Control'] = 'public, max-age=604800'
        return response

    @app.errorhandler(WealthWiseError)
    def handle_domain_error(error):
        app.logger.info('%s error: %s', error.kind, error)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description, 'kind': 'http'}), error.code

    @app.errorhandler(500)
    def handle_server_error(error):
        return jsonify({'error': 'Something went wrong. Please try again.', 'kind': 'server'}), 500

    @app.get('/healthz')
    def healthz():
        try:
            db.session.execute(text('SELECT 1'))
            return {'status': 'ok'}, 200
        except Exception:
            db.session.rollback()
            app.logger.exception('Health check database query failed.')
            return {'status': 'degraded'}, 503

    from .routes.main import main_bp
    from .routes.admin import admin_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(admin_bp, url_prefix='/admin')

    from .cli import register_commands
    register_commands(app)

    with app.app_context():
        try:
            db.create_all()
        except Exception:
            app.logger.exception('db.create_all() failed; tables may need manual migration (flask print-schema).')
        if app.config.get('SEED_SAMPLE_CONTENT'):
            try:
                from .seed import seed_database
                seed_database()
            except Exception:
                app.logger.exception('seed_database() failed; seeding skipped.')

    return app
