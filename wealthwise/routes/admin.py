import json

from flask import Blueprint, Response, current_app, jsonify, request, session, stream_with_context
from flask_login import current_user, login_required, login_user, logout_user

from ..admin_state import STATE_ANONYMOUS, AdminSession
from ..composer import Composer
from ..errors import NotFoundError, ValidationError
from ..models import AdminUser, normalize_status
from ..realtime import QueueSubscriber
from ..services import SERVICE_CLASSES, build_services
from ..utils import calculate_reading_time
from .main import request_payload

admin_bp = Blueprint('admin', __name__)
ADMIN_SESSION_KEY = '_admin_session'
STATUS_ENTITIES = 'any(bookings, contacts)'


def _registry():
    return current_app.extensions['admin_sessions']


def _open_admin_session():
    return AdminSession(current_app.config.get('ADMIN_PASSWORD'), build_services())


def current_admin_session():
    """The admin session bound to this browser, restored after a remembered login."""
    registry = _registry()
    admin = registry.get(session.get(ADMIN_SESSION_KEY))
    if admin is None and current_user.is_authenticated:
        admin = registry.latest()
        if admin is None:
            admin = _open_admin_session()
            admin.restore()
            registry.register(admin)
            current_app.logger.info('Restored admin session from remembered login.')
        session[ADMIN_SESSION_KEY] = admin.token
    return admin


def _cache(name):
    return current_admin_session().cache(name)


def _record(name, record_id):
    record = _cache(name).get(record_id)
    if record is None:
        record = _cache(name).service.get(record_id)
    return record


def _post_with_blocks(post):
    data = dict(post)
    data['blocks'] = Composer.deserialize(post.get('content')).to_list(include_ids=True)
    return data


def _list_response(name):
    cache = _cache(name)
    if request.args.get('refresh'):
        cache.fetch()
    return jsonify(cache.to_dict())


@admin_bp.route('/api/login', methods=['POST'])
def login():
    if current_user.is_authenticated:
        admin = current_admin_session()
        return jsonify(admin.to_dict())

    password = request_payload().get('password', '')
    admin = _open_admin_session()
    if not admin.login(password):
        current_app.logger.warning('Failed admin login attempt.')
        return jsonify({'error': 'Invalid password', 'kind': 'auth', 'state': STATE_ANONYMOUS}), 401

    _registry().discard(session.pop(ADMIN_SESSION_KEY, None))
    session[ADMIN_SESSION_KEY] = _registry().register(admin)
    login_user(AdminUser(), remember=True)
    current_app.logger.info('Admin logged in.')
    return jsonify(admin.to_dict())


@admin_bp.route('/api/logout', methods=['POST'])
@login_required
def logout():
    _registry().discard(session.pop(ADMIN_SESSION_KEY, None))
    logout_user()
    return jsonify({'state': STATE_ANONYMOUS, 'authenticated': False})


@admin_bp.route('/api/session')
def session_state():
    if not current_user.is_authenticated:
        return jsonify({'state': STATE_ANONYMOUS, 'authenticated': False})
    return jsonify(current_admin_session().to_dict())


@admin_bp.route('/api/posts', methods=['GET', 'POST'])
@login_required
def posts():
    if request.method == 'GET':
        return _list_response('posts')
    post = _cache('posts').create(request_payload())
    return jsonify(_post_with_blocks(post)), 201


@admin_bp.route('/api/posts/preview', methods=['POST'])
@login_required
def preview_post():
    payload = request_payload()
    if payload.get('blocks') is not None:
        composer = Composer.from_list(payload['blocks'])
    else:
        composer = Composer.deserialize(payload.get('content'))
    return jsonify({
        'html': composer.render_html(),
        'reading_time': calculate_reading_time(composer.plain_text()),
        'blocks': composer.to_list(include_ids=True),
    })


@admin_bp.route('/api/posts/<record_id>', methods=['GET', 'PATCH', 'DELETE'])
@login_required
def post_detail(record_id):
    if request.method == 'GET':
        return jsonify(_post_with_blocks(_record('posts', record_id)))
    if request.method == 'DELETE':
        _cache('posts').delete(record_id)
        return jsonify({'deleted': True, 'id': record_id})
    post = _cache('posts').update(record_id, request_payload())
    return jsonify(_post_with_blocks(post))


@admin_bp.route('/api/posts/<record_id>/publish', methods=['POST'])
@login_required
def publish_post(record_id):
    return jsonify(_cache('posts').update(record_id, {'published': True}))


@admin_bp.route('/api/posts/<record_id>/unpublish', methods=['POST'])
@login_required
def unpublish_post(record_id):
    return jsonify(_cache('posts').update(record_id, {'published': False}))


@admin_bp.route(f'/api/<{STATUS_ENTITIES}:entity>')
@login_required
def status_entity_list(entity):
    return _list_response(entity)


@admin_bp.route(f'/api/<{STATUS_ENTITIES}:entity>/<record_id>', methods=['GET', 'PATCH', 'DELETE'])
@login_required
def status_entity_detail(entity, record_id):
    cache = _cache(entity)
    if request.method == 'GET':
        return jsonify(_record(entity, record_id))
    if request.method == 'DELETE':
        cache.delete(record_id)
        return jsonify({'deleted': True, 'id': record_id})

    payload = request_payload()
    if not payload:
        raise ValidationError('Empty update.', user_message='Nothing to update.')
    if set(payload) == {'status'}:
        return jsonify(cache.update_status(record_id, payload['status']))
    if 'status' in payload:
        normalized = normalize_status(payload['status'], cache.service.statuses)
        if normalized is None:
            raise ValidationError(f"Invalid status: {payload['status']}", fields=['status'],
                                  user_message=f"Status must be one of: {', '.join(cache.service.statuses)}.")
        payload['status'] = normalized
    return jsonify(cache.update(record_id, payload))


@admin_bp.route('/api/uploads', methods=['POST'])
@login_required
def upload():
    storage = current_app.extensions['blob_storage']
    purpose = (request.form.get('purpose') or 'covers').strip().lower()
    url = storage.store_image(request.files.get('file'), purpose)
    current_app.logger.info('Stored %s image %s', purpose, url)
    return jsonify({'url': url, 'purpose': purpose}), 201


@admin_bp.route('/api/changes')
@login_required
def changes():
    requested = [name.strip() for name in (request.args.get('entities') or '').split(',') if name.strip()]
    unknown = [name for name in requested if name not in SERVICE_CLASSES]
    if unknown:
        raise NotFoundError(f"Unknown entities: {', '.join(unknown)}", user_message='Unknown entity.')
    tables = [SERVICE_CLASSES[name].table for name in (requested or SERVICE_CLASSES)]
    subscriber = QueueSubscriber(current_app.extensions['change_feed'], tables)
    keepalive = current_app.config.get('CHANGE_STREAM_KEEPALIVE_SECONDS', 15.0)

    def stream():
        try:
            yield 'retry: 3000\n\n'
            while True:
                event = subscriber.get(timeout=keepalive)
                if event is None:
                    yield ': keep-alive\n\n'
                    continue
                yield f"event: {event.event_type.lower()}\ndata: {json.dumps(event.to_payload())}\n\n"
        finally:
            subscriber.close()

    return Response(
        stream_with_context(stream()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-store', 'X-Accel-Buffering': 'no'},
    )
