from datetime import date

from flask import Blueprint, abort, current_app, jsonify, request, send_from_directory

from .. import CSRF_SESSION_KEY, get_csrf_token
from ..booking import TIME_SLOTS, available_dates, closed_weekdays, parse_booking_date, submit_booking
from ..composer import Composer
from ..content import get_page, list_pages
from ..errors import ValidationError
from ..models import CONTACT_STATUS_NEW
from ..notifications import send_contact_notification
from ..services import BookingService, ContactService, PostService, current_store
from ..utils import clean_text, is_valid_email

main_bp = Blueprint('main', __name__)

PUBLIC_POST_FIELDS = ('id', 'slug', 'title', 'excerpt', 'cover_image', 'reading_time', 'author', 'published_at')


def request_payload():
    if request.is_json:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}
    payload = request.form.to_dict()
    payload.pop(CSRF_SESSION_KEY, None)
    return payload


def public_post(post, detail=False):
    data = {field: post.get(field) for field in PUBLIC_POST_FIELDS}
    if detail:
        composer = Composer.deserialize(post.get('content'))
        data['blocks'] = composer.to_list()
        data['html'] = composer.render_html()
    return data


@main_bp.route('/api/csrf-token')
def csrf_token():
    return jsonify({'csrf_token': get_csrf_token()})


@main_bp.route('/api/pages')
def pages():
    return jsonify({'pages': list_pages()})


@main_bp.route('/api/pages/<slug>')
def page(slug):
    data = get_page(slug)
    if data is None:
        abort(404, description='Page not found.')
    return jsonify(data)


@main_bp.route('/api/posts')
def posts():
    items = PostService(current_store()).list_published()
    return jsonify({'posts': [public_post(post) for post in items]})


@main_bp.route('/api/posts/<slug>')
def post_detail(slug):
    post = PostService(current_store()).get_published_by_slug(slug)
    return jsonify(public_post(post, detail=True))


@main_bp.route('/api/booking/slots')
def booking_slots():
    today = date.today()
    start = parse_booking_date(request.args.get('start') or '') or today
    start = max(start, today)
    days = request.args.get('days', 14, type=int)
    closed = closed_weekdays()
    return jsonify({
        'time_slots': list(TIME_SLOTS),
        'dates': [day.isoformat() for day in available_dates(start, days, closed)],
        'closed_weekdays': sorted(closed),
    })


@main_bp.route('/api/bookings', methods=['POST'])
def book_session():
    result = submit_booking(BookingService(current_store()), request_payload())
    payload = result.to_dict()
    if result.notified:
        payload['message'] = 'Session booked successfully! Check your email for confirmation.'
    else:
        payload['message'] = 'Your session is booked, but we could not send every confirmation email.'
    return jsonify(payload), 201


@main_bp.route('/api/contacts', methods=['POST'])
def contact():
    payload = request_payload()
    name = clean_text(payload.get('name', ''), 200)
    email = clean_text(payload.get('email', ''), 200)
    phone = clean_text(payload.get('phone', ''), 50)
    subject = clean_text(payload.get('subject', ''), 300)
    message = clean_text(payload.get('message', ''), 5000)

    missing = [field for field, value in (('name', name), ('email', email), ('subject', subject), ('message', message))
               if not value]
    if missing:
        raise ValidationError(f'Missing contact fields: {", ".join(missing)}', fields=missing,
                              user_message='Name, email, subject, and message are required.')
    if not is_valid_email(email):
        raise ValidationError('Invalid email.', fields=['email'], user_message='Please provide a valid email address.')

    submission = ContactService(current_store()).create({
        'name': name,
        'email': email,
        'phone': phone or None,
        'subject': subject,
        'message': message,
        'status': CONTACT_STATUS_NEW,
    })
    current_app.logger.info(f"Contact submission saved (id={submission['id']})")
    try:
        result = send_contact_notification(submission)
    except Exception:
        current_app.logger.exception('Contact notification failed.')
        result = False
    current_app.logger.info(f'Email notification result: {result}')
    return jsonify({
        'contact': {'id': submission['id'], 'status': submission['status']},
        'message': 'Thank you for your message! We will get back to you soon.',
    }), 201


@main_bp.route('/uploads/<path:path>')
def uploaded_file(path):
    storage = current_app.extensions['blob_storage']
    if not storage.resolve(path):
        abort(404)
    return send_from_directory(storage.root, path)
