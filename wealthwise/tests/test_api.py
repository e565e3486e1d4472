import io
from datetime import date, timedelta

from wealthwise.admin_state import STATE_AUTHENTICATED
from wealthwise.models import Contact, db
from wealthwise.services import PostService, current_store

from .conftest import admin_login, build_test_app, csrf_headers, png_bytes, post_fields


def next_open_day():
    day = date.today() + timedelta(days=1)
    while day.weekday() == 6:
        day += timedelta(days=1)
    return day


def test_health_endpoint_reports_ok(client):
    response = client.get('/healthz')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'


def test_security_headers_and_request_id(client):
    response = client.get('/api/pages', headers={'X-Request-ID': 'req-12345678'})
    assert response.headers.get('X-Frame-Options') == 'DENY'
    assert response.headers.get('X-Content-Type-Options') == 'nosniff'
    assert response.headers.get('X-Request-ID') == 'req-12345678'

    admin_response = client.get('/admin/api/session')
    assert admin_response.headers.get('X-Robots-Tag') == 'noindex, nofollow, noarchive'
    assert admin_response.headers.get('Cache-Control') == 'no-store'


def test_marketing_pages(client):
    slugs = [page['slug'] for page in client.get('/api/pages').get_json()['pages']]
    assert slugs == ['home', 'about', 'products', 'mutual-funds', 'insurance', 'tax-guide']
    page = client.get('/api/pages/insurance').get_json()
    assert page['title'] == 'Insurance'
    assert client.get('/api/pages/pricing').status_code == 404


def test_public_posts_hide_drafts(client, app):
    with app.app_context():
        posts = PostService(current_store())
        posts.create(post_fields('Older', published_at='2024-01-01T00:00:00'))
        posts.create(post_fields('Newer', published=True, content='Hello ![](https://example.com/a.png)'))
        posts.create(post_fields('Hidden draft'))

    listing = client.get('/api/posts').get_json()['posts']
    assert [post['title'] for post in listing] == ['Newer', 'Older']
    assert 'content' not in listing[0]

    detail = client.get('/api/posts/newer')
    assert detail.status_code == 200
    payload = detail.get_json()
    assert [block['type'] for block in payload['blocks']] == ['text', 'image']
    assert '<img src="https://example.com/a.png" alt="">' in payload['html']

    missing = client.get('/api/posts/hidden-draft')
    assert missing.status_code == 404
    assert missing.get_json()['kind'] == 'not_found'


def test_seeded_posts_are_public(tmp_path, monkeypatch):
    app = build_test_app(tmp_path, monkeypatch, {'SEED_SAMPLE_CONTENT': True})
    slugs = {post['slug'] for post in app.test_client().get('/api/posts').get_json()['posts']}
    assert slugs == {'power-of-sip', 'tax-saving-elss', 'health-insurance-2024'}


def test_booking_slots_skip_closed_days(client):
    payload = client.get('/api/booking/slots?start=2020-01-01&days=14').get_json()
    assert payload['time_slots'][0] == '10:00 AM'
    assert payload['closed_weekdays'] == [6]
    assert payload['dates']
    assert payload['dates'][0] >= date.today().isoformat()
    assert all(date.fromisoformat(day).weekday() != 6 for day in payload['dates'])


def test_booking_post_requires_csrf(client, sent_emails):
    response = client.post('/api/bookings', json={'name': 'No token'})
    assert response.status_code == 400
    assert response.get_json()['kind'] == 'csrf'
    assert sent_emails == []


def test_booking_post_creates_pending_booking(client, sent_emails):
    headers = csrf_headers(client)
    response = client.post('/api/bookings', headers=headers, json={
        'name': 'A',
        'email': 'a@x.com',
        'phone': '123',
        'date': next_open_day().isoformat(),
        'timeSlot': '10:00 AM',
    })
    assert response.status_code == 201
    payload = response.get_json()
    assert payload['booking']['status'] == 'pending'
    assert payload['emails_sent'] == 2
    assert payload['email_error'] is None
    assert len(sent_emails) == 2


def test_booking_post_validation_error(client, sent_emails):
    headers = csrf_headers(client)
    response = client.post('/api/bookings', headers=headers, json={'name': 'A', 'email': 'a@x.com'})
    assert response.status_code == 400
    payload = response.get_json()
    assert payload['kind'] == 'validation'
    assert payload['error'] == 'Please fill all required fields.'
    assert 'time_slot' in payload['fields']


def test_contact_post_saves_submission_and_notifies(client, app, sent_emails):
    headers = csrf_headers(client)
    response = client.post('/api/contacts', headers=headers, json={
        'name': 'Ravi',
        'email': 'ravi@example.com',
        'subject': 'SIP question',
        'message': 'How much should I start with?',
    })
    assert response.status_code == 201
    assert response.get_json()['contact']['status'] == 'new'
    assert len(sent_emails) == 1
    assert 'SIP question' in sent_emails[0]['subject']

    with app.app_context():
        saved = db.session.execute(db.select(Contact).filter_by(email='ravi@example.com')).scalar_one()
        assert saved.phone is None


def test_contact_post_rejects_bad_email(client):
    headers = csrf_headers(client)
    response = client.post('/api/contacts', headers=headers, data={
        'name': 'Ravi', 'email': 'ravi', 'subject': 'Hi', 'message': 'Hello',
    })
    assert response.status_code == 400
    assert response.get_json()['fields'] == ['email']


def test_booking_post_accepts_numeric_json_values(client, sent_emails):
    headers = csrf_headers(client)
    response = client.post('/api/bookings', headers=headers, json={
        'name': 'A',
        'email': 'a@x.com',
        'phone': 9876543210,
        'date': next_open_day().isoformat(),
        'time_slot': '10:00 AM',
    })
    assert response.status_code == 201
    assert response.get_json()['booking']['phone'] == '9876543210'


def test_contact_post_accepts_numeric_json_values(client, sent_emails):
    headers = csrf_headers(client)
    response = client.post('/api/contacts', headers=headers, json={
        'name': 42,
        'email': 'ravi@example.com',
        'phone': 9876543210,
        'subject': 'SIP question',
        'message': 'How much should I start with?',
    })
    assert response.status_code == 201


def test_admin_api_requires_login(client):
    assert client.get('/admin/api/posts').status_code == 401
    assert client.get('/admin/api/bookings').status_code == 401
    assert client.get('/admin/api/changes').status_code == 401
    session_state = client.get('/admin/api/session').get_json()
    assert session_state['authenticated'] is False


def test_admin_login_rejects_wrong_password(client, app):
    response, _ = admin_login(client, password='wrong')
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Invalid password'
    assert client.get('/admin/api/posts').status_code == 401
    assert len(app.extensions['admin_sessions']) == 0


def test_admin_login_requires_csrf(client):
    response = client.post('/admin/api/login', json={'password': 'admin123'})
    assert response.status_code == 400
    assert client.get('/admin/api/posts').status_code == 401


def test_admin_login_and_logout(client, app):
    response, headers = admin_login(client)
    assert response.status_code == 200
    assert response.get_json()['state'] == STATE_AUTHENTICATED
    assert client.get('/admin/api/session').get_json()['authenticated'] is True
    assert app.extensions['change_feed'].subscriber_count() == 3

    logout = client.post('/admin/api/logout', headers=headers)
    assert logout.status_code == 200
    assert logout.get_json()['authenticated'] is False
    assert client.get('/admin/api/posts').status_code == 401
    assert app.extensions['change_feed'].subscriber_count() == 0
    assert len(app.extensions['admin_sessions']) == 0


def test_admin_session_is_restored_for_remembered_login(client, app):
    _, headers = admin_login(client)
    registry = app.extensions['admin_sessions']
    with client.session_transaction() as flask_session:
        token = flask_session['_admin_session']
    registry.discard(token)

    response = client.get('/admin/api/posts')
    assert response.status_code == 200
    assert len(registry) == 1
    assert app.extensions['change_feed'].subscriber_count() == 3


def test_remembered_login_reuses_one_admin_session(client, app):
    admin_login(client)
    registry = app.extensions['admin_sessions']
    for _ in range(3):
        with client.session_transaction() as flask_session:
            flask_session.pop('_admin_session', None)
        assert client.get('/admin/api/posts').status_code == 200
    assert len(registry) == 1
    assert app.extensions['change_feed'].subscriber_count() == 3


def test_admin_form_posts_accept_the_csrf_field(client):
    admin_login(client)
    with client.session_transaction() as flask_session:
        token = flask_session['_csrf_token']
    response = client.post('/admin/api/posts', data=post_fields('Form post', _csrf_token=token, published='false'))
    assert response.status_code == 201
    assert response.get_json()['published_at'] is None

    published = client.post('/admin/api/posts', data=post_fields('Live form post', _csrf_token=token, published='true'))
    assert published.status_code == 201
    assert published.get_json()['published_at'] is not None


def test_admin_post_lifecycle(client, app):
    _, headers = admin_login(client)

    created = client.post('/admin/api/posts', headers=headers, json={
        'title': 'Power of SIP',
        'excerpt': 'Compounding explained.',
        'cover_image': 'https://images.example.com/sip.jpg',
        'blocks': [
            {'type': 'text', 'content': 'Start early.'},
            {'type': 'image', 'content': '/uploads/content/2025/06/chart.png'},
        ],
    })
    assert created.status_code == 201
    post = created.get_json()
    assert post['slug'] == 'power-of-sip'
    assert post['published_at'] is None
    assert [block['type'] for block in post['blocks']] == ['text', 'image']

    listing = client.get('/admin/api/posts').get_json()
    assert [item['id'] for item in listing['items']] == [post['id']]
    assert client.get('/api/posts').get_json()['posts'] == []

    published = client.post(f"/admin/api/posts/{post['id']}/publish", headers=headers)
    assert published.get_json()['published_at']
    assert [item['slug'] for item in client.get('/api/posts').get_json()['posts']] == ['power-of-sip']

    renamed = client.patch(f"/admin/api/posts/{post['id']}", headers=headers, json={'slug': 'new-slug'})
    assert renamed.status_code == 400

    edited = client.patch(f"/admin/api/posts/{post['id']}", headers=headers, json={'title': 'The Power of SIP'})
    assert edited.get_json()['title'] == 'The Power of SIP'
    assert client.get(f"/admin/api/posts/{post['id']}").get_json()['title'] == 'The Power of SIP'

    unpublished = client.post(f"/admin/api/posts/{post['id']}/unpublish", headers=headers)
    assert unpublished.get_json()['published_at'] is None


def test_admin_delete_removes_post_from_list(client, app):
    _, headers = admin_login(client)
    with app.app_context():
        post = PostService(current_store()).create(post_fields('Delete me'))

    assert post['id'] in [item['id'] for item in client.get('/admin/api/posts').get_json()['items']]
    response = client.delete(f"/admin/api/posts/{post['id']}", headers=headers)
    assert response.get_json() == {'deleted': True, 'id': post['id']}
    assert post['id'] not in [item['id'] for item in client.get('/admin/api/posts').get_json()['items']]
    assert client.get(f"/admin/api/posts/{post['id']}").status_code == 404

    again = client.delete(f"/admin/api/posts/{post['id']}", headers=headers)
    assert again.status_code == 200


def test_admin_sees_public_bookings_live(client, app, sent_emails):
    _, headers = admin_login(client)
    assert client.get('/admin/api/bookings').get_json()['items'] == []

    visitor = app.test_client()
    booked = visitor.post('/api/bookings', headers=csrf_headers(visitor), json={
        'name': 'A', 'email': 'a@x.com', 'phone': '123',
        'date': next_open_day().isoformat(), 'time_slot': '02:00 PM',
    })
    booking_id = booked.get_json()['booking']['id']

    items = client.get('/admin/api/bookings').get_json()['items']
    assert [item['id'] for item in items] == [booking_id]

    confirmed = client.patch(f'/admin/api/bookings/{booking_id}', headers=headers, json={'status': 'confirmed'})
    assert confirmed.get_json()['status'] == 'confirmed'
    invalid = client.patch(f'/admin/api/bookings/{booking_id}', headers=headers, json={'status': 'lost'})
    assert invalid.status_code == 400
    numeric = client.patch(f'/admin/api/bookings/{booking_id}', headers=headers, json={'status': 5})
    assert numeric.status_code == 400
    assert numeric.get_json()['kind'] == 'validation'
    mixed = client.patch(f'/admin/api/bookings/{booking_id}', headers=headers, json={'status': 5, 'name': 'B'})
    assert mixed.status_code == 400
    assert mixed.get_json()['fields'] == ['status']
    assert client.get(f'/admin/api/bookings/{booking_id}').get_json()['status'] == 'confirmed'

    assert client.delete(f'/admin/api/bookings/{booking_id}', headers=headers).status_code == 200
    assert client.get('/admin/api/bookings').get_json()['items'] == []


def test_admin_contacts_status_update(client, app):
    _, headers = admin_login(client)
    visitor = app.test_client()
    visitor.post('/api/contacts', headers=csrf_headers(visitor), json={
        'name': 'Ravi', 'email': 'ravi@example.com', 'subject': 'Hi', 'message': 'Hello',
    })
    contact_id = client.get('/admin/api/contacts').get_json()['items'][0]['id']
    response = client.patch(f'/admin/api/contacts/{contact_id}', headers=headers, json={'status': 'replied'})
    assert response.get_json()['status'] == 'replied'
    assert client.get('/admin/api/widgets').status_code == 404


def test_admin_preview_renders_blocks(client):
    _, headers = admin_login(client)
    response = client.post('/admin/api/posts/preview', headers=headers, json={
        'blocks': [{'type': 'text', 'content': 'Plain <text>'}, {'type': 'image', 'content': ''}],
    })
    payload = response.get_json()
    assert response.status_code == 200
    assert payload['reading_time'] == '1 min read'
    assert len(payload['blocks']) == 2


def test_admin_upload_stores_image(client, app, monkeypatch):
    _, headers = admin_login(client)
    logged = []
    monkeypatch.setattr(app.logger, 'info', lambda message, *args, **kwargs: logged.append((message, args)))
    response = client.post(
        '/admin/api/uploads',
        headers=headers,
        data={'purpose': 'covers', 'file': (io.BytesIO(png_bytes()), 'cover.png', 'image/png')},
        content_type='multipart/form-data',
    )
    assert response.status_code == 201
    url = response.get_json()['url']
    assert url.startswith('/uploads/covers/')
    assert ('Stored %s image %s', ('covers', url)) in logged

    served = client.get(url)
    assert served.status_code == 200
    assert served.headers.get('Cache-Control') == 'public, max-age=604800'


def test_admin_upload_rejects_non_images(client):
    _, headers = admin_login(client)
    response = client.post(
        '/admin/api/uploads',
        headers=headers,
        data={'purpose': 'covers', 'file': (io.BytesIO(b'hello'), 'notes.txt', 'text/plain')},
        content_type='multipart/form-data',
    )
    assert response.status_code == 400
    assert response.get_json()['reason'] == 'unsupported_type'


def test_upload_route_refuses_traversal(client):
    assert client.get('/uploads/../config.py').status_code == 404
