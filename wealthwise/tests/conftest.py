import io
import uuid

import pytest
from PIL import Image

from wealthwise import create_app
from wealthwise import notifications

ADMIN_PASSWORD = 'admin123'


def build_test_app(tmp_path, monkeypatch, overrides=None):
    db_path = tmp_path / f"site_test_{uuid.uuid4().hex[:8]}.db"
    upload_path = tmp_path / f"uploads_{uuid.uuid4().hex[:8]}"

    config = {
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key',
        'ADMIN_PASSWORD': ADMIN_PASSWORD,
        'ADMIN_NOTIFICATION_EMAIL': 'advisor@wealthwise.test',
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'UPLOAD_FOLDER': str(upload_path),
        'SEED_SAMPLE_CONTENT': False,
        'STORE_READ_RETRY_DELAY': 0,
        'LOG_JSON': False,
    }
    if overrides:
        config.update(overrides)
    return create_app(config)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    return build_test_app(tmp_path, monkeypatch)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def sent_emails(monkeypatch):
    """Capture outbound mail instead of talking to a provider."""
    sent = []

    def fake_send(subject, html, recipients):
        sent.append({'subject': subject, 'html': html, 'recipients': list(recipients)})
        return True

    monkeypatch.setattr(notifications, '_send_email', fake_send)
    return sent


def csrf_headers(client):
    token = client.get('/api/csrf-token').get_json()['csrf_token']
    assert token
    return {'X-CSRF-Token': token}


def admin_login(client, password=ADMIN_PASSWORD):
    headers = csrf_headers(client)
    response = client.post('/admin/api/login', json={'password': password}, headers=headers)
    return response, headers


def post_fields(title='Power of SIP', **extra):
    fields = {
        'title': title,
        'excerpt': 'Why monthly investing works.',
        'content': 'Start early and stay consistent.',
        'cover_image': 'https://images.example.com/sip.jpg',
    }
    fields.update(extra)
    return fields


def png_bytes(size=(4, 4)):
    buffer = io.BytesIO()
    Image.new('RGB', size, (31, 58, 92)).save(buffer, format='PNG')
    return buffer.getvalue()
