import base64
import smtplib
import urllib.error
import urllib.parse
import urllib.request
from email.message import EmailMessage

from flask import current_app
from markupsafe import escape

from .utils import strip_tags


def _safe_header_value(value, max_length=240):
    # Prevent header injection by stripping CR/LF and collapsing whitespace.
    cleaned = ' '.join((value or '').replace('\r', ' ').replace('\n', ' ').split())
    return cleaned[:max_length]


def _split_recipients(raw):
    if isinstance(raw, (list, tuple)):
        raw = ','.join(raw)
    recipients = []
    seen = set()
    for item in (raw or '').split(','):
        cleaned = _safe_header_value(item, max_length=320)
        normalized = cleaned.lower()
        if cleaned and normalized not in seen:
            recipients.append(cleaned)
            seen.add(normalized)
    return recipients


def _html_to_text(html):
    text = html.replace('</p>', '\n').replace('<br>', '\n').replace('</h2>', '\n\n').replace('</h3>', '\n')
    lines = [' '.join(strip_tags(line).split()) for line in text.splitlines()]
    return '\n'.join(line for line in lines if line)


def _send_via_mailgun(subject, html, recipients, mail_from):
    """Send email via Mailgun HTTP API (no SMTP needed)."""
    api_key = (current_app.config.get('MAILGUN_API_KEY') or '').strip()
    domain = (current_app.config.get('MAILGUN_DOMAIN') or '').strip()
    if not api_key or not domain:
        return None  # Not configured, fall through to SMTP

    url = f"https://api.mailgun.net/v3/{domain}/messages"
    data = urllib.parse.urlencode({
        'from': mail_from,
        'to': ', '.join(recipients),
        'subject': subject,
        'text': _html_to_text(html),
        'html': html,
    }).encode('utf-8')

    auth = base64.b64encode(f"api:{api_key}".encode()).decode()

    req = urllib.request.Request(url, data=data, method='POST')
    req.add_header('Authorization', f'Basic {auth}')

    try:
        with urllib.request.urlopen(req, timeout=15):  # nosec B310
            current_app.logger.info('Mailgun email sent successfully.')
            return True
    except urllib.error.HTTPError as e:
        error_body = e.read().decode('utf-8', errors='replace')
        current_app.logger.error(f'Mailgun API error {e.code}: {error_body}')
        return False
    except Exception:
        current_app.logger.exception('Mailgun email delivery failed.')
        return False


def _send_via_smtp(subject, html, recipients, mail_from):
    """Send email via SMTP (traditional method)."""
    host = (current_app.config.get('SMTP_HOST') or '').strip()
    if not host:
        current_app.logger.info('SMTP_HOST is not configured; skipping SMTP.')
        return None  # Not configured

    port = int(current_app.config.get('SMTP_PORT') or 587)
    username = current_app.config.get('SMTP_USERNAME') or ''
    password = current_app.config.get('SMTP_PASSWORD') or ''
    use_ssl = bool(current_app.config.get('SMTP_USE_SSL'))
    use_tls = bool(current_app.config.get('SMTP_USE_TLS'))

    message = EmailMessage()
    message['Subject'] = subject
    message['From'] = mail_from
    message['To'] = ', '.join(recipients)
    message.set_content(_html_to_text(html))
    message.add_alternative(html, subtype='html')

    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=12)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=12)

        with smtp:
            if use_tls and not use_ssl:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
        return True
    except Exception:
        current_app.logger.exception('SMTP email delivery failed.')
        return False


def _send_email(subject, html, recipients):
    if not recipients:
        return False

    mail_from = _safe_header_value(current_app.config.get('MAIL_FROM') or 'no-reply@localhost', max_length=254)
    safe_subject = _safe_header_value(subject, max_length=240)

    result = _send_via_mailgun(safe_subject, html, recipients, mail_from)
    if result is not None:
        return result

    result = _send_via_smtp(safe_subject, html, recipients, mail_from)
    if result is not None:
        return result

    current_app.logger.warning('No email provider configured (set MAILGUN_API_KEY+MAILGUN_DOMAIN or SMTP_HOST).')
    return False


def send_email(to, subject, html):
    """Deliver one HTML message to one or more recipients. Returns True on success."""
    return _send_email(subject, html, _split_recipients(to))


def _site_name():
    return current_app.config.get('SITE_NAME') or 'WealthWise'


def _detail_rows(pairs):
    return ''.join(f"<p><strong>{label}:</strong> {escape(value)}</p>" for label, value in pairs if value)


def booking_details(booking):
    return [
        ('Name', booking.get('name')),
        ('Email', booking.get('email')),
        ('Phone', booking.get('phone')),
        ('Date', booking.get('date')),
        ('Time', booking.get('time_slot')),
    ]


def render_booking_confirmation(booking):
    site = escape(_site_name())
    message = booking.get('message')
    return "\n".join([
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">',
        '<h2 style="color: #1f3a5c;">Session Booking Confirmation</h2>',
        f"<p>Hi {escape(booking.get('name') or '')},</p>",
        f"<p>Thank you for booking a consultation session with {site}!</p>",
        '<div style="background-color: #f0f9ff; padding: 15px; margin: 20px 0;">',
        '<h3>Your Session Details:</h3>',
        _detail_rows(booking_details(booking)[1:]),
        '</div>',
        f"<p><strong>Message:</strong> {escape(message)}</p>" if message else '',
        "<p>We'll send you a calendar invite shortly.</p>",
        f"<p>Best regards,<br><strong>{site} Team</strong></p>",
        '</div>',
    ])


def render_booking_admin_notification(booking):
    return '<h2>New Booking</h2>' + _detail_rows(booking_details(booking) + [('Message', booking.get('message'))])


def send_booking_confirmation(booking):
    subject = f"Session Booked - {booking.get('name')}"
    return send_email(booking.get('email'), subject, render_booking_confirmation(booking))


def send_booking_admin_notification(booking):
    recipients = _split_recipients(current_app.config.get('ADMIN_NOTIFICATION_EMAIL'))
    if not recipients:
        current_app.logger.warning('ADMIN_NOTIFICATION_EMAIL is not configured; booking notification skipped.')
        return False
    subject = f"New Session Booking - {booking.get('name')}"
    return send_email(recipients, subject, render_booking_admin_notification(booking))


def send_contact_notification(contact):
    recipients = _split_recipients(current_app.config.get('ADMIN_NOTIFICATION_EMAIL'))
    if not recipients:
        current_app.logger.warning('ADMIN_NOTIFICATION_EMAIL is not configured; contact notification skipped.')
        return False

    subject_text = _safe_header_value(contact.get('subject') or 'Website Contact', max_length=180) or 'Website Contact'
    subject = f"[{_site_name()}] New contact submission: {subject_text}"
    html = '<h2>New Contact Message</h2>' + _detail_rows([
        ('Name', contact.get('name')),
        ('Email', contact.get('email')),
        ('Phone', contact.get('phone') or 'Not provided'),
        ('Subject', subject_text),
        ('Message', contact.get('message')),
    ])
    return send_email(recipients, subject, html)
