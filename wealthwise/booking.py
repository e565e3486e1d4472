"""Session booking intake: validate the form, store the booking, email both sides."""
from datetime import date, timedelta

from flask import current_app

from . import notifications
from .errors import MailError, ValidationError
from .models import BOOKING_STATUS_PENDING
from .utils import clean_text, is_valid_email

TIME_SLOTS = (
    '10:00 AM', '10:30 AM', '11:00 AM', '11:30 AM',
    '02:00 PM', '02:30 PM', '03:00 PM', '03:30 PM',
    '04:00 PM', '04:30 PM', '05:00 PM',
)
REQUIRED_FIELDS = ('name', 'email', 'phone', 'date', 'time_slot')
MAX_LOOKAHEAD_DAYS = 90


class BookingResult:
    def __init__(self, booking, emails_sent=0, email_error=None):
        self.booking = booking
        self.emails_sent = emails_sent
        self.email_error = email_error

    @property
    def notified(self):
        return self.email_error is None

    def to_dict(self):
        return {
            'booking': self.booking,
            'emails_sent': self.emails_sent,
            'email_error': self.email_error,
        }


def closed_weekdays():
    return frozenset(current_app.config.get('BOOKING_CLOSED_WEEKDAYS', frozenset({6})))


def parse_booking_date(value):
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(clean_text(value, 10))
    except ValueError:
        return None


def is_bookable(day, today=None, closed=None):
    today = today or date.today()
    closed = closed_weekdays() if closed is None else closed
    return day >= today and day.weekday() not in closed


def available_dates(start=None, days=14, closed=None):
    start = start or date.today()
    days = max(1, min(int(days), MAX_LOOKAHEAD_DAYS))
    closed = closed_weekdays() if closed is None else closed
    candidates = (start + timedelta(days=offset) for offset in range(days))
    return [day for day in candidates if day.weekday() not in closed]


def validate_booking(payload, today=None):
    payload = payload or {}
    cleaned = {
        'name': clean_text(payload.get('name'), 200),
        'email': clean_text(payload.get('email'), 200),
        'phone': clean_text(payload.get('phone'), 50),
        'date': clean_text(payload.get('date'), 10),
        'time_slot': clean_text(payload.get('time_slot') or payload.get('timeSlot'), 20),
        'message': clean_text(payload.get('message'), 5000) or None,
    }
    missing = [name for name in REQUIRED_FIELDS if not cleaned[name]]
    if missing:
        raise ValidationError(f'Missing booking fields: {", ".join(missing)}', fields=missing,
                              user_message='Please fill all required fields.')
    if not is_valid_email(cleaned['email']):
        raise ValidationError('Invalid email.', fields=['email'], user_message='Please provide a valid email address.')

    day = parse_booking_date(cleaned['date'])
    if day is None:
        raise ValidationError('Invalid date.', fields=['date'], user_message='Please choose a valid date.')
    if not is_bookable(day, today=today):
        raise ValidationError(f'{day} is not bookable.', fields=['date'],
                              user_message='Please choose an upcoming date when we are open.')
    cleaned['date'] = day.isoformat()

    if cleaned['time_slot'] not in TIME_SLOTS:
        raise ValidationError('Invalid time slot.', fields=['time_slot'],
                              user_message='Please choose one of the available time slots.')
    return cleaned


def _notify(sender, booking):
    try:
        return bool(sender(booking))
    except Exception:
        current_app.logger.exception('%s failed for booking %s.', sender.__name__, booking.get('id'))
        return False


def submit_booking(service, payload, today=None):
    """Store a pending booking and send the confirmation and admin emails.

    Email delivery does not roll back the booking; a failure is reported on the
    result only.
    """
    fields = validate_booking(payload, today=today)
    fields['status'] = BOOKING_STATUS_PENDING
    booking = service.create(fields)
    current_app.logger.info(f"Booking saved (id={booking['id']})")

    results = [
        _notify(notifications.send_booking_confirmation, booking),
        _notify(notifications.send_booking_admin_notification, booking),
    ]
    sent = sum(1 for ok in results if ok)
    email_error = None
    if sent < len(results):
        email_error = MailError().user_message
        current_app.logger.warning(f"Booking {booking['id']} stored but {len(results) - sent} email(s) failed.")
    return BookingResult(booking, emails_sent=sent, email_error=email_error)
