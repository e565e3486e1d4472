from datetime import date

import pytest

from wealthwise import notifications
from wealthwise.booking import TIME_SLOTS, available_dates, submit_booking, validate_booking
from wealthwise.errors import ValidationError
from wealthwise.services import BookingService, current_store

TODAY = date(2025, 6, 1)


def booking_payload(**overrides):
    payload = {
        'name': 'A',
        'email': 'a@x.com',
        'phone': '123',
        'date': '2025-06-10',
        'timeSlot': '10:00 AM',
    }
    payload.update(overrides)
    return payload


def test_submit_booking_stores_pending_record_and_sends_two_emails(app, sent_emails):
    with app.app_context():
        service = BookingService(current_store())
        result = submit_booking(service, booking_payload(), today=TODAY)

        assert result.booking['status'] == 'pending'
        assert result.booking['time_slot'] == '10:00 AM'
        assert result.emails_sent == 2
        assert result.email_error is None
        assert [item['id'] for item in service.list()] == [result.booking['id']]

    assert len(sent_emails) == 2
    confirmation, admin_notice = sent_emails
    assert confirmation['recipients'] == ['a@x.com']
    assert confirmation['subject'] == 'Session Booked - A'
    assert admin_notice['recipients'] == ['advisor@wealthwise.test']
    assert admin_notice['subject'] == 'New Session Booking - A'


def test_email_failure_does_not_roll_back_the_booking(app, monkeypatch):
    def broken_provider(subject, html, recipients):
        raise RuntimeError('provider down')

    monkeypatch.setattr(notifications, '_send_email', broken_provider)
    with app.app_context():
        service = BookingService(current_store())
        result = submit_booking(service, booking_payload(), today=TODAY)

        assert result.emails_sent == 0
        assert result.email_error
        assert not result.notified
        assert service.get(result.booking['id'])['status'] == 'pending'


def test_one_failed_email_is_reported(app, monkeypatch):
    monkeypatch.setattr(notifications, 'send_booking_admin_notification', lambda booking: False)
    monkeypatch.setattr(notifications, 'send_booking_confirmation', lambda booking: True)
    with app.app_context():
        result = submit_booking(BookingService(current_store()), booking_payload(), today=TODAY)
        assert result.emails_sent == 1
        assert result.email_error


def test_sunday_is_not_bookable(app):
    with app.app_context():
        with pytest.raises(ValidationError) as excinfo:
            validate_booking(booking_payload(date='2025-06-08'), today=TODAY)
        assert excinfo.value.fields == ['date']


def test_past_dates_and_unknown_slots_are_rejected(app):
    with app.app_context():
        with pytest.raises(ValidationError):
            validate_booking(booking_payload(date='2025-05-30'), today=TODAY)
        with pytest.raises(ValidationError) as excinfo:
            validate_booking(booking_payload(timeSlot='01:00 PM'), today=TODAY)
        assert excinfo.value.fields == ['time_slot']


def test_missing_fields_and_bad_email_are_rejected(app):
    with app.app_context():
        with pytest.raises(ValidationError) as excinfo:
            validate_booking(booking_payload(name='', phone='  '), today=TODAY)
        assert excinfo.value.fields == ['name', 'phone']
        assert excinfo.value.user_message == 'Please fill all required fields.'
        with pytest.raises(ValidationError):
            validate_booking(booking_payload(email='not-an-email'), today=TODAY)
        with pytest.raises(ValidationError):
            validate_booking(booking_payload(date='10/06/2025'), today=TODAY)


def test_validate_booking_accepts_snake_case_and_drops_blank_message(app):
    with app.app_context():
        payload = booking_payload(message='   ')
        payload['time_slot'] = payload.pop('timeSlot')
        cleaned = validate_booking(payload, today=TODAY)
        assert cleaned['time_slot'] == '10:00 AM'
        assert cleaned['message'] is None


def test_available_dates_skip_closed_weekdays():
    days = available_dates(TODAY, 7, closed=frozenset({6}))
    assert TODAY not in days
    assert len(days) == 6
    assert days[0] == date(2025, 6, 2)


def test_time_slots_cover_the_business_day():
    assert TIME_SLOTS[0] == '10:00 AM'
    assert TIME_SLOTS[-1] == '05:00 PM'
    assert len(TIME_SLOTS) == len(set(TIME_SLOTS))


def test_booking_confirmation_escapes_user_values(app):
    with app.app_context():
        html = notifications.render_booking_confirmation({
            'name': '<b>Eve</b>', 'email': 'e@x.com', 'phone': '1', 'date': '2025-06-10',
            'time_slot': '10:00 AM', 'message': '<script>x</script>',
        })
        assert '<b>Eve</b>' not in html
        assert '&lt;script&gt;' in html
