"""Tests for calendar export and the confirmation slip."""
import base64
import json
from datetime import datetime, timezone as dt_timezone
from urllib.parse import parse_qs, urlparse

from apps.bookings.calendar_export import build_ics, build_visit_window, google_calendar_url
from apps.bookings.slip import check_in_payload, check_in_qr, get_slip_context

CONFIRMATION = {
    'reference': 'CITY-DRAN-20260303-417',
    'confirmed_at': '2026-03-01T09:15:00+00:00',
    'appointment_id': 'appt-1',
}


class TestCalendarExport:

    def test_visit_window(self, slot):
        start, end = build_visit_window(slot)
        assert start == datetime(2026, 3, 3, 9, 30, tzinfo=dt_timezone.utc)
        assert (end - start).total_seconds() == 30 * 60

    def test_unusable_slot(self):
        assert build_visit_window(None) is None
        assert build_visit_window({'date': '2026-03-03', 'time_label': 'noonish'}) is None

    def test_ics_document(self, full_booking):
        now = datetime(2026, 3, 1, 8, 0, tzinfo=dt_timezone.utc)
        ics = build_ics(full_booking.state, CONFIRMATION['reference'], now=now)
        lines = ics.split('\r\n')
        assert lines[0] == 'BEGIN:VCALENDAR'
        assert 'UID:CITY-DRAN-20260303-417@medibook' in lines
        assert 'DTSTAMP:20260301T080000Z' in lines
        assert 'DTSTART:20260303T093000Z' in lines
        assert 'DTEND:20260303T100000Z' in lines
        assert 'SUMMARY:Cardiology appointment' in lines
        assert 'LOCATION:City General\\, 1 Main Street' in lines
        assert ics.endswith('END:VCALENDAR\r\n')

    def test_ics_without_slot(self, booking, hospital):
        booking.set_hospital(hospital)
        assert build_ics(booking.state, 'REF') is None

    def test_google_calendar_url(self, full_booking):
        url = google_calendar_url(full_booking.state, CONFIRMATION['reference'])
        query = parse_qs(urlparse(url).query)
        assert query['action'] == ['TEMPLATE']
        assert query['dates'] == ['20260303T093000Z/20260303T100000Z']
        assert 'Reference: CITY-DRAN-20260303-417' in query['details'][0]


class TestSlip:

    def test_check_in_payload(self, full_booking):
        payload = json.loads(check_in_payload(full_booking.state, CONFIRMATION))
        assert payload['reference'] == CONFIRMATION['reference']
        assert payload['appointmentId'] == 'appt-1'
        assert payload['hospitalId'] == 'h1'
        assert payload['doctorName'] == 'Dr. Anna Smith'
        assert payload['date'] == '2026-03-03'
        assert payload['timeLabel'] == '9:30 AM'
        assert payload['reasonForVisit'] == 'Chest pain'

    def test_slip_context(self, full_booking):
        full_booking.update_details(payment_method='pay_on_site')
        context = get_slip_context(full_booking.state, CONFIRMATION)
        assert context['reference'] == CONFIRMATION['reference']
        assert context['confirmed_at'].year == 2026
        assert context['hospital']['name'] == 'City General'
        assert context['appointment']['department'] == 'Cardiology'
        assert context['appointment']['time'] == '9:30 AM'
        assert context['visit']['payment_method'] == 'Pay at Hospital'

    def test_slip_context_fallbacks(self, booking):
        context = get_slip_context(booking.state, CONFIRMATION)
        assert context['hospital']['name'] == 'Hospital not provided'
        assert context['appointment']['department'] == 'General Consultation'
        assert context['appointment']['time'] == '--'
        assert context['appointment']['date'] is None

    def test_check_in_qr_is_png_data_uri(self, full_booking):
        uri = check_in_qr(check_in_payload(full_booking.state, CONFIRMATION))
        prefix = 'data:image/png;base64,'
        assert uri.startswith(prefix)
        assert base64.b64decode(uri[len(prefix):]).startswith(b'\x89PNG')

    def test_slip_context_carries_qr(self, full_booking):
        context = get_slip_context(full_booking.state, CONFIRMATION)
        assert context['check_in_qr'] == check_in_qr(context['check_in_payload'])
