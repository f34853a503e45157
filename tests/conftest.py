"""Shared test fixtures."""
from datetime import date
from unittest.mock import Mock

import pytest

from apps.bookings.engine import build_slot
from apps.bookings.session import BookingSession


class FakeSessionStore(dict):
    """Dict with the `modified` flag Django's session object carries."""
    modified = False


# Monday 2 March 2026; Tuesday 9:30 AM is an available slot in every week.
ANCHOR = date(2026, 3, 2)


@pytest.fixture
def anchor():
    return ANCHOR


@pytest.fixture
def store():
    return FakeSessionStore()


@pytest.fixture
def booking(store) -> BookingSession:
    return BookingSession(store)


@pytest.fixture
def hospital():
    return {
        'id': 'h1',
        'name': 'City General',
        'address': '1 Main Street',
        'phone': '555-0100',
        'image': '',
        'distance': '2.5 miles away',
        'specialities': ['Cardiology', 'Neurology'],
        'type': 'Private',
    }


@pytest.fixture
def government_hospital():
    return {
        'id': 'h2',
        'name': 'State Hospital',
        'address': '9 Park Road',
        'phone': '555-0200',
        'image': '',
        'distance': 12,
        'specialities': ['Pediatrics'],
        'type': 'Government',
    }


@pytest.fixture
def service():
    return {'id': 's1', 'title': 'Consultation', 'description': 'First visit'}


@pytest.fixture
def department(service):
    return {'id': 'd1', 'name': 'Cardiology', 'slug': 'cardiology', 'services': [service]}


@pytest.fixture
def doctor():
    return {
        'id': 'doc1',
        'name': 'Dr. Anna Smith',
        'title': 'Cardiologist',
        'specialization': 'Cardiologist',
        'rating': 4.8,
        'review_count': 120,
        'bio': '',
        'department_id': 'd1',
    }


@pytest.fixture
def slot():
    return build_slot(ANCHOR, 1, '9:30 AM')


@pytest.fixture
def full_booking(booking, hospital, department, service, doctor, slot):
    """Every chain field selected plus a reason for the visit."""
    booking.set_hospital(hospital)
    booking.set_department(department)
    booking.set_service(service)
    booking.set_doctor(doctor)
    booking.set_slot(slot)
    booking.update_details(reason_for_visit='Chest pain')
    return booking


@pytest.fixture
def mock_client():
    """Stand-in for HospitalApiClient with successful responses."""
    client = Mock()
    client.fetch_current_patient.return_value = {'id': 'p1', 'mrn': 'MRN-1', 'name': 'Jo Patient'}
    client.create_appointment.return_value = 'appt-1'
    client.create_payment.return_value = 'pay-1'
    return client


@pytest.fixture
def make_response():
    """Build a fake requests.Response for the API client tests."""
    def _create(status_code=200, json_data=None, reason='OK', json_error=False):
        response = Mock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 400
        response.reason = reason
        if json_error:
            response.json.side_effect = ValueError('No JSON object could be decoded')
        else:
            response.json.return_value = json_data
        return response
    return _create
