"""Tests for the confirmation flow and reference codes."""
import logging
import random
import re

import pytest

from apps.api.exceptions import ApiError
from apps.bookings.confirmation import ConfirmationFlow, generate_reference
from apps.bookings.exceptions import IncompleteBookingError, SubmissionError

REFERENCE_RE = re.compile(r'^[A-Z0-9]{4}-[A-Z0-9]{4}-\d{8}-\d{3}$')


class TestGenerateReference:

    def test_format(self, slot):
        reference = generate_reference('City General', 'Dr. Anna Smith', slot, rng=random.Random(1))
        assert REFERENCE_RE.match(reference)
        assert reference.startswith('CITY-DRAN-20260303-')

    def test_short_names_are_padded(self, slot):
        reference = generate_reference('St', 'Al', slot, rng=random.Random(1))
        assert reference.startswith('STXX-ALXX-')

    def test_fallbacks(self):
        reference = generate_reference('', '!!!', None, rng=random.Random(1))
        assert reference.startswith('HOSP-DOCT-00000000-')

    def test_sequence_range(self, slot):
        rng = random.Random(7)
        for _ in range(50):
            sequence = int(generate_reference('City', 'Anna', slot, rng=rng).rsplit('-', 1)[1])
            assert 100 <= sequence <= 999


class TestMissingFields:

    def test_complete_booking_has_nothing_missing(self, full_booking, mock_client):
        assert ConfirmationFlow(full_booking, mock_client).missing_fields() == []

    def test_empty_booking_lists_everything_in_order(self, booking, mock_client):
        fields = [field for field, _ in ConfirmationFlow(booking, mock_client).missing_fields()]
        assert fields == ['hospital', 'department', 'service', 'doctor', 'slot', 'reason_for_visit']

    def test_pending_details_count(self, full_booking, mock_client):
        full_booking.update_details(reason_for_visit='')
        flow = ConfirmationFlow(full_booking, mock_client)
        assert flow.missing_fields({'reason_for_visit': 'Headache'}) == []
        assert full_booking['reason_for_visit'] == ''


class TestSubmit:

    def test_empty_reason_blocks_without_api_calls(self, full_booking, mock_client):
        full_booking.update_details(reason_for_visit='   ')
        with pytest.raises(IncompleteBookingError) as excinfo:
            ConfirmationFlow(full_booking, mock_client).submit()
        assert excinfo.value.fields == ['reason_for_visit']
        assert mock_client.method_calls == []

    def test_private_hospital_card_payment(self, full_booking, mock_client):
        result = ConfirmationFlow(full_booking, mock_client, payment_amount=150).submit()

        assert result['appointment_id'] == 'appt-1'
        assert REFERENCE_RE.match(result['reference'])
        kwargs = mock_client.create_appointment.call_args.kwargs
        assert kwargs['patient_id'] == 'p1'
        assert kwargs['doctor_id'] == 'doc1'
        assert kwargs['hospital_id'] == 'h1'
        assert kwargs['department_id'] == 'd1'
        assert kwargs['service_id'] == 's1'
        assert kwargs['date'] == '2026-03-03'
        assert kwargs['time'] == '9:30 AM'
        assert kwargs['reason'] == 'Chest pain'
        mock_client.create_payment.assert_called_once_with(
            appointment_id='appt-1', patient_id='p1', amount=150, method='card',
        )

    def test_pay_on_site_skips_payment(self, full_booking, mock_client):
        full_booking.update_details(payment_method='pay_on_site')
        ConfirmationFlow(full_booking, mock_client).submit()
        mock_client.create_payment.assert_not_called()

    def test_government_hospital_skips_payment(self, full_booking, mock_client, government_hospital):
        state = full_booking.state
        full_booking.set_hospital(government_hospital)
        for field in ('department', 'service', 'doctor', 'slot'):
            getattr(full_booking, f'set_{field}')(state[field])
        full_booking.update_details(reason_for_visit='Checkup')
        ConfirmationFlow(full_booking, mock_client).submit()
        mock_client.create_appointment.assert_called_once()
        mock_client.create_payment.assert_not_called()

    def test_success_records_details_and_confirmation(self, full_booking, mock_client):
        result = ConfirmationFlow(full_booking, mock_client).submit(
            {'reason_for_visit': 'Palpitations', 'payment_method': 'paypal'}
        )
        assert full_booking['reason_for_visit'] == 'Palpitations'
        assert full_booking['payment_method'] == 'paypal'
        assert full_booking.confirmation == result

    def test_payment_failure_keeps_appointment(self, full_booking, mock_client, caplog):
        mock_client.create_payment.side_effect = ApiError('Card declined', status_code=402)
        with caplog.at_level(logging.ERROR, logger='apps.bookings.confirmation'):
            result = ConfirmationFlow(full_booking, mock_client).submit()
        assert result['appointment_id'] == 'appt-1'
        assert full_booking.confirmation is not None
        assert 'Payment failed for appointment appt-1' in caplog.text

    def test_appointment_failure_leaves_session_untouched(self, full_booking, mock_client):
        mock_client.create_appointment.side_effect = ApiError('Doctor unavailable', status_code=409)
        before = full_booking.state
        revision = full_booking.revision

        with pytest.raises(SubmissionError, match='Doctor unavailable'):
            ConfirmationFlow(full_booking, mock_client).submit({'reason_for_visit': 'Changed'})

        assert full_booking.state == before
        assert full_booking.revision == revision
        assert full_booking.confirmation is None
        mock_client.create_payment.assert_not_called()

    def test_patient_lookup_failure(self, full_booking, mock_client):
        mock_client.fetch_current_patient.side_effect = ApiError('Unauthorized', status_code=401)
        with pytest.raises(SubmissionError):
            ConfirmationFlow(full_booking, mock_client).submit()
        mock_client.create_appointment.assert_not_called()

    def test_patient_without_id(self, full_booking, mock_client):
        mock_client.fetch_current_patient.return_value = {'id': '', 'mrn': '', 'name': ''}
        with pytest.raises(IncompleteBookingError) as excinfo:
            ConfirmationFlow(full_booking, mock_client).submit()
        assert excinfo.value.fields == ['patient']
        mock_client.create_appointment.assert_not_called()
