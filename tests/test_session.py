"""Tests for the booking session state machine."""
import itertools

import pytest

from apps.bookings.exceptions import StaleRevisionError
from apps.bookings.session import (
    CHAIN_FIELDS,
    CONFIRMATION_KEY,
    BookingSession,
    check_revision,
    initial_booking_state,
)


def _fresh_except_hospital(hospital):
    state = initial_booking_state()
    state['hospital'] = hospital
    return state


class TestInitialState:

    def test_defaults(self, booking):
        """An untouched session reads as an empty booking with default details."""
        state = booking.state
        assert all(state[field] is None for field in CHAIN_FIELDS)
        assert state['reason_for_visit'] == ''
        assert state['additional_notes'] == ''
        assert state['has_insurance'] is True
        assert state['payment_method'] == 'card'
        assert booking.revision == 0
        assert booking.confirmation is None

    def test_state_is_a_copy(self, booking, hospital):
        """Editing the returned dict must not leak into the session."""
        booking.set_hospital(hospital)
        state = booking.state
        state['hospital'] = None
        assert booking['hospital'] == hospital


class TestSetHospital:

    def test_new_hospital_starts_fresh_booking(self, full_booking, government_hospital):
        full_booking.update_details(additional_notes='Bring scans', has_insurance=False,
                                    payment_method='paypal')
        full_booking.set_hospital(government_hospital)
        assert full_booking.state == _fresh_except_hospital(government_hospital)

    def test_clearing_hospital_resets_everything(self, full_booking):
        full_booking.set_hospital(None)
        assert full_booking.state == initial_booking_state()

    def test_reselecting_same_hospital_still_resets(self, full_booking, hospital):
        full_booking.set_hospital(hospital)
        assert full_booking.state == _fresh_except_hospital(hospital)

    def test_drops_confirmation(self, full_booking, store, hospital):
        full_booking.record_confirmation('CITY-DRAN-20260303-123', '2026-03-01T10:00:00', 'appt-1')
        full_booking.set_hospital(hospital)
        assert CONFIRMATION_KEY not in store


class TestCascade:

    def test_department_clears_downstream(self, full_booking, department):
        full_booking.set_department(department)
        state = full_booking.state
        assert state['hospital'] is not None
        assert state['department'] == department
        assert state['service'] is None
        assert state['doctor'] is None
        assert state['slot'] is None

    def test_service_clears_doctor_and_slot(self, full_booking, service):
        full_booking.set_service(service)
        assert full_booking['department'] is not None
        assert full_booking['doctor'] is None
        assert full_booking['slot'] is None

    def test_doctor_clears_slot(self, full_booking, doctor):
        full_booking.set_doctor(doctor)
        assert full_booking['service'] is not None
        assert full_booking['slot'] is None

    def test_slot_keeps_upstream(self, full_booking, slot):
        before = full_booking.state
        full_booking.set_slot(None)
        full_booking.set_slot(slot)
        assert full_booking.state == before

    def test_cascade_keeps_visit_details(self, full_booking, department):
        full_booking.update_details(payment_method='pay_on_site')
        full_booking.set_department(department)
        assert full_booking['reason_for_visit'] == 'Chest pain'
        assert full_booking['payment_method'] == 'pay_on_site'

    def test_setting_without_predecessor_is_allowed(self, booking, doctor):
        """Mutators never fail; the booking is just incomplete."""
        booking.set_doctor(doctor)
        assert booking['doctor'] == doctor
        assert booking.chain_depth() == 0
        assert not booking.is_chain_consistent()

    def test_chain_invariant_over_mutator_sequences(self, store, hospital, department, service,
                                                    doctor, slot):
        """After every in-order mutator call no downstream field outlives its predecessor."""
        values = {
            'hospital': hospital, 'department': department, 'service': service,
            'doctor': doctor, 'slot': slot,
        }
        setters = ('hospital', 'department', 'service', 'doctor', 'slot')
        for sequence in itertools.product(setters, repeat=4):
            booking = BookingSession(store.__class__())
            # Build the whole chain, then apply the sequence on top of it
            for field in setters:
                getattr(booking, f'set_{field}')(values[field])
            for field in sequence:
                depth_before = booking.chain_depth()
                position = CHAIN_FIELDS.index(field)
                getattr(booking, f'set_{field}')(values[field])
                state = booking.state
                assert all(state[f] is None for f in CHAIN_FIELDS[position + 1:])
                if position <= depth_before:
                    assert booking.is_chain_consistent()


class TestDetails:

    def test_update_details_leaves_chain_alone(self, full_booking):
        before = {field: full_booking[field] for field in CHAIN_FIELDS}
        full_booking.update_details(additional_notes='Wheelchair access', has_insurance=False)
        assert {field: full_booking[field] for field in CHAIN_FIELDS} == before
        assert full_booking['additional_notes'] == 'Wheelchair access'
        assert full_booking['has_insurance'] is False

    def test_unknown_payment_method_ignored(self, booking):
        booking.update_details(payment_method='bitcoin')
        assert booking['payment_method'] == 'card'

    def test_unknown_keys_ignored(self, booking):
        booking.update_details(hospital={'id': 'x'}, reason_for_visit='Checkup')
        assert booking['hospital'] is None
        assert booking['reason_for_visit'] == 'Checkup'

    def test_reset_booking(self, full_booking, store):
        full_booking.record_confirmation('REF', '2026-03-01T10:00:00', 'appt-1')
        full_booking.reset_booking()
        assert full_booking.state == initial_booking_state()
        assert full_booking.confirmation is None


class TestBookkeeping:

    def test_every_mutation_bumps_revision(self, booking, hospital, department):
        booking.set_hospital(hospital)
        booking.set_department(department)
        booking.update_details(reason_for_visit='Cough')
        assert booking.revision == 3

    def test_marks_store_modified(self, booking, store, hospital):
        booking.set_hospital(hospital)
        assert store.modified is True

    def test_record_confirmation(self, full_booking):
        full_booking.record_confirmation('REF-1', '2026-03-01T10:00:00', 'appt-9')
        assert full_booking.confirmation == {
            'reference': 'REF-1',
            'confirmed_at': '2026-03-01T10:00:00',
            'appointment_id': 'appt-9',
        }

    @pytest.mark.parametrize('mutator, fixture', [
        ('set_department', 'department'),
        ('set_service', 'service'),
        ('set_doctor', 'doctor'),
        ('set_slot', 'slot'),
    ])
    def test_changing_a_selection_drops_confirmation(self, request, full_booking, store, mutator, fixture):
        full_booking.record_confirmation('REF-1', '2026-03-01T10:00:00', 'appt-9')
        getattr(full_booking, mutator)(request.getfixturevalue(fixture))
        assert CONFIRMATION_KEY not in store
        assert full_booking.confirmation is None

    def test_visit_details_keep_confirmation(self, full_booking):
        full_booking.record_confirmation('REF-1', '2026-03-01T10:00:00', 'appt-9')
        full_booking.update_details(additional_notes='Wheelchair access')
        assert full_booking.confirmation['reference'] == 'REF-1'

    def test_discard(self, full_booking, store):
        full_booking.record_confirmation('REF-1', '2026-03-01T10:00:00', 'appt-9')
        full_booking.discard()
        assert 'booking' not in store
        assert full_booking.confirmation is None
        assert full_booking.state == initial_booking_state()

    def test_chain_depth(self, booking, hospital, department):
        booking.set_hospital(hospital)
        booking.set_department(department)
        assert booking.chain_depth() == 2


class TestCheckRevision:

    def test_matching_revision_passes(self, booking, hospital):
        booking.set_hospital(hospital)
        check_revision(booking, str(booking.revision))

    def test_blank_revision_skips_check(self, booking):
        check_revision(booking, '')
        check_revision(booking, None)

    def test_older_revision_rejected(self, booking, hospital, department):
        booking.set_hospital(hospital)
        rendered_at = booking.revision
        booking.set_department(department)
        with pytest.raises(StaleRevisionError):
            check_revision(booking, str(rendered_at))

    def test_garbage_revision_rejected(self, booking):
        with pytest.raises(StaleRevisionError):
            check_revision(booking, 'abc')
