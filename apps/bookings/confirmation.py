"""
Confirmation flow. Validates a finished booking session and submits it.

Public API:
  generate_reference(hospital_name, doctor_name, slot, rng=None)
  ConfirmationFlow(booking, client, payment_amount=None)
      .missing_fields(details=None)
      .submit(details=None)

Submission order:
  1. check the session locally (no network call if anything is missing)
  2. look up the signed-in patient
  3. create the appointment
  4. private hospital + online payment method → create the payment

A payment failure after step 3 is logged and the appointment is left in
place; there is no compensating cancel.
"""
import logging
import random
import re

from django.conf import settings
from django.utils import timezone

from apps.api.exceptions import ApiError

from .choices import HospitalType, PaymentMethod
from .engine import slot_date
from .exceptions import IncompleteBookingError, SubmissionError
from .session import DETAIL_FIELDS, clean_details

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r'[^A-Za-z0-9]')


# ── Reference codes ───────────────────────────────────────────────────────────

def _code(value, fallback: str) -> str:
    cleaned = _NON_ALNUM_RE.sub('', value or '').upper()
    if not cleaned:
        return fallback
    return cleaned[:4].ljust(4, 'X')


def generate_reference(hospital_name, doctor_name, slot, rng=None) -> str:
    """
    Human-facing reference such as 'CITY-ANNA-20260304-417'.

    Cosmetic only: the trailing sequence is random and never checked for
    collisions, so this must not be used as a key. The appointment id from
    the hospital service is the real identifier.
    """
    rng = rng or random
    visit_date = slot_date(slot)
    date_code = visit_date.strftime('%Y%m%d') if visit_date else '00000000'
    sequence = rng.randint(100, 999)
    return f"{_code(hospital_name, 'HOSP')}-{_code(doctor_name, 'DOCT')}-{date_code}-{sequence}"


# ── Flow ──────────────────────────────────────────────────────────────────────

class ConfirmationFlow:

    def __init__(self, booking, client, payment_amount=None):
        self.booking = booking
        self.client = client
        if payment_amount is None:
            payment_amount = settings.APPOINTMENT_PAYMENT_AMOUNT
        self.payment_amount = payment_amount

    def _pending_state(self, details=None) -> dict:
        """Session state with not-yet-saved visit details layered on top."""
        state = self.booking.state
        if details:
            state.update(clean_details(details))
        return state

    def missing_fields(self, details=None) -> list:
        """Ordered (field, message) pairs for everything that blocks submission."""
        state = self._pending_state(details)
        missing = []
        if not (state['hospital'] or {}).get('id'):
            missing.append(('hospital', 'Hospital information is missing. Please go back and select a hospital.'))
        if not (state['department'] or {}).get('id'):
            missing.append(('department', 'Department information is missing. Please go back and select a department.'))
        if not (state['service'] or {}).get('id'):
            missing.append(('service', 'Service information is missing. Please go back and select a service.'))
        if not state['doctor']:
            missing.append(('doctor', 'No doctor selected. Please go back and choose a doctor.'))
        if not state['slot']:
            missing.append(('slot', 'No time slot selected. Please go back and choose a time.'))
        if not (state['reason_for_visit'] or '').strip():
            missing.append(('reason_for_visit', 'Please provide a reason for your visit.'))
        return missing

    def submit(self, details=None) -> dict:
        """
        Run the submission sequence.

        Returns {'reference', 'confirmed_at', 'appointment_id'} on success.
        Raises IncompleteBookingError or SubmissionError; in both cases the
        booking session is left exactly as it was.
        """
        missing = self.missing_fields(details)
        if missing:
            raise IncompleteBookingError(missing)

        state = self._pending_state(details)

        try:
            patient = self.client.fetch_current_patient()
        except ApiError as exc:
            raise SubmissionError(
                exc.message or 'Failed to load patient information. Please try logging in again.'
            ) from exc
        if not patient.get('id'):
            raise IncompleteBookingError([
                ('patient', 'Patient information not loaded. Please refresh the page.'),
            ])

        hospital, doctor, slot = state['hospital'], state['doctor'], state['slot']
        visit_date = slot_date(slot)
        logger.info('Submitting appointment: hospital=%s doctor=%s date=%s time=%s',
                    hospital['id'], doctor['id'], slot.get('date'), slot.get('time_label'))

        try:
            appointment_id = self.client.create_appointment(
                patient_id=patient['id'],
                doctor_id=doctor['id'],
                hospital_id=hospital['id'],
                department_id=state['department']['id'],
                service_id=state['service']['id'],
                date=visit_date.isoformat() if visit_date else timezone.localdate().isoformat(),
                time=slot['time_label'],
                reason=state['reason_for_visit'].strip(),
                notes=state['additional_notes'],
                has_insurance=state['has_insurance'],
                payment_method=state['payment_method'],
            )
        except ApiError as exc:
            raise SubmissionError(exc.message or 'Failed to create appointment. Please try again.') from exc

        if self._requires_payment(state):
            try:
                self.client.create_payment(
                    appointment_id=appointment_id,
                    patient_id=patient['id'],
                    amount=self.payment_amount,
                    method=state['payment_method'],
                )
            except ApiError as exc:
                logger.error('Payment failed for appointment %s (appointment kept): %s',
                             appointment_id, exc)

        reference = generate_reference(hospital.get('name') or hospital['id'], doctor.get('name'), slot)
        confirmed_at = timezone.now().isoformat()

        self.booking.update_details(**{field: state[field] for field in DETAIL_FIELDS})
        self.booking.record_confirmation(reference, confirmed_at, appointment_id)
        logger.info('Appointment %s confirmed with reference %s', appointment_id, reference)

        return {
            'reference': reference,
            'confirmed_at': confirmed_at,
            'appointment_id': appointment_id,
        }

    @staticmethod
    def _requires_payment(state) -> bool:
        return (
            (state['hospital'] or {}).get('type') == HospitalType.PRIVATE
            and state['payment_method'] != PaymentMethod.PAY_ON_SITE
        )
