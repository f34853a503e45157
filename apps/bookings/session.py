"""
Booking session: the dependent-selection state machine behind the wizard.

Booking session structure stored in request.session['booking']:
{
    "hospital":         {...} | None,
    "department":       {...} | None,
    "service":          {...} | None,
    "doctor":           {...} | None,
    "slot":             {"day_index": 0-6, "time_label": "9:30 AM",
                         "date": "YYYY-MM-DD", "is_available": true} | None,
    "reason_for_visit": "...",
    "additional_notes": "...",
    "has_insurance":    true,
    "payment_method":   "card" | "paypal" | "pay_on_site",
}

The five chain fields depend on each other in order. Changing one of them
clears everything after it; choosing a hospital starts a brand-new booking.
Visit details are independent of the chain.

Use the BookingSession mutators instead of writing session['booking'] directly.
"""
import logging

from .choices import PaymentMethod
from .exceptions import StaleRevisionError

logger = logging.getLogger(__name__)

SESSION_KEY = 'booking'
REVISION_KEY = 'booking_revision'
CONFIRMATION_KEY = 'booking_confirmation'

CHAIN_FIELDS = ('hospital', 'department', 'service', 'doctor', 'slot')
DETAIL_FIELDS = ('reason_for_visit', 'additional_notes', 'has_insurance', 'payment_method')


def initial_booking_state() -> dict:
    return {
        'hospital': None,
        'department': None,
        'service': None,
        'doctor': None,
        'slot': None,
        'reason_for_visit': '',
        'additional_notes': '',
        'has_insurance': True,
        'payment_method': PaymentMethod.CARD.value,
    }


def clean_details(details: dict) -> dict:
    """Keep only recognised visit-detail keys with acceptable values."""
    cleaned = {}
    for key, value in details.items():
        if key not in DETAIL_FIELDS:
            logger.debug('Ignoring unknown booking detail %r', key)
            continue
        if key == 'payment_method' and value not in PaymentMethod.values:
            logger.debug('Ignoring unknown payment method %r', value)
            continue
        if key == 'has_insurance':
            value = bool(value)
        elif key != 'payment_method':
            value = value or ''
        cleaned[key] = value
    return cleaned


class BookingSession:
    """
    Owns one booking attempt. Wraps a mutable mapping (normally request.session).

    Every mutator replaces the whole record, so after any call returns the
    chain invariant holds: no downstream selection survives a change upstream.
    Mutators never fail; setting a field whose predecessor is empty is
    allowed and simply leaves an incomplete booking.
    """

    def __init__(self, store):
        self._store = store

    # ── Read model ────────────────────────────────────────────────────────────

    @property
    def state(self) -> dict:
        state = initial_booking_state()
        state.update(self._store.get(SESSION_KEY) or {})
        return state

    def get(self, field, default=None):
        value = self.state.get(field)
        return default if value is None else value

    def __getitem__(self, field):
        return self.state[field]

    @property
    def revision(self) -> int:
        return self._store.get(REVISION_KEY, 0)

    @property
    def confirmation(self):
        return self._store.get(CONFIRMATION_KEY)

    def is_chain_consistent(self) -> bool:
        """True when no chain field is set while one of its predecessors is empty."""
        state = self.state
        seen_gap = False
        for field in CHAIN_FIELDS:
            if state[field] is None:
                seen_gap = True
            elif seen_gap:
                return False
        return True

    def chain_depth(self) -> int:
        """Number of leading chain fields that are filled in."""
        state = self.state
        depth = 0
        for field in CHAIN_FIELDS:
            if state[field] is None:
                break
            depth += 1
        return depth

    # ── Mutators ──────────────────────────────────────────────────────────────

    def set_hospital(self, hospital) -> None:
        """Choosing (or clearing) a hospital always starts a fresh booking."""
        state = initial_booking_state()
        if hospital:
            state['hospital'] = hospital
        self._store.pop(CONFIRMATION_KEY, None)
        self._replace(state)

    def set_department(self, department) -> None:
        self._set_chain_field('department', department)

    def set_service(self, service) -> None:
        self._set_chain_field('service', service)

    def set_doctor(self, doctor) -> None:
        self._set_chain_field('doctor', doctor)

    def set_slot(self, slot) -> None:
        self._set_chain_field('slot', slot)

    def update_details(self, **details) -> None:
        """Merge visit details without touching the chain."""
        state = self.state
        state.update(clean_details(details))
        self._replace(state)

    def reset_booking(self) -> None:
        self._store.pop(CONFIRMATION_KEY, None)
        self._replace(initial_booking_state())

    def record_confirmation(self, reference: str, confirmed_at: str, appointment_id: str) -> None:
        self._store[CONFIRMATION_KEY] = {
            'reference': reference,
            'confirmed_at': confirmed_at,
            'appointment_id': appointment_id,
        }
        self._mark_modified()

    def discard(self) -> None:
        """Drop the booking and its confirmation (the visitor left the flow)."""
        self._store.pop(SESSION_KEY, None)
        self._store.pop(CONFIRMATION_KEY, None)
        self._bump_revision()
        self._mark_modified()

    # ── Internals ─────────────────────────────────────────────────────────────

    def _set_chain_field(self, field, value) -> None:
        position = CHAIN_FIELDS.index(field)
        state = self.state
        state[field] = value or None
        for downstream in CHAIN_FIELDS[position + 1:]:
            state[downstream] = None
        # A confirmation belongs to the selections it was made with
        self._store.pop(CONFIRMATION_KEY, None)
        self._replace(state)

    def _replace(self, state: dict) -> None:
        self._store[SESSION_KEY] = state
        self._bump_revision()
        self._mark_modified()

    def _bump_revision(self) -> None:
        self._store[REVISION_KEY] = self._store.get(REVISION_KEY, 0) + 1

    def _mark_modified(self) -> None:
        # Django sessions only notice top-level assignments by themselves.
        if hasattr(self._store, 'modified'):
            self._store.modified = True


def get_booking_session(request) -> BookingSession:
    return BookingSession(request.session)


def check_revision(booking: BookingSession, posted) -> None:
    """
    Reject a POST built against an older version of the booking.
    `posted` is the revision echoed back by the form; missing means "don't check".
    """
    if posted in (None, ''):
        return
    try:
        posted = int(posted)
    except (TypeError, ValueError):
        raise StaleRevisionError('Your booking form was out of date. Please try again.')
    if posted != booking.revision:
        raise StaleRevisionError(
            'Your booking changed in another window. Please review your selection and try again.'
        )
