"""
Calendar export for a confirmed visit: an .ics file and a Google Calendar link.
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from urllib.parse import urlencode

from django.utils import timezone

from .engine import SLOT_INTERVAL_MINUTES, parse_time_label, slot_date

GOOGLE_CALENDAR_URL = 'https://calendar.google.com/calendar/render'


def build_visit_window(slot):
    """
    Aware (start, end) datetimes for a slot in the site timezone,
    or None when the slot's date or label cannot be read.
    """
    visit_date = slot_date(slot)
    if visit_date is None:
        return None
    try:
        minutes = parse_time_label(slot.get('time_label'))
    except ValueError:
        return None
    naive = datetime.combine(visit_date, datetime.min.time()) + timedelta(minutes=minutes)
    start = timezone.make_aware(naive, timezone.get_current_timezone())
    return start, start + timedelta(minutes=SLOT_INTERVAL_MINUTES)


def _utc_stamp(value: datetime) -> str:
    return value.astimezone(dt_timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def _escape(text) -> str:
    """Escape a TEXT value per RFC 5545."""
    return (
        str(text or '')
        .replace('\\', '\\\\')
        .replace(';', '\\;')
        .replace(',', '\\,')
        .replace('\r\n', '\\n')
        .replace('\n', '\\n')
    )


def _summary(state) -> str:
    department = (state.get('department') or {}).get('name') or 'Hospital'
    return f"{department} appointment"


def _location(state) -> str:
    hospital = state.get('hospital') or {}
    return ', '.join(part for part in (hospital.get('name'), hospital.get('address')) if part)


def _description(state, reference) -> str:
    doctor = (state.get('doctor') or {}).get('name') or ''
    lines = [f"Reference: {reference}"]
    if doctor:
        lines.append(f"Doctor: {doctor}")
    if state.get('reason_for_visit'):
        lines.append(f"Reason: {state['reason_for_visit']}")
    return '\n'.join(lines)


def build_ics(state: dict, reference: str, now=None):
    """
    iCalendar document for the booked visit, or None if the slot can't be placed.
    """
    window = build_visit_window(state.get('slot'))
    if window is None:
        return None
    start, end = window
    now = now or timezone.now()
    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        'PRODID:-//MediBook//Appointment//EN',
        'CALSCALE:GREGORIAN',
        'METHOD:PUBLISH',
        'BEGIN:VEVENT',
        f"UID:{reference}@medibook",
        f"DTSTAMP:{_utc_stamp(now)}",
        f"DTSTART:{_utc_stamp(start)}",
        f"DTEND:{_utc_stamp(end)}",
        f"SUMMARY:{_escape(_summary(state))}",
        f"LOCATION:{_escape(_location(state))}",
        f"DESCRIPTION:{_escape(_description(state, reference))}",
        'END:VEVENT',
        'END:VCALENDAR',
    ]
    return '\r\n'.join(lines) + '\r\n'


def google_calendar_url(state: dict, reference: str):
    window = build_visit_window(state.get('slot'))
    if window is None:
        return None
    start, end = window
    query = urlencode({
        'action': 'TEMPLATE',
        'text': _summary(state),
        'dates': f"{_utc_stamp(start)}/{_utc_stamp(end)}",
        'details': _description(state, reference),
        'location': _location(state),
    })
    return f"{GOOGLE_CALENDAR_URL}?{query}"
