"""
Slot engine: pure business logic with no HTTP/request awareness.

Public API:
  build_time_labels()
  week_start(value)
  week_days(anchor)
  shift_week(anchor, weeks)
  generate_slots(time_labels, week_days)
  bucket_slots(day_slots)
  day_has_slots(day_slots)
  build_slot(anchor, day_index, time_label)
  navigate_week(booking, anchor, weeks)
  select_day(booking, day_index)
  show_week(booking, anchor)

Availability here is illustrative: it comes from a fixed arithmetic rule,
not from the hospital's booking ledger. The same (day, slot) pair is always
available or always taken, whatever week is displayed.
"""
import re
from collections import OrderedDict
from datetime import date as date_type, datetime, timedelta

from .exceptions import InvalidSlotError

SLOT_INTERVAL_MINUTES = 30
SLOT_START_MINUTES = 8 * 60
SLOT_END_MINUTES = 18 * 60
DAYS_PER_WEEK = 7

AFTERNOON_START_MINUTES = 12 * 60
EVENING_START_MINUTES = 17 * 60

BUCKET_MORNING = 'Morning'
BUCKET_AFTERNOON = 'Afternoon'
BUCKET_EVENING = 'Evening'

_TIME_LABEL_RE = re.compile(r'^\s*(\d{1,2}):(\d{2})\s*(AM|PM)\s*$', re.IGNORECASE)


# ── Time helpers ──────────────────────────────────────────────────────────────

def _fmt_time(total_minutes: int) -> str:
    """
    Format minutes-since-midnight as '8:00 AM' without a leading zero on the hour.
    Built by hand because strftime('%-I') is not portable.
    """
    hours24, minutes = divmod(total_minutes, 60)
    hour = hours24 % 12 or 12          # convert 0→12, 13→1, etc.
    ampm = 'AM' if hours24 < 12 else 'PM'
    return f"{hour}:{minutes:02d} {ampm}"


def parse_time_label(label: str) -> int:
    """
    Inverse of _fmt_time: '1:30 PM' → 810.
    Raises ValueError for anything that is not a 12-hour clock label.
    """
    match = _TIME_LABEL_RE.match(label or '')
    if not match:
        raise ValueError(f"Not a 12-hour time label: {label!r}")
    hours, minutes, ampm = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if not 1 <= hours <= 12 or minutes > 59:
        raise ValueError(f"Not a 12-hour time label: {label!r}")
    if ampm == 'PM' and hours != 12:
        hours += 12
    if ampm == 'AM' and hours == 12:
        hours = 0
    return hours * 60 + minutes


def build_time_labels() -> list:
    """All bookable start times of a day, 8:00 AM to 6:00 PM inclusive."""
    return [
        _fmt_time(minutes)
        for minutes in range(SLOT_START_MINUTES, SLOT_END_MINUTES + 1, SLOT_INTERVAL_MINUTES)
    ]


# ── Week anchors ──────────────────────────────────────────────────────────────

def week_start(value):
    """
    Monday of the week containing `value`, with the time of day zeroed.
    Accepts a date or a datetime and returns the same type.
    """
    if isinstance(value, datetime):
        value = value.replace(hour=0, minute=0, second=0, microsecond=0)
    # weekday(): Monday=0 … Sunday=6, so Sunday steps back six days.
    return value - timedelta(days=value.weekday())


def shift_week(anchor, weeks: int):
    return week_start(anchor) + timedelta(days=DAYS_PER_WEEK * weeks)


def week_days(anchor) -> list:
    """The seven dates of the week anchored at `anchor`."""
    monday = week_start(anchor)
    return [monday + timedelta(days=offset) for offset in range(DAYS_PER_WEEK)]


def parse_anchor(value, default=None):
    """Parse a 'YYYY-MM-DD' week parameter; fall back to `default` on junk."""
    try:
        return week_start(datetime.strptime(value, '%Y-%m-%d').date())
    except (ValueError, TypeError):
        return default


# ── Core: Slot Generation ─────────────────────────────────────────────────────

def is_slot_available(day_index: int, slot_index: int) -> bool:
    return ((day_index + 3) * (slot_index + 5)) % 5 != 0


def generate_slots(time_labels: list, week_days: list) -> list:
    """
    Build the slot matrix for one week: one list per day, one dict per label.

      [[{"day_index": 0, "time_label": "8:00 AM", "is_available": True}, ...], ...]
    """
    return [
        [
            {
                'day_index': day_index,
                'time_label': time_label,
                'is_available': is_slot_available(day_index, slot_index),
            }
            for slot_index, time_label in enumerate(time_labels)
        ]
        for day_index, _ in enumerate(week_days)
    ]


def bucket_for(time_label: str) -> str:
    minutes = parse_time_label(time_label)
    if minutes < AFTERNOON_START_MINUTES:
        return BUCKET_MORNING
    if minutes < EVENING_START_MINUTES:
        return BUCKET_AFTERNOON
    return BUCKET_EVENING


def bucket_slots(day_slots: list) -> OrderedDict:
    """Group one day's slots into Morning / Afternoon / Evening, in that order."""
    buckets = OrderedDict((name, []) for name in (BUCKET_MORNING, BUCKET_AFTERNOON, BUCKET_EVENING))
    for slot in day_slots:
        buckets[bucket_for(slot['time_label'])].append(slot)
    return buckets


def day_has_slots(day_slots: list) -> bool:
    return any(slot['is_available'] for slot in day_slots)


def build_slot(anchor, day_index, time_label: str) -> dict:
    """
    Turn a day/time pick from the grid into the session slot record.

    Raises InvalidSlotError if the day is outside the week, the label is not
    one of the generated labels, or the slot is not available.
    """
    try:
        day_index = int(day_index)
    except (TypeError, ValueError):
        raise InvalidSlotError('Please choose a day from the calendar.')
    if not 0 <= day_index < DAYS_PER_WEEK:
        raise InvalidSlotError('Please choose a day from the calendar.')

    labels = build_time_labels()
    if time_label not in labels:
        raise InvalidSlotError('Please select a valid time slot.')
    if not is_slot_available(day_index, labels.index(time_label)):
        raise InvalidSlotError('That time is no longer available. Please choose another slot.')

    slot_date = week_days(anchor)[day_index]
    if isinstance(slot_date, datetime):
        slot_date = slot_date.date()
    return {
        'day_index': day_index,
        'time_label': time_label,
        'date': slot_date.isoformat(),
        'is_available': True,
    }


def slot_date(slot):
    """The slot's calendar date, or None when it is missing or unparseable."""
    if not slot:
        return None
    try:
        return date_type.fromisoformat(str(slot.get('date', ''))[:10])
    except ValueError:
        return None


# ── Session-facing helpers ────────────────────────────────────────────────────

def initial_anchor(booking, today: date_type):
    """Open on the week of the chosen slot if there is one, else this week."""
    chosen = slot_date(booking.get('slot'))
    return week_start(chosen or today)


def navigate_week(booking, anchor, weeks: int):
    """
    Move the grid by `weeks` and drop the selected slot: slots are
    week-relative, so the old pick cannot carry over.
    """
    booking.set_slot(None)
    return shift_week(anchor, weeks)


def select_day(booking, day_index: int) -> int:
    """Switch the visible day; a slot on another day is cleared."""
    slot = booking.get('slot')
    if not slot or slot.get('day_index') != day_index:
        booking.set_slot(None)
    return day_index


def slot_in_week(slot, anchor) -> bool:
    """True when the slot's date falls inside the week anchored at `anchor`."""
    chosen = slot_date(slot)
    return chosen is not None and week_start(chosen) == week_start(_as_date(anchor))


def show_week(booking, anchor):
    """
    Display the week anchored at `anchor`. Whatever way the week was reached,
    a slot from another week does not survive it.
    """
    if booking.get('slot') and not slot_in_week(booking.get('slot'), anchor):
        booking.set_slot(None)
    return week_start(anchor)


def _as_date(value):
    return value.date() if isinstance(value, datetime) else value
