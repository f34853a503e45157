"""
Wizard steps and progress.

The active step is never stored: it is recomputed from the request path and
the booking session on every render, so the header can't drift away from
where the visitor actually is.

Step patterns are relative to the wizard root, which is resolved with
reverse() on every call.
"""
import math
import re

from django.urls import reverse

from .choices import StepStatus

_DEPT = r'^[^/]+/services/[^/]+'


class StepDefinition:
    """Static description of one wizard step."""

    def __init__(self, id, label, description, pattern, is_complete, icon):
        self.id = id
        self.label = label
        self.description = description
        self.pattern = re.compile(pattern, re.IGNORECASE)
        self.is_complete = is_complete
        self.icon = icon

    def matches(self, relative_path: str) -> bool:
        return bool(self.pattern.match(relative_path))

    def __repr__(self):
        return f"StepDefinition({self.id!r})"


STEP_DEFINITIONS = (
    StepDefinition(
        id='hospital',
        label='Select Hospital',
        description='Choose the hospital closest to you or filter by speciality '
                    'to find the care you need.',
        pattern=r'^$',
        is_complete=lambda state: bool(state.get('hospital')),
        icon='building',
    ),
    StepDefinition(
        id='department',
        label='Select Service & Department',
        description='Review available departments at your chosen hospital and pick '
                    'the service that best matches your needs.',
        pattern=r'^[^/]+/services/?$',
        is_complete=lambda state: bool(state.get('department')),
        icon='clipboard-check',
    ),
    StepDefinition(
        id='doctor',
        label='Select Your Doctor',
        description='Compare specialists, review their credentials, and select the '
                    'provider who fits your preferences.',
        pattern=_DEPT + r'/doctors/?$',
        is_complete=lambda state: bool(state.get('doctor')),
        icon='user-search',
    ),
    StepDefinition(
        id='slot',
        label='Choose a Time Slot',
        description='Browse available appointment times and pick the slot that '
                    'works best for your schedule.',
        pattern=_DEPT + r'/slots/?$',
        is_complete=lambda state: bool(state.get('slot')),
        icon='calendar-clock',
    ),
    StepDefinition(
        id='confirm',
        label='Confirm & Share Details',
        description='Add final context for your visit, confirm insurance preferences, '
                    'and lock in your appointment.',
        pattern=_DEPT + r'/confirm/?$',
        is_complete=lambda state: bool(state.get('slot')),
        icon='stethoscope',
    ),
    StepDefinition(
        id='success',
        label='Appointment Confirmed',
        description='Review the confirmation details and keep your reference handy '
                    'for a seamless check-in experience.',
        pattern=_DEPT + r'/success/?$',
        # Terminal step: never shown as a checked-off earlier step.
        is_complete=lambda state: False,
        icon='check-circle',
    ),
)


def wizard_root() -> str:
    """Path of the first step, including any script prefix."""
    return reverse('bookings:select_hospital')


def relative_location(location, root=None):
    """
    The part of `location` below the wizard root, without a leading slash,
    or None when the location is outside the wizard.
    """
    location = location or ''
    base = (root or wizard_root()).rstrip('/')
    if not location.lower().startswith(base.lower()):
        return None
    rest = location[len(base):]
    if rest and not rest.startswith('/'):
        return None
    return rest.lstrip('/')


def active_step_index(location: str, definitions=STEP_DEFINITIONS) -> int:
    relative = relative_location(location)
    if relative is None:
        return 0
    for index, definition in enumerate(definitions):
        if definition.matches(relative):
            return index
    return 0


def derive_steps(location: str, state: dict, definitions=STEP_DEFINITIONS):
    """
    Annotate every step with its status for the given path and booking state.

    Returns (steps, active_index); each step is a dict with id, label,
    description, icon, number and status.
    """
    active_index = active_step_index(location, definitions)
    steps = []
    for index, definition in enumerate(definitions):
        if index < active_index and definition.is_complete(state):
            status = StepStatus.COMPLETE
        elif index == active_index:
            status = StepStatus.CURRENT
        else:
            status = StepStatus.PENDING
        steps.append({
            'id': definition.id,
            'label': definition.label,
            'description': definition.description,
            'icon': definition.icon,
            'number': index + 1,
            'status': status.value,
        })
    return steps, active_index


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_percent(value: float) -> int:
    return min(100, max(0, _round_half_up(value)))


def compute_progress(steps: list, override_progress=None, force_complete: bool = False) -> int:
    """
    Percentage shown in the wizard header.

    The half-step credit keeps the bar moving while the visitor is inside a
    step instead of waiting until the step is finished.
    """
    if force_complete:
        return 100
    if override_progress is not None:
        return _clamp_percent(float(override_progress))
    if not steps:
        return 0
    completed = sum(1 for step in steps if step['status'] == StepStatus.COMPLETE)
    return _clamp_percent((completed + 0.5) / len(steps) * 100)


def wizard_context(location: str, state: dict, completed: bool = False,
                   override_progress=None) -> dict:
    """Template context for the wizard header."""
    steps, active_index = derive_steps(location, state)
    return {
        'steps': steps,
        'active_step': steps[active_index],
        'progress': compute_progress(steps, override_progress, completed),
    }
