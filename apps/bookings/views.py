"""
Booking wizard views: six steps backed by the Django session.

Each view guards that the earlier selections it depends on are present and
match the URL before rendering. Hospital data comes from the hospital API on
every request; only the visitor's selections live in the session.
"""
import logging

from django.conf import settings
from django.contrib import messages
from django.core.paginator import Paginator
from django.http import Http404, HttpResponse, JsonResponse
from django.shortcuts import redirect, render
from django.urls import reverse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST

from apps.api.client import get_api_client
from apps.api.exceptions import ApiError

from .calendar_export import build_ics, google_calendar_url
from .choices import HospitalType
from .confirmation import ConfirmationFlow
from .directory import distance_label, filter_hospitals, speciality_options
from .engine import (
    bucket_slots,
    build_slot,
    build_time_labels,
    day_has_slots,
    generate_slots,
    initial_anchor,
    navigate_week,
    parse_anchor,
    select_day,
    show_week,
    week_days,
)
from .exceptions import (
    IncompleteBookingError,
    InvalidSlotError,
    StaleRevisionError,
    StaleSelectionError,
    SubmissionError,
)
from .forms import HospitalFilterForm, VisitDetailsForm
from .session import CHAIN_FIELDS, check_revision, get_booking_session
from .slip import get_slip_context, render_slip_pdf
from .steps import wizard_context

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _render_step(request, template, booking, context, completed=False, override_progress=None,
                 status=200):
    context.update({
        'booking': booking.state,
        'revision': booking.revision,
        'wizard': wizard_context(request.path, booking.state, completed, override_progress),
    })
    return render(request, template, context, status=status)


def _find_by_id(items, item_id):
    if not item_id:
        return None
    return next((item for item in items if str(item['id']) == str(item_id)), None)


def _require(booking, hospital_id, department_slug=None, upto='hospital'):
    """
    Redirect to the earliest step whose selection is missing or does not
    match the URL. Returns None when everything up to `upto` is in place.
    """
    state = booking.state
    depth = CHAIN_FIELDS.index(upto)

    hospital = state['hospital']
    if not hospital or str(hospital['id']) != str(hospital_id):
        return redirect('bookings:select_hospital')

    if depth >= CHAIN_FIELDS.index('department'):
        department = state['department']
        if not department or not state['service'] or department.get('slug') != department_slug:
            return redirect('bookings:select_department', hospital_id=hospital_id)

    if depth >= CHAIN_FIELDS.index('doctor') and not state['doctor']:
        return redirect('bookings:select_doctor', hospital_id=hospital_id,
                        department_slug=department_slug)

    if depth >= CHAIN_FIELDS.index('slot') and not state['slot']:
        return redirect('bookings:select_slot', hospital_id=hospital_id,
                        department_slug=department_slug)

    return None


def _check_revision(request, booking) -> bool:
    try:
        check_revision(booking, request.POST.get('revision'))
    except StaleRevisionError as exc:
        messages.warning(request, str(exc))
        return False
    return True


def _ensure_doctor_listed(booking, doctors):
    """The selected doctor must still be offered by the department."""
    doctor = booking.get('doctor')
    if doctor and _find_by_id(doctors, doctor['id']) is None:
        raise StaleSelectionError(
            'The doctor you selected is no longer available. Please choose another doctor.'
        )


def _slot_url(hospital_id, department_slug, anchor, day_index=None) -> str:
    url = reverse('bookings:select_slot', kwargs={
        'hospital_id': hospital_id,
        'department_slug': department_slug,
    })
    url = f"{url}?week={anchor.isoformat()}"
    if day_index is not None:
        url = f"{url}&day={day_index}"
    return url


# ─────────────────────────────────────────────────────────────────────────────
# Step 1: Hospital Selection
# ─────────────────────────────────────────────────────────────────────────────

def select_hospital(request):
    booking = get_booking_session(request)
    client = get_api_client(request)

    if request.method == 'POST':
        hospital_id = request.POST.get('hospital_id')
        try:
            hospitals, _ = client.fetch_hospitals()
        except ApiError as exc:
            messages.error(request, str(exc))
            return redirect('bookings:select_hospital')

        hospital = _find_by_id(hospitals, hospital_id)
        if hospital is None:
            messages.error(request, 'Please select a valid hospital.')
            return redirect('bookings:select_hospital')

        # A new hospital selection always starts a fresh booking
        booking.set_hospital(hospital)
        return redirect('bookings:select_department', hospital_id=hospital['id'])

    filter_form = HospitalFilterForm(request.GET or None)
    hospitals, error = [], None
    try:
        hospitals, _ = client.fetch_hospitals(**filter_form.api_filters())
    except ApiError as exc:
        error = str(exc)

    filter_form = HospitalFilterForm(request.GET or None, specialities=speciality_options(hospitals))
    if filter_form.is_valid():
        data = filter_form.cleaned_data
        visible = filter_hospitals(
            hospitals,
            search=data.get('q'),
            max_distance=filter_form.max_distance(),
            speciality=data.get('speciality'),
            hospital_type=data.get('type'),
        )
    else:
        visible = hospitals

    visible = [dict(h, distance_label=distance_label(h.get('distance'))) for h in visible]

    page = Paginator(visible, settings.HOSPITALS_PER_PAGE).get_page(request.GET.get('page'))
    query = request.GET.copy()
    query.pop('page', None)
    return _render_step(request, 'bookings/select_hospital.html', booking, {
        'filter_form': filter_form,
        'page_obj': page,
        'hospitals': page.object_list,
        'filter_query': query.urlencode(),
        'error': error,
    })


# ─────────────────────────────────────────────────────────────────────────────
# Step 2: Department & Service Selection
# ─────────────────────────────────────────────────────────────────────────────

def select_department(request, hospital_id):
    booking = get_booking_session(request)
    missing = _require(booking, hospital_id)
    if missing:
        return missing

    client = get_api_client(request)
    try:
        departments, _ = client.fetch_departments(hospital_id)
    except ApiError as exc:
        if request.method == 'POST':
            messages.error(request, str(exc))
            return redirect('bookings:select_department', hospital_id=hospital_id)
        return _render_step(request, 'bookings/select_department.html', booking, {
            'hospital': booking.get('hospital'),
            'departments': [],
            'error': str(exc),
        })

    if request.method == 'POST':
        if not _check_revision(request, booking):
            return redirect('bookings:select_department', hospital_id=hospital_id)

        department = _find_by_id(departments, request.POST.get('department_id'))
        if department is None:
            messages.error(request, 'Please select a valid department.')
            return redirect('bookings:select_department', hospital_id=hospital_id)

        service = _find_by_id(department['services'], request.POST.get('service_id'))
        if service is None:
            messages.error(request, 'Please select a service from this department.')
            return redirect('bookings:select_department', hospital_id=hospital_id)

        booking.set_department(department)
        booking.set_service(service)
        return redirect('bookings:select_doctor', hospital_id=hospital_id,
                        department_slug=department['slug'])

    return _render_step(request, 'bookings/select_department.html', booking, {
        'hospital': booking.get('hospital'),
        'departments': departments,
        'error': None,
    })


# ─────────────────────────────────────────────────────────────────────────────
# Step 3: Doctor Selection
# ─────────────────────────────────────────────────────────────────────────────

def select_doctor(request, hospital_id, department_slug):
    booking = get_booking_session(request)
    missing = _require(booking, hospital_id, department_slug, upto='service')
    if missing:
        return missing

    department = booking.get('department')
    client = get_api_client(request)
    try:
        doctors, _ = client.fetch_doctors(department['id'], hospital_id, department_slug)
    except ApiError as exc:
        if request.method == 'POST':
            messages.error(request, str(exc))
            return redirect('bookings:select_doctor', hospital_id=hospital_id,
                            department_slug=department_slug)
        doctors, error = [], str(exc)
    else:
        error = None

    if request.method == 'POST':
        if not _check_revision(request, booking):
            return redirect('bookings:select_doctor', hospital_id=hospital_id,
                            department_slug=department_slug)

        doctor = _find_by_id(doctors, request.POST.get('doctor_id'))
        if doctor is None:
            messages.error(request, 'Please select a valid doctor.')
            return redirect('bookings:select_doctor', hospital_id=hospital_id,
                            department_slug=department_slug)

        booking.set_doctor(doctor)
        return redirect('bookings:select_slot', hospital_id=hospital_id,
                        department_slug=department_slug)

    return _render_step(request, 'bookings/select_doctor.html', booking, {
        'hospital': booking.get('hospital'),
        'department': department,
        'doctors': doctors,
        'error': error,
    })


# ─────────────────────────────────────────────────────────────────────────────
# Step 4: Slot Selection
# ─────────────────────────────────────────────────────────────────────────────

def select_slot(request, hospital_id, department_slug):
    booking = get_booking_session(request)
    missing = _require(booking, hospital_id, department_slug, upto='doctor')
    if missing:
        return missing

    # The doctor list may have changed since the doctor was picked
    client = get_api_client(request)
    try:
        doctors, _ = client.fetch_doctors(booking.get('department')['id'], hospital_id, department_slug)
        _ensure_doctor_listed(booking, doctors)
    except ApiError as exc:
        logger.warning('Could not re-check doctor for slot step: %s', exc)
    except StaleSelectionError as exc:
        logger.info('Clearing stale doctor %s', booking.get('doctor')['id'])
        booking.set_doctor(None)
        messages.warning(request, str(exc))
        return redirect('bookings:select_doctor', hospital_id=hospital_id,
                        department_slug=department_slug)

    today = timezone.localdate()
    anchor = parse_anchor(request.GET.get('week') or request.POST.get('week'),
                          default=initial_anchor(booking, today))

    if request.method == 'POST':
        if not _check_revision(request, booking):
            return redirect(_slot_url(hospital_id, department_slug, anchor))

        action = request.POST.get('action')
        if action in ('prev_week', 'next_week'):
            anchor = navigate_week(booking, anchor, -1 if action == 'prev_week' else 1)
            return redirect(_slot_url(hospital_id, department_slug, anchor, 0))

        if action == 'select_day':
            try:
                day_index = int(request.POST.get('day_index', 0))
            except (TypeError, ValueError):
                day_index = 0
            select_day(booking, day_index)
            return redirect(_slot_url(hospital_id, department_slug, anchor, day_index))

        if action == 'select_slot':
            try:
                slot = build_slot(anchor, request.POST.get('day_index'), request.POST.get('time_label'))
            except InvalidSlotError as exc:
                messages.error(request, str(exc))
                return redirect(_slot_url(hospital_id, department_slug, anchor))
            booking.set_slot(slot)
            return redirect(_slot_url(hospital_id, department_slug, anchor, slot['day_index']))

        if action == 'continue':
            # Only a slot from the week on screen can be carried forward
            show_week(booking, anchor)
            if not booking.get('slot'):
                messages.error(request, 'Please select a time slot.')
                return redirect(_slot_url(hospital_id, department_slug, anchor))
            return redirect('bookings:confirm', hospital_id=hospital_id,
                            department_slug=department_slug)

        messages.error(request, 'Unknown action.')
        return redirect(_slot_url(hospital_id, department_slug, anchor))

    # A slot from another week is cleared however the week was reached
    anchor = show_week(booking, anchor)
    slot = booking.get('slot')
    days = week_days(anchor)
    matrix = generate_slots(build_time_labels(), days)

    try:
        active_day = int(request.GET.get('day'))
    except (TypeError, ValueError):
        active_day = slot['day_index'] if slot else 0
    active_day = min(max(active_day, 0), len(days) - 1)

    day_tabs = [
        {'index': i, 'date': d, 'has_slots': day_has_slots(matrix[i]), 'is_active': i == active_day}
        for i, d in enumerate(days)
    ]
    for entry in matrix[active_day]:
        entry['is_selected'] = bool(slot) and (
            slot['day_index'], slot['time_label']) == (entry['day_index'], entry['time_label'])

    return _render_step(request, 'bookings/select_slot.html', booking, {
        'hospital': booking.get('hospital'),
        'department': booking.get('department'),
        'doctor': booking.get('doctor'),
        'slot': slot,
        'anchor': anchor,
        'day_tabs': day_tabs,
        'active_day': active_day,
        'buckets': bucket_slots(matrix[active_day]),
        'has_slots': day_has_slots(matrix[active_day]),
    })


@require_GET
def api_week_slots(request):
    """
    GET /appointments/new/api/slots/?week=YYYY-MM-DD
    Returns the slot grid for one week, bucketed per day.
    """
    anchor = parse_anchor(request.GET.get('week'))
    if anchor is None:
        return JsonResponse({'error': 'Invalid week'}, status=400)

    days = week_days(anchor)
    matrix = generate_slots(build_time_labels(), days)
    return JsonResponse({
        'week': anchor.isoformat(),
        'days': [
            {
                'date': day.isoformat(),
                'has_slots': day_has_slots(matrix[i]),
                'buckets': bucket_slots(matrix[i]),
            }
            for i, day in enumerate(days)
        ],
    })


# ─────────────────────────────────────────────────────────────────────────────
# Step 5: Confirm & Submit
# ─────────────────────────────────────────────────────────────────────────────

def confirm_appointment(request, hospital_id, department_slug):
    booking = get_booking_session(request)
    missing = _require(booking, hospital_id, department_slug, upto='slot')
    if missing:
        return missing

    # Already submitted: a refresh or second click must not book twice
    if booking.confirmation is not None:
        return redirect('bookings:success', hospital_id=hospital_id,
                        department_slug=department_slug)

    state = booking.state
    if request.method == 'POST':
        form = VisitDetailsForm(request.POST)
        if form.is_valid() and _check_revision(request, booking):
            flow = ConfirmationFlow(booking, get_api_client(request))
            try:
                flow.submit(details=form.cleaned_data)
            except IncompleteBookingError as exc:
                for field, message in exc.errors.items():
                    if field in form.fields:
                        form.add_error(field, message)
                    else:
                        messages.error(request, message)
            except SubmissionError as exc:
                logger.warning('Appointment submission failed: %s', exc)
                messages.error(request, str(exc))
            else:
                return redirect('bookings:success', hospital_id=hospital_id,
                                department_slug=department_slug)
    else:
        form = VisitDetailsForm(initial={
            'reason_for_visit': state['reason_for_visit'],
            'additional_notes': state['additional_notes'],
            'has_insurance': state['has_insurance'],
            'payment_method': state['payment_method'],
        })

    return _render_step(request, 'bookings/confirm.html', booking, {
        'form': form,
        'hospital': state['hospital'],
        'department': state['department'],
        'service': state['service'],
        'doctor': state['doctor'],
        'slot': state['slot'],
        'is_private': state['hospital'].get('type') == HospitalType.PRIVATE,
    })


# ─────────────────────────────────────────────────────────────────────────────
# Step 6: Success
# ─────────────────────────────────────────────────────────────────────────────

def _confirmed_booking(request, hospital_id, department_slug):
    """Booking + confirmation for the success pages, or None if there is nothing to show."""
    booking = get_booking_session(request)
    if booking.confirmation is None or _require(booking, hospital_id, department_slug, upto='slot'):
        return None
    return booking


def appointment_success(request, hospital_id, department_slug):
    booking = _confirmed_booking(request, hospital_id, department_slug)
    if booking is None:
        return redirect('pages:home')

    context = get_slip_context(booking.state, booking.confirmation)
    context['google_calendar_url'] = google_calendar_url(booking.state, booking.confirmation['reference'])
    return _render_step(request, 'bookings/success.html', booking, context, completed=True)


def download_calendar(request, hospital_id, department_slug):
    booking = _confirmed_booking(request, hospital_id, department_slug)
    if booking is None:
        raise Http404('No confirmed appointment')

    reference = booking.confirmation['reference']
    ics = build_ics(booking.state, reference)
    if ics is None:
        raise Http404('Appointment time unavailable')

    response = HttpResponse(ics, content_type='text/calendar; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="appointment_{reference}.ics"'
    return response


def download_slip(request, hospital_id, department_slug):
    booking = _confirmed_booking(request, hospital_id, department_slug)
    if booking is None:
        raise Http404('No confirmed appointment')

    context = get_slip_context(booking.state, booking.confirmation)
    return render_slip_pdf(context, f"appointment_{context['reference']}.pdf")


@require_POST
def finish_booking(request):
    """Leave the success step: start over or go home. The booking is discarded either way."""
    get_booking_session(request).discard()
    if request.POST.get('next') == 'new':
        return redirect('bookings:select_hospital')
    return redirect('pages:home')
