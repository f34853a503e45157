"""
Booking flow URLs, mounted at /appointments/new/.

Flow:
  /                                                  Step 1: Hospital selection
  /<hospital_id>/services/                           Step 2: Department & service
  /<hospital_id>/services/<department_slug>/doctors/ Step 3: Doctor selection
  /<hospital_id>/services/<department_slug>/slots/   Step 4: Slot selection
  /<hospital_id>/services/<department_slug>/confirm/ Step 5: Confirm & submit
  /<hospital_id>/services/<department_slug>/success/ Step 6: Confirmation
  .../success/calendar.ics                           Calendar download
  .../success/slip.pdf                               PDF confirmation slip
  /finish/                                           Leave the flow (POST)
  /api/slots/                                        AJAX: slot grid for a week
"""
from django.urls import path
from . import views

app_name = 'bookings'

_DEPT = '<str:hospital_id>/services/<slug:department_slug>/'

urlpatterns = [
    # ── Multi-step booking flow ────────────────────────────────────────────────
    path('',                                  views.select_hospital,     name='select_hospital'),
    path('<str:hospital_id>/services/',       views.select_department,   name='select_department'),
    path(_DEPT + 'doctors/',                  views.select_doctor,       name='select_doctor'),
    path(_DEPT + 'slots/',                    views.select_slot,         name='select_slot'),
    path(_DEPT + 'confirm/',                  views.confirm_appointment, name='confirm'),
    path(_DEPT + 'success/',                  views.appointment_success, name='success'),

    # ── Success downloads ──────────────────────────────────────────────────────
    path(_DEPT + 'success/calendar.ics',      views.download_calendar,   name='calendar'),
    path(_DEPT + 'success/slip.pdf',          views.download_slip,       name='slip_pdf'),
    path('finish/',                           views.finish_booking,      name='finish'),

    # ── AJAX endpoints ─────────────────────────────────────────────────────────
    path('api/slots/',                        views.api_week_slots,      name='api_slots'),
]
