"""
Confirmation slip data for the success page and its PDF download.
"""
import base64
import io
import json

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from django.http import HttpResponse
from django.template.loader import get_template
from django.utils.dateparse import parse_datetime
from xhtml2pdf import pisa

from .choices import PaymentMethod
from .directory import distance_label
from .engine import slot_date


def check_in_payload(state: dict, confirmation: dict) -> str:
    """JSON document the front desk scans at check-in."""
    hospital = state.get('hospital') or {}
    department = state.get('department') or {}
    doctor = state.get('doctor') or {}
    slot = state.get('slot') or {}
    return json.dumps({
        'reference': confirmation.get('reference'),
        'appointmentId': confirmation.get('appointment_id'),
        'hospitalId': hospital.get('id'),
        'hospitalName': hospital.get('name'),
        'hospitalAddress': hospital.get('address'),
        'hospitalPhone': hospital.get('phone'),
        'departmentSlug': department.get('slug'),
        'departmentName': department.get('name'),
        'doctorId': doctor.get('id'),
        'doctorName': doctor.get('name'),
        'doctorTitle': doctor.get('title'),
        'date': slot.get('date'),
        'timeLabel': slot.get('time_label'),
        'reasonForVisit': state.get('reason_for_visit') or None,
        'confirmedAt': confirmation.get('confirmed_at'),
    }, sort_keys=True)


def check_in_qr(payload: str, box_size: int = 6) -> str:
    """
    PNG QR code of the check-in payload as a data: URI, usable both in the
    page and in the xhtml2pdf slip.
    """
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=4)
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color='black', back_color='white')

    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


def get_slip_context(state: dict, confirmation: dict) -> dict:
    """
    Gathers everything the success page and the PDF slip display.
    """
    hospital = state.get('hospital') or {}
    department = state.get('department') or {}
    service = state.get('service') or {}
    doctor = state.get('doctor') or {}
    slot = state.get('slot') or {}
    payload = check_in_payload(state, confirmation)

    return {
        'reference': confirmation.get('reference'),
        'appointment_id': confirmation.get('appointment_id'),
        'confirmed_at': parse_datetime(confirmation.get('confirmed_at') or ''),
        'hospital': {
            'name': hospital.get('name') or 'Hospital not provided',
            'address': hospital.get('address', ''),
            'phone': hospital.get('phone', ''),
            'distance': distance_label(hospital.get('distance')),
        },
        'appointment': {
            'department': department.get('name') or 'General Consultation',
            'service': service.get('title', ''),
            'doctor': doctor.get('name', ''),
            'doctor_title': doctor.get('title', ''),
            'date': slot_date(slot),
            'time': slot.get('time_label') or '--',
        },
        'visit': {
            'reason': state.get('reason_for_visit', ''),
            'notes': state.get('additional_notes', ''),
            'has_insurance': state.get('has_insurance', True),
            'payment_method': PaymentMethod(state.get('payment_method') or PaymentMethod.CARD).label,
        },
        'check_in_payload': payload,
        'check_in_qr': check_in_qr(payload),
    }


def render_slip_pdf(context: dict, filename: str) -> HttpResponse:
    """Render the slip template to a PDF attachment."""
    html = get_template('bookings/slip_pdf.html').render(context)

    response = HttpResponse(content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'

    pisa_status = pisa.CreatePDF(html, dest=response)
    if pisa_status.err:
        return HttpResponse('Could not generate the confirmation slip.', status=500)
    return response
