"""
Hospital API client: the only place that talks to the remote service.

Public API:
  HospitalApiClient.fetch_hospitals(type=None, speciality=None, page=None, limit=None)
  HospitalApiClient.fetch_departments(hospital_id, page=None, limit=None)
  HospitalApiClient.fetch_doctors(department_id, hospital_id, department_slug='', ...)
  HospitalApiClient.fetch_current_patient()
  HospitalApiClient.create_appointment(...)
  HospitalApiClient.create_payment(...)
  get_api_client(request)

Every response uses the envelope {"success": bool, "data": {...}}.
Calls are never retried automatically; failures surface as ApiError so the
user can retry from the page.
"""
import logging

import requests
from django.conf import settings

from .exceptions import ApiAuthError, ApiError
from .normalizers import (
    normalize_department,
    normalize_doctor,
    normalize_hospital,
    normalize_pagination,
    normalize_patient,
)

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = 'auth_token'


def _error_message(response, fallback: str) -> str:
    """Pull the most useful message out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if not isinstance(body, dict):
        return fallback

    message = body.get('message') or fallback
    errors = body.get('errors')
    if isinstance(errors, list) and errors:
        details = ', '.join(
            f"{e.get('field')}: {e.get('message')}" for e in errors if isinstance(e, dict)
        )
        message = f"Validation failed: {details}"
    return message


def _clean_params(params: dict) -> dict:
    return {k: v for k, v in params.items() if v not in (None, '')}


class HospitalApiClient:
    """Thin requests-based wrapper around the hospital REST API."""

    def __init__(self, base_url: str, token: str = None, timeout: int = 15, session=None):
        self.base_url = base_url.rstrip('/')
        self.token = token or None
        self.timeout = timeout
        self.session = session or requests.Session()

    # ── Transport ─────────────────────────────────────────────────────────────

    def _headers(self) -> dict:
        headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, params: dict = None,
                 payload: dict = None, action: str = 'call the hospital service') -> dict:
        """
        Perform one API call and return the envelope's `data` block.

        Raises ApiError on transport failures, non-2xx responses, undecodable
        bodies and envelopes with success=false.
        """
        url = f"{self.base_url}{path}"
        logger.debug('API %s %s params=%s', method, url, params)
        try:
            response = self.session.request(
                method,
                url,
                params=_clean_params(params or {}),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning('API %s %s failed: %s', method, path, exc)
            raise ApiError(f"Could not {action}. Please check your connection and try again.") from exc

        if not response.ok:
            message = _error_message(response, f"Failed to {action}: {response.reason}")
            logger.warning('API %s %s returned %s: %s', method, path, response.status_code, message)
            error_cls = ApiAuthError if response.status_code in (401, 403) else ApiError
            raise error_cls(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise ApiError(f"Failed to {action}: unreadable response.",
                           status_code=response.status_code) from exc

        if not isinstance(body, dict) or not body.get('success', False):
            message = body.get('message') if isinstance(body, dict) else None
            raise ApiError(message or f"Failed to {action}.", status_code=response.status_code)

        return body.get('data') or {}

    # ── Collections ───────────────────────────────────────────────────────────

    def fetch_hospitals(self, type=None, speciality=None, page=None, limit=None):
        """Returns (hospitals, pagination)."""
        data = self._request('GET', '/api/hospitals', params={
            'type': type,
            'speciality': speciality,
            'page': page,
            'limit': limit,
        }, action='fetch hospitals')
        hospitals = [normalize_hospital(h) for h in data.get('hospitals') or []]
        return hospitals, normalize_pagination(data.get('pagination'), len(hospitals))

    def fetch_departments(self, hospital_id, page=None, limit=None):
        """Returns (departments, pagination). Each department embeds its services."""
        data = self._request('GET', '/api/departments', params={
            'hospitalId': hospital_id,
            'page': page,
            'limit': limit,
        }, action='fetch departments')
        departments = [normalize_department(d) for d in data.get('departments') or []]
        return departments, normalize_pagination(data.get('pagination'), len(departments))

    def fetch_doctors(self, department_id, hospital_id, department_slug='',
                      specialization=None, page=None, limit=None):
        """Returns (doctors, pagination)."""
        data = self._request('GET', '/api/doctors', params={
            'departmentSlug': department_slug,
            'departmentId': department_id,
            'hospitalId': hospital_id,
            'specialization': specialization,
            'page': page,
            'limit': limit,
        }, action='fetch doctors')
        doctors = [normalize_doctor(d) for d in data.get('doctors') or []]
        return doctors, normalize_pagination(data.get('pagination'), len(doctors))

    # ── Patient ───────────────────────────────────────────────────────────────

    def fetch_current_patient(self) -> dict:
        data = self._request('GET', '/api/patients/me', action='fetch patient information')
        patient = data.get('patient')
        if not patient:
            raise ApiError('Failed to load patient information.')
        return normalize_patient(patient)

    # ── Writes ────────────────────────────────────────────────────────────────

    def create_appointment(self, patient_id, doctor_id, hospital_id, department_id,
                           service_id, date, time, reason, notes='',
                           has_insurance=True, payment_method='card') -> str:
        """Create an appointment and return its id."""
        data = self._request('POST', '/api/appointments', payload={
            'patientId': patient_id,
            'doctorId': doctor_id,
            'hospitalId': hospital_id,
            'departmentId': department_id,
            'serviceId': service_id,
            'date': date,
            'time': time,
            'reason': reason,
            'notes': notes,
            'hasInsurance': has_insurance,
            'paymentMethod': payment_method,
        }, action='create appointment')
        return str(data.get('_id') or data.get('id') or '')

    def create_payment(self, appointment_id, patient_id, amount, method) -> str:
        """Create a payment for an appointment and return its id."""
        data = self._request('POST', '/api/payments', payload={
            'appointmentId': appointment_id,
            'patientId': patient_id,
            'amount': amount,
            'method': method,
        }, action='create payment')
        return str(data.get('_id') or data.get('id') or '')


def get_api_client(request=None) -> HospitalApiClient:
    """
    Build a client for the current visitor.
    The bearer token is whatever the auth layer left in the session,
    falling back to the service token from settings.
    """
    token = None
    if request is not None and hasattr(request, 'session'):
        token = request.session.get(SESSION_TOKEN_KEY)
    return HospitalApiClient(
        base_url=settings.HOSPITAL_API_BASE_URL,
        token=token or settings.HOSPITAL_API_TOKEN,
        timeout=settings.HOSPITAL_API_TIMEOUT,
    )
