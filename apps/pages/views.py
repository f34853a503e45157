from django.shortcuts import render

from apps.bookings.session import get_booking_session
from apps.bookings.steps import STEP_DEFINITIONS


def home(request):
    """Landing page: how booking works, plus a way back into an unfinished booking."""
    booking = get_booking_session(request)
    return render(request, 'pages/home.html', {
        'steps': STEP_DEFINITIONS,
        'booking_in_progress': booking.chain_depth() > 0 and booking.confirmation is None,
        'hospital': booking.get('hospital'),
    })


# ── Error handlers ────────────────────────────────────────────────────────────

def error_404(request, exception):
    return render(request, 'pages/error.html', {
        'code': 404,
        'title': 'Page not found',
        'message': "We couldn't find the page you were looking for.",
    }, status=404)


def error_500(request):
    return render(request, 'pages/error.html', {
        'code': 500,
        'title': 'Something went wrong',
        'message': 'Please try again in a moment.',
    }, status=500)


def error_403(request, exception):
    return render(request, 'pages/error.html', {
        'code': 403,
        'title': 'Access denied',
        'message': "You don't have permission to view this page.",
    }, status=403)
