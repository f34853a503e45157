"""
URL configuration for the MediBook patient booking front end.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.urls import path, include

urlpatterns = [
    path('', include('apps.pages.urls', namespace='pages')),
    path('appointments/new/', include('apps.bookings.urls', namespace='bookings')),
]

# Custom Error Handlers
handler404 = 'apps.pages.views.error_404'
handler500 = 'apps.pages.views.error_500'
handler403 = 'apps.pages.views.error_403'

if settings.DEBUG:
    if 'debug_toolbar' in settings.INSTALLED_APPS:
        import debug_toolbar
        urlpatterns = [path('__debug__/', include(debug_toolbar.urls))] + urlpatterns
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
