"""
WSGI config for the MediBook project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'medibook.settings.production')

application = get_wsgi_application()
