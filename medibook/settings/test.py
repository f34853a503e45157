import os

os.environ.setdefault('SECRET_KEY', 'test-secret-key')

from .base import *  # noqa: E402

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

STORAGES['staticfiles'] = {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'}

HOSPITAL_API_BASE_URL = 'http://api.test'
HOSPITAL_API_TOKEN = ''
APPOINTMENT_PAYMENT_AMOUNT = 150
HOSPITALS_PER_PAGE = 2
TIME_ZONE = 'UTC'

# Let pytest's caplog see the app loggers
LOGGING['loggers']['apps']['propagate'] = True
