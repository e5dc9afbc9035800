"""
Development settings - local work.
"""
from .settings import *  # noqa: F401,F403

DEBUG = True
ALLOWED_HOSTS = ['*']

# Tasks run inline, no broker required
CELERY_TASK_ALWAYS_EAGER = True

# Mail goes to the console
EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

LOGGING['root']['level'] = 'DEBUG'  # noqa: F405
