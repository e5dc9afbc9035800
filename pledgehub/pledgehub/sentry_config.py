"""
Sentry integration for Django and Celery.

Configuration (environment):
    SENTRY_DSN                   - project DSN; Sentry stays off when empty
    DJANGO_ENV                   - environment name (production by default)
    APP_VERSION                  - release tag
    SENTRY_TRACES_SAMPLE_RATE    - performance sampling, 0.1 by default

Called at the end of settings.py.
"""
import logging
import os

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

# Exceptions that describe a client mistake, not a server fault
IGNORED_EXCEPTIONS = (
    'rest_framework.exceptions.ValidationError',
    'rest_framework.exceptions.PermissionDenied',
    'rest_framework.exceptions.NotAuthenticated',
    'django.http.Http404',
)


def init_sentry():
    """Initialise the Sentry SDK. Returns True when reporting is enabled."""
    sentry_dsn = os.environ.get('SENTRY_DSN', '')

    if not sentry_dsn:
        logger.info("Sentry: DSN not configured, skipping initialization")
        return False

    environment = os.environ.get('DJANGO_ENV', 'production')
    if os.environ.get('DEBUG', 'False').lower() in ('true', '1', 'yes'):
        environment = 'development'

    logging_integration = LoggingIntegration(
        level=logging.INFO,        # breadcrumbs
        event_level=logging.ERROR  # events
    )

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[
            DjangoIntegration(transaction_style='url'),
            CeleryIntegration(),
            logging_integration,
        ],
        environment=environment,
        release=os.environ.get('APP_VERSION', 'unknown'),
        traces_sample_rate=float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE', '0.1')),
        send_default_pii=False,
        before_send=before_send,
    )

    logger.info(f"Sentry: initialized for environment '{environment}'")
    return True


def before_send(event, hint):
    """Drop client errors and scrub credentials from request payloads."""
    if 'exc_info' in hint:
        exc_type = hint['exc_info'][0]
        qualified = f'{exc_type.__module__}.{exc_type.__name__}'
        if qualified in IGNORED_EXCEPTIONS:
            return None

    request = event.get('request') or {}
    data = request.get('data')
    if isinstance(data, dict):
        for key in ('password', 'temporary_password', 'token', 'refresh', 'access'):
            if key in data:
                data[key] = '[Filtered]'
    return event
