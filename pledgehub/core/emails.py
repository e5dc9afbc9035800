"""
Transactional email.

Mail is a side effect of business operations: a delivery failure is logged
and reported through the return value, never raised into the caller's
database transaction.
"""
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


class EmailService:
    """Renders plain-text templates and sends them through the configured backend."""

    def __init__(self):
        self.from_email = getattr(settings, 'DEFAULT_FROM_EMAIL', 'no-reply@pledgehub.test')

    def send(self, recipients, subject, template, context=None):
        """
        Send one message.

        Args:
            recipients: an address or a list of addresses
            subject: message subject
            template: template name, rendered with ``context``
            context: template context

        Returns:
            bool: True when the backend accepted the message
        """
        if isinstance(recipients, str):
            recipients = [recipients]
        recipients = [address for address in recipients if address]
        if not recipients:
            logger.warning(f'Email "{subject}" skipped: no recipients')
            return False

        context = dict(context or {})
        context.setdefault('app_url', getattr(settings, 'APP_URL', ''))

        try:
            body = render_to_string(template, context)
            send_mail(subject, body, self.from_email, recipients, fail_silently=False)
        except Exception:
            logger.exception(f'Failed to send email "{subject}" to {", ".join(recipients)}')
            return False

        logger.info(f'Email "{subject}" sent to {", ".join(recipients)}')
        return True


email_service = EmailService()
