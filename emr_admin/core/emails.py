"""
Outbound email.

Messages go through Django's configured email backend (SendGrid SMTP relay in
production). Every message is sent as HTML with a plain-text alternative.
"""
import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.core.validators import validate_email
from django.template.loader import render_to_string
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the mail backend refuses or fails to deliver a message"""


def get_sender_address():
    """Sender configured in SaaS settings, falling back to DEFAULT_FROM_EMAIL"""
    from .models import Setting

    setting = Setting.objects.filter(key='email').first()
    if setting and isinstance(setting.value, dict):
        from_email = setting.value.get('from_email')
        from_name = setting.value.get('from_name')
        if from_email:
            return f"{from_name} <{from_email}>" if from_name else from_email
    return settings.DEFAULT_FROM_EMAIL


def render_email(template_name, context):
    return render_to_string(template_name, context)


def send_email(to, subject, html, text=None, reply_to=None):
    """
    Send an HTML email.

    Args:
        to: recipient address or list of addresses
        subject: subject line
        html: rendered HTML body
        text: plain-text body (derived from the HTML when omitted)
        reply_to: optional reply-to address

    Raises:
        EmailDeliveryError: when a recipient is invalid or the backend fails
    """
    recipients = [to] if isinstance(to, str) else list(to)
    if not recipients:
        raise EmailDeliveryError('No recipient given')
    for address in recipients:
        validate_email(address)

    message = EmailMultiAlternatives(
        subject=subject,
        body=text or strip_tags(html),
        from_email=get_sender_address(),
        to=recipients,
        reply_to=[reply_to] if reply_to else None,
    )
    message.attach_alternative(html, 'text/html')
    try:
        sent = message.send(fail_silently=False)
    except Exception as e:
        logger.error(f"Email delivery to {recipients} failed: {str(e)}")
        raise EmailDeliveryError(str(e)) from e

    if not sent:
        raise EmailDeliveryError('Mail backend did not accept the message')
    logger.info(f"Email '{subject}' sent to {recipients}")
    return True
