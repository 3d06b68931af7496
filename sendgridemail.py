import html
import logging

import sendgrid
from python_http_client.exceptions import HTTPError
from sendgrid.helpers.mail import Mail

import secretmanager
from config import Settings
from domain.content import Message

logger = logging.getLogger('uvicorn.error')


def build_message_notification(message: Message, settings: Settings) -> Mail:
    body = html.escape(message.message).replace("\n", "<br>")
    return Mail(
        from_email=settings.notification_from_email,
        to_emails=settings.notification_to_email,
        subject=f"New message from {message.name}",
        html_content=(
            f"<strong>{html.escape(message.name)}</strong> "
            f"&lt;{html.escape(message.email)}&gt; wrote:<p>{body}</p>"
        ),
    )


def send_message_notification(message: Message, settings: Settings) -> None:
    """Mail the site owner about a new contact message. Runs as a background task."""
    if not settings.notifications_enabled:
        return
    mail = build_message_notification(message, settings)
    try:
        sg = sendgrid.SendGridAPIClient(secretmanager.get_secret(settings.sendgrid_api_key_secret))
        response = sg.send(mail)
        logger.info(f"Notification for message {message.id} sent, status {response.status_code}")
    except HTTPError as e:
        logger.error(f"SendGrid rejected notification for message {message.id}: {e}")
