"""
Async-safe email sender.

smtplib is blocking; every send is wrapped in asyncio.get_running_loop().run_in_executor
so that the FastAPI event loop is never blocked waiting for SMTP.
"""
import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from giftlists.core.config import settings

logger = logging.getLogger("giftlists.mailer")


class MailerNotConfigured(Exception):
    """SMTP is disabled or has no host; nothing was sent."""


def _render_html(title: str, content: str, button_text: str | None = None, button_link: str | None = None) -> str:
    # All user-supplied text (gift titles, reserver names) is escaped.
    safe_title = html.escape(title)
    safe_content = html.escape(content)

    button_html = ""
    if button_text and button_link:
        safe_button_text = html.escape(button_text)
        safe_button_link = button_link.replace('"', "&quot;").replace("'", "&#x27;")
        button_html = (
            '<p style="text-align: center; margin: 30px 0;">'
            f'<a href="{safe_button_link}" style="padding: 14px 28px; background-color: #6366f1; '
            f'color: #ffffff; text-decoration: none; border-radius: 8px;">{safe_button_text}</a>'
            "</p>"
        )

    return (
        "<!DOCTYPE html>"
        '<html><head><meta charset="UTF-8">'
        f"<title>{safe_title}</title></head>"
        '<body style="font-family: Arial, sans-serif; background-color: #f3f4f6;">'
        f'<h2 style="color: #1f2937;">{safe_title}</h2>'
        f'<p style="color: #4b5563; font-size: 16px;">{safe_content}</p>'
        f"{button_html}"
        '<p style="color: #9ca3af; font-size: 12px;">This is an automatic notification from Gift Lists.</p>'
        "</body></html>"
    )


def _build_message(to_email: str, subject: str, text_body: str, html_body: str) -> MIMEMultipart:
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.smtp_from_email
    message["To"] = to_email
    message.attach(MIMEText(text_body, "plain", "utf-8"))
    message.attach(MIMEText(html_body, "html", "utf-8"))
    return message


def _send_sync(message: MIMEMultipart) -> None:
    """Blocking SMTP send, must be run in an executor."""
    if settings.smtp_use_tls:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    else:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)


async def send_notification_email(
    to_email: str,
    subject: str,
    body: str,
    link: str | None = None,
) -> None:
    """
    Send a notification e-mail without blocking the event loop.

    Raises MailerNotConfigured when notifications are disabled or SMTP has no
    host, and lets smtplib errors propagate so the caller can keep the
    notification pending for a retry.
    """
    if not settings.email_notifications_enabled:
        logger.info("Email notifications disabled. Skipping email to %s: %s", to_email, subject)
        raise MailerNotConfigured("email notifications disabled")
    if not settings.smtp_configured:
        logger.info("SMTP not configured. Email for %s would be sent: %s", to_email, subject)
        raise MailerNotConfigured("smtp host not configured")

    text_body = body if not link else f"{body}\n\nOpen the list: {link}"
    html_body = _render_html(subject, body, button_text="Open the list" if link else None, button_link=link)
    message = _build_message(to_email, subject, text_body, html_body)

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _send_sync, message)
    logger.info("Email sent to %s subject=%r", to_email, subject)
