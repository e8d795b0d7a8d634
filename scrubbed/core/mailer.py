"""
Email adapter for the Scrubbed backend.

The default implementation uses SMTP, reading credentials from Settings.
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import smtplib
import ssl

from .config import get_settings

logger = logging.getLogger(__name__)


def send_email(subject: str, to_email: str, html_body: str, text_body: str | None = None) -> bool:
    """
    Send an email with the SMTP credentials from the environment.
    Returns False without sending when SMTP is not configured.
    """
    settings = get_settings()
    if not (
        settings.smtp_host
        and settings.smtp_user
        and settings.smtp_password
        and settings.smtp_from
        and settings.smtp_port
    ):
        logger.info("[email] SMTP not configured; skipping send.")
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from
    msg["To"] = to_email
    plain = text_body or html_body
    msg.attach(MIMEText(plain, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    port = settings.smtp_port or 465
    try:
        if port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(settings.smtp_host, port, context=context) as server:
                server.login(settings.smtp_user, settings.smtp_password)
                server.sendmail(settings.smtp_from, [to_email], msg.as_string())
        else:
            with smtplib.SMTP(settings.smtp_host, port) as server:
                server.ehlo()
                server.starttls(context=ssl.create_default_context())
                server.login(settings.smtp_user, settings.smtp_password)
                server.sendmail(settings.smtp_from, [to_email], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("[email] Failed to send to %s: %s", to_email, exc)
        return False


def send_welcome_email(to_email: str, display_name: str, user_type: str) -> bool:
    """First sign-in greeting; the next steps differ per role."""
    settings = get_settings()
    if user_type == "collector":
        steps = [
            "Complete your collector profile setup",
            "Browse available collection requests near you",
            "Start accepting jobs and earning money",
        ]
        pitch = "start earning money as a waste collector"
    else:
        steps = [
            "Create your first waste collection request",
            "Get matched with collectors in your area",
            "Track your collections in real time",
        ]
        pitch = "request waste collection services"
    items = "".join(f"<li>{step}</li>" for step in steps)
    html_body = f"""
    <h1>Welcome to Scrubbed!</h1>
    <p>Hi {display_name}!</p>
    <p>Your account is connected. You're now ready to {pitch}.</p>
    <ul>{items}</ul>
    <p><a href="{settings.public_base_url}">Get started now</a></p>
    """
    text_body = f"Hi {display_name}! Your Scrubbed account is ready: {settings.public_base_url}"
    return send_email("Welcome to Scrubbed", to_email, html_body, text_body)
