import logging
import smtplib
from datetime import datetime, timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.core.config import Settings

logger = logging.getLogger(__name__)


def _send_email_sync(settings: Settings, to_email: str, subject: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def build_booking_email_html(
    settings: Settings,
    recipient_name: str,
    service_name: str,
    body_part_name: str | None,
    slot_start_local: datetime,
    duration_minutes: int,
    status: str,
    preparation_text: str | None = None,
) -> str:
    """HTML body for the booking acknowledgement. slot_start_local is in clinic time."""
    date_str = slot_start_local.strftime("%A, %d %B %Y")
    end_local = slot_start_local + timedelta(minutes=duration_minutes)
    slot_display = f"{slot_start_local:%I:%M %p} – {end_local:%I:%M %p}"
    exam = _html_escape(service_name)
    if body_part_name:
        exam = f"{exam} ({_html_escape(body_part_name)})"
    if status == "confirmed":
        headline = "Appointment Confirmed"
        intro = "your appointment is confirmed."
    else:
        headline = "Appointment Request Received"
        intro = "we have received your booking and will confirm it shortly."
    preparation_section = ""
    if preparation_text:
        preparation_section = f"""
        <p style="margin:0 0 8px 0;color:#374151;"><strong>Before you arrive:</strong></p>
        <p style="margin:0 0 24px 0;color:#6b7280;font-size:14px;">{_html_escape(preparation_text)}</p>
        """
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{headline}</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;margin:40px auto;background:#ffffff;border-radius:12px;">
    <tr>
      <td style="padding:32px;">
        <h1 style="margin:0 0 8px 0;font-size:22px;color:#111827;">{headline}</h1>
        <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">Hi {recipient_name or 'there'}, {intro}</p>
        <p style="margin:0;font-size:12px;text-transform:uppercase;color:#6b7280;">Examination</p>
        <p style="margin:0 0 12px 0;font-size:16px;font-weight:600;color:#111827;">{exam}</p>
        <p style="margin:0;font-size:12px;text-transform:uppercase;color:#6b7280;">Date</p>
        <p style="margin:0 0 12px 0;font-size:16px;font-weight:600;color:#111827;">{date_str}</p>
        <p style="margin:0;font-size:12px;text-transform:uppercase;color:#6b7280;">Time</p>
        <p style="margin:0 0 24px 0;font-size:16px;font-weight:600;color:#111827;">{slot_display}</p>
        {preparation_section}
        <p style="margin:0;font-size:14px;color:#374151;">If you need to reschedule or cancel, please contact us.</p>
      </td>
    </tr>
    <tr>
      <td style="padding:24px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;">
        <p style="margin:0 0 4px 0;font-size:13px;font-weight:600;color:#111827;">{settings.site_name}</p>
        <p style="margin:0;font-size:13px;color:#6b7280;">
          {settings.contact_email} &nbsp;·&nbsp; {settings.contact_phone}<br>
          {settings.contact_address}
        </p>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_booking_email(
    settings: Settings,
    to_email: str,
    recipient_name: str | None,
    service_name: str,
    body_part_name: str | None,
    slot_start_local: datetime,
    duration_minutes: int,
    status: str,
    preparation_text: str | None = None,
) -> None:
    """Compose and send the booking acknowledgement (call from background task)."""
    subject = f"{settings.site_name} – Your {service_name} appointment"
    html = build_booking_email_html(
        settings,
        recipient_name=_html_escape(recipient_name or ""),
        service_name=service_name,
        body_part_name=body_part_name,
        slot_start_local=slot_start_local,
        duration_minutes=duration_minutes,
        status=status,
        preparation_text=preparation_text,
    )
    _send_email_sync(settings, to_email, subject, html)
