"""
Customer and operator notifications.

Every function here is best effort: it is scheduled after the database
commit, never raises, and only logs failures. A booking or status change is
complete regardless of whether its email goes out.
"""

import logging
from typing import Optional

from .core.config import get_settings
from .emailer import send_email

logger = logging.getLogger(__name__)


def _wrap(title: str, body: str, accent: str = "#2c3e50") -> str:
    business_name = get_settings().business_name
    return f"""
    <div style="font-family: 'Segoe UI', Arial, sans-serif; max-width: 600px; margin: auto; border: 1px solid #eee; border-radius: 12px; overflow: hidden;">
        <div style="background-color: {accent}; padding: 24px; text-align: center; color: #ffffff;">
            <h2 style="margin: 0;">{title}</h2>
        </div>
        <div style="padding: 30px; color: #444; line-height: 1.6;">
            {body}
            <p>Best regards,<br/>The {business_name} Team</p>
        </div>
    </div>
    """


async def _deliver(kind: str, to_email, subject: str, html: str) -> bool:
    try:
        return await send_email(to_email, subject, html)
    except Exception as exc:
        logger.exception("Failed to send %s email: %s", kind, exc)
        return False


async def notify_booking_confirmation(appointment: dict) -> bool:
    """Tell the customer their session is scheduled."""
    business_name = get_settings().business_name
    body = f"""
        <p>Hi {appointment['name']},</p>
        <p>We've received your booking and look forward to seeing you.</p>
        <ul>
          <li><strong>Reservation ID:</strong> {appointment['reservationId']}</li>
          <li><strong>Date:</strong> {appointment['date']}</li>
          <li><strong>Time:</strong> {appointment['time']}</li>
          <li><strong>Status:</strong> Scheduled</li>
        </ul>
        <p>If you need to make any changes, please contact us with your Reservation ID.</p>
    """
    return await _deliver(
        "booking confirmation",
        appointment["email"],
        f"Your Session is Scheduled! - {business_name}",
        _wrap(business_name, body),
    )


async def notify_operators_new_booking(appointment: dict) -> bool:
    """Alert the configured operator inboxes about a new booking."""
    operators = get_settings().operator_emails_list
    if not operators:
        logger.info("No operator emails configured; skipping new booking alert.")
        return False

    body = f"""
        <p>A new appointment has been scheduled.</p>
        <ul>
          <li><strong>Customer:</strong> {appointment['name']}</li>
          <li><strong>Date/Time:</strong> {appointment['date']} at {appointment['time']}</li>
          <li><strong>Contact:</strong> {appointment['contactNumber']}</li>
          <li><strong>Reservation ID:</strong> {appointment['reservationId']}</li>
          <li><strong>Note:</strong> {appointment.get('specialNote') or 'No special notes provided.'}</li>
        </ul>
    """
    return await _deliver(
        "operator alert",
        operators,
        f"New Booking Alert: {appointment['name']}",
        _wrap("New Appointment", body, accent="#d35400"),
    )


STATUS_EMAILS = {
    "completed": ("Thank you for visiting {business}!", "Session Completed", "#27ae60"),
    "cancelled": ("Update regarding your appointment - {business}", "Appointment Cancelled", "#e74c3c"),
}


async def notify_appointment_status(appointment: dict) -> bool:
    """Email the customer when an appointment is completed or cancelled."""
    status = appointment["status"]
    template = STATUS_EMAILS.get(status)
    if template is None:
        return False

    business_name = get_settings().business_name
    subject, title, accent = template
    if status == "completed":
        body = f"""
            <p>Hi <strong>{appointment['name']}</strong>,</p>
            <p>Thank you for visiting {business_name}. Your session on <strong>{appointment['date']}</strong> is marked as completed.</p>
            <p>You can book your next session anytime through our website.</p>
        """
    else:
        body = f"""
            <p>Hi <strong>{appointment['name']}</strong>,</p>
            <p>Your appointment (ID: {appointment['reservationId']}) scheduled for <strong>{appointment['date']}</strong>
            at <strong>{appointment['time']}</strong> has been <strong>cancelled</strong>.</p>
            <p>If you did not request this cancellation, please contact us.</p>
        """
    return await _deliver(
        f"appointment {status}",
        appointment["email"],
        subject.format(business=business_name),
        _wrap(title, body, accent=accent),
    )


async def notify_activation_received(activation: dict) -> bool:
    business_name = get_settings().business_name
    body = f"""
        <p>Hi {activation['fullName']},</p>
        <p>We've received your request to activate <strong>{activation['packageName']}</strong>.
        Our team will contact you shortly to confirm it.</p>
    """
    return await _deliver(
        "activation received",
        activation["email"],
        f"Package Activation Request Received - {business_name}",
        _wrap(business_name, body),
    )


async def notify_activation_confirmed(activation: dict) -> bool:
    business_name = get_settings().business_name
    expiry: Optional[str] = activation.get("expiryDate")
    body = f"""
        <p>Hi {activation['fullName']},</p>
        <p>Your <strong>{activation['packageName']}</strong> package is now active with
        <strong>{activation['totalSessions']}</strong> sessions.</p>
        {f'<p>Valid until: <strong>{expiry[:10]}</strong></p>' if expiry else ''}
    """
    return await _deliver(
        "activation confirmed",
        activation["email"],
        f"Your Package is Active - {business_name}",
        _wrap("Package Confirmed", body, accent="#27ae60"),
    )
