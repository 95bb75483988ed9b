"""
Email Service using Resend
Plain HTML bodies for appointment and leave events
"""

import logging
from html import escape
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def _wrap_html(title: str, body: str) -> str:
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h2 style=\"color: #0f766e;\">{escape(title)}</h2>"
        f"{body}"
        f"<p style=\"color: #64748b; font-size: 12px;\">MediQ OPD &middot; "
        f"<a href=\"{FRONTEND_URL}\">{FRONTEND_URL}</a></p>"
        "</div>"
    )


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email via Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html: HTML body
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send({"from": sender, "to": recipients, "subject": subject, "html": html})
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


async def send_appointment_cancelled_email(
    to: str, patient_name: str, doctor_name: str, booking_date: str, time_slot: str, reason: str
) -> dict:
    """Tell a patient their appointment was cancelled by the clinic"""
    body = (
        f"<p>Dear {escape(patient_name)},</p>"
        f"<p>Your appointment with Dr. {escape(doctor_name)} on <strong>{escape(booking_date)}</strong> "
        f"at <strong>{escape(time_slot)}</strong> has been cancelled.</p>"
        f"<p>Reason: {escape(reason)}</p>"
        "<p>Please book a new appointment at a convenient time. We apologize for the inconvenience.</p>"
    )
    return await send_email(
        to=to,
        subject="Appointment Cancelled - MediQ",
        html=_wrap_html("Appointment Cancelled", body),
    )


async def send_leave_decision_email(
    to: str, doctor_name: str, status: str, start_date: str, end_date: str, admin_comment: str = ""
) -> dict:
    """Tell a doctor their leave request was approved or rejected"""
    body = (
        f"<p>Dear Dr. {escape(doctor_name)},</p>"
        f"<p>Your leave request from <strong>{escape(start_date)}</strong> to "
        f"<strong>{escape(end_date)}</strong> has been <strong>{escape(status)}</strong>.</p>"
    )
    if admin_comment:
        body += f"<p>Comment: {escape(admin_comment)}</p>"
    return await send_email(
        to=to,
        subject=f"Leave Request {status.capitalize()} - MediQ",
        html=_wrap_html(f"Leave Request {status.capitalize()}", body),
    )


async def send_video_call_email(to: str, patient_name: str, doctor_name: str, meeting_url: str) -> dict:
    """Tell a patient the doctor is waiting in the video room"""
    body = (
        f"<p>Dear {escape(patient_name)},</p>"
        f"<p>Dr. {escape(doctor_name)} has joined your video consultation.</p>"
        f"<p><a href=\"{escape(meeting_url)}\">Join the consultation</a></p>"
    )
    return await send_email(
        to=to,
        subject="Your doctor is waiting - MediQ",
        html=_wrap_html("Video Consultation Started", body),
    )
