"""
Email service using Resend.

Used for absent-student alerts and the staff/admin email broadcast.
"""

import asyncio
import logging
from html import escape
from typing import Optional

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """
    Send an email using Resend.

    Returns True when the email was handed to Resend (or logged because no
    API key is configured), False when sending failed. Never raises.
    """
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    resend.api_key = settings.resend_api_key
    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def absence_alert_html(student_name: str, roll_number: Optional[str], date_str: str, remarks: Optional[str]) -> str:
    safe_name = escape(student_name)
    remarks_html = f"<p><strong>Remarks:</strong> {escape(remarks)}</p>" if remarks else ""
    return f"""
    <h2>Attendance Alert - {safe_name}</h2>
    <p>Dear Parent,</p>
    <p>Your child <strong>{safe_name}</strong> (Roll No: {escape(roll_number or '-')}) was marked <strong>ABSENT</strong> on {escape(date_str)}.</p>
    {remarks_html}
    <p>If you have any concerns, please contact the school administration.</p>
    <br>
    <p>Best regards,<br>College Administration</p>
    """


async def send_absence_alert(
    parent_email: str,
    student_name: str,
    roll_number: Optional[str],
    date_str: str,
    remarks: Optional[str] = None,
) -> bool:
    """Tell a parent their child was marked absent."""
    return await send_email(
        to_email=parent_email,
        subject=f"Attendance Alert - {student_name} - {date_str}",
        html_content=absence_alert_html(student_name, roll_number, date_str, remarks),
    )


def broadcast_html(subject: str, content: str, sender_name: str, student_name: Optional[str] = None) -> str:
    """HTML body for emails composed in the messaging screen."""
    greeting = f"Dear Parent of {escape(student_name)}," if student_name else "Dear Student,"
    body = escape(content).replace("\n", "<br>")
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #1a365d;">{escape(subject)}</h2>
        <p>{greeting}</p>
        <div style="background-color: #f9fafb; padding: 16px; border-radius: 8px;">{body}</div>
        <p style="color: #6b7280; font-size: 14px;">Sent by {escape(sender_name)} via College Attendance System</p>
    </div>
    """
