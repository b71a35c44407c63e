"""
Email Service using Resend

Handles sending emails for the admissions flow.
"""

import asyncio
import logging
import os
from html import escape

import resend

from admissions.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = os.getenv("RESEND_API_KEY")

EMAIL_FROM = os.getenv("EMAIL_FROM", "Admissions <noreply@admissions.local>")

_BASE_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #1a365d; margin-bottom: 24px; }
    .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
    .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(heading: str, body_html: str) -> str:
    """Wrap an e-mail body in the common layout. ``heading`` must already be escaped."""
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_BASE_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{heading}</h1>
            {body_html}
            <div class="footer">
                <p>School Admissions Office</p>
            </div>
        </div>
    </body>
    </html>
    """


def build_invite_url(token: str) -> str:
    """Parent-facing link for an enrollment invitation token."""
    return f"{settings.frontend_url}/enrollment/{token}"


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_enrollment_invitation(
    to_email: str,
    parent_name: str | None,
    candidate_name: str,
    academic_year: int,
    token: str,
) -> bool:
    """Send the enrollment wizard link to a parent."""
    safe_parent = escape(parent_name or "Parent or guardian")
    safe_candidate = escape(candidate_name)
    invite_url = build_invite_url(token)

    body = f"""
            <p>Hello {safe_parent},</p>

            <p>The enrollment of <strong>{safe_candidate}</strong> for the {academic_year} school year is open.
            Please fill in the student's details and upload the requested documents.</p>

            <a href="{invite_url}" class="button">Start enrollment</a>

            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #3b82f6;">{invite_url}</p>

            <div class="info-box">
                <p>Your progress is saved automatically. You can come back to this link at any time
                until you submit the enrollment for review.</p>
            </div>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Enrollment {academic_year}: {safe_candidate}",
        html_content=_render("Complete the Enrollment", body),
    )


async def send_staff_notification(
    to_email: str,
    title: str,
    message: str,
    link: str | None = None,
) -> bool:
    """Send an admissions notification to the staff inbox."""
    safe_title = escape(title)
    safe_message = escape(message)

    link_html = ""
    if link:
        url = f"{settings.frontend_url}{link}"
        link_html = f'<a href="{url}" class="button">Open enrollment</a>'

    body = f"""
            <p>{safe_message}</p>
            {link_html}
    """
    return await send_email(
        to_email=to_email,
        subject=f"[Admissions] {safe_title}",
        html_content=_render(safe_title, body),
    )


async def send_guardian_access(
    to_email: str,
    guardian_name: str | None,
    student_name: str,
    temp_password: str,
) -> bool:
    """Send guardian portal credentials after an enrollment is approved."""
    safe_guardian = escape(guardian_name or "Parent or guardian")
    safe_student = escape(student_name)
    safe_email = escape(to_email)
    safe_password = escape(temp_password)
    login_url = f"{settings.frontend_url}/login"

    body = f"""
            <p>Hello {safe_guardian},</p>

            <p>The enrollment of <strong>{safe_student}</strong> has been approved.
            You now have access to the guardian portal.</p>

            <div class="info-box">
                <p><strong>Login:</strong> {safe_email}</p>
                <p><strong>Temporary password:</strong> {safe_password}</p>
            </div>

            <a href="{login_url}" class="button">Sign in</a>

            <p><strong>You will be asked to change this password on first login.</strong></p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Enrollment approved: {safe_student}",
        html_content=_render("Welcome to the Guardian Portal", body),
    )
