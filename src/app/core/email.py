"""
Email Service using Resend

Sends membership notices. Delivery is best-effort: failures are logged and
reported through the boolean return value, never raised.
"""

import asyncio
import logging
from html import escape

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_BASE_STYLE = """
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #4c1d95; margin-bottom: 24px; }
            .box { background-color: #f9fafb; border: 1px solid #e5e7eb; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .box p { margin: 8px 0; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_BASE_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>
            {body}
            <div class="footer">
                <p>{escape(settings.app_name)}</p>
            </div>
        </div>
    </body>
    </html>
    """


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


async def send_membership_approved(
    to_email: str,
    full_name: str,
    username: str,
    login_email: str,
    temp_password: str,
) -> bool:
    """Send the approval notice with the provisioned account's credentials."""
    login_url = f"{settings.frontend_url}/login"
    body = f"""
            <p>Hello {escape(full_name)},</p>
            <p>Your membership application has been approved. An account has been created for you:</p>
            <div class="box">
                <p><strong>Login URL:</strong> <a href="{login_url}">{login_url}</a></p>
                <p><strong>Username:</strong> {escape(username)}</p>
                <p><strong>Email:</strong> {escape(login_email)}</p>
                <p><strong>Temporary Password:</strong> <code>{escape(temp_password)}</code></p>
            </div>
            <p>You will be asked to change your password on first login.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Your membership application was approved",
        html_content=_render("Welcome to the community!", body),
    )


async def send_membership_rejected(
    to_email: str,
    full_name: str,
    reason: str,
) -> bool:
    """Send the rejection notice including the reviewer's reason."""
    body = f"""
            <p>Hello {escape(full_name)},</p>
            <p>Thank you for applying. We are unable to approve your membership application at this time.</p>
            <div class="box">
                <p><strong>Reason:</strong></p>
                <p>{escape(reason)}</p>
            </div>
            <p>If you think this is a mistake, please contact the community board.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Update on your membership application",
        html_content=_render("Membership application update", body),
    )
