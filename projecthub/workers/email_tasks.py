"""
Email background tasks.

Organization/project invitation emails and the welcome email, all sent
through Resend. `deliver_email` is also called directly for messages whose
delivery must succeed before the request returns (verification codes).
"""

import logging

import resend

from projecthub.core.config import settings
from projecthub.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def deliver_email(to_email: str, subject: str, html: str) -> str:
    """
    Send one email via Resend and return the provider message id.

    Raises whatever the Resend client raises; callers decide whether that
    is fatal.
    """
    resend.api_key = settings.RESEND_API_KEY

    params: resend.Emails.SendParams = {
        "from": settings.EMAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html,
    }

    response = resend.Emails.send(params)
    return response["id"]


def _button(url: str, label: str) -> str:
    return f"""
        <p>
            <a href="{url}"
               style="background:#3b82f6;color:#fff;padding:12px 24px;
                      border-radius:6px;text-decoration:none;display:inline-block;">
                {label}
            </a>
        </p>
    """


@celery_app.task(name="projecthub.workers.email_tasks.send_invitation_email", bind=True, max_retries=3)
def send_invitation_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    org_name: str,
    inviter_name: str,
    role: str,
    invitation_id: str,
    frontend_url: str,
) -> dict[str, str]:
    """
    Send an organization invitation email.

    Args:
        to_email: Recipient email address.
        org_name: Organization display name.
        inviter_name: Display name of the person who sent the invite.
        role: Role being offered (ORG_ADMIN/ORG_MEMBER).
        invitation_id: Invitation id, used as the accept token in the link.
        frontend_url: Frontend base URL for constructing the accept link.

    Returns:
        Dict with status and message_id.
    """
    try:
        accept_url = f"{frontend_url}/invitations/accept?token={invitation_id}"
        message_id = deliver_email(
            to_email,
            f"You've been invited to join {org_name} on ProjectHub",
            f"""
                <h2>You've been invited to ProjectHub</h2>
                <p><strong>{inviter_name}</strong> has invited you to join
                <strong>{org_name}</strong> as <strong>{role}</strong>.</p>
                {_button(accept_url, "Accept Invitation")}
                <p>This invitation expires in {settings.INVITATION_EXPIRY_DAYS} days.</p>
                <p>If you did not expect this invitation, you can safely ignore this email.</p>
            """,
        )
        return {"status": "sent", "message_id": message_id}

    except Exception as exc:
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))


@celery_app.task(name="projecthub.workers.email_tasks.send_project_invitation_email", bind=True, max_retries=3)
def send_project_invitation_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    project_name: str,
    project_key: str,
    inviter_name: str,
    role: str,
    frontend_url: str,
) -> dict[str, str]:
    """Send a project invitation email pointing the invitee at their inbox."""
    try:
        inbox_url = f"{frontend_url}/inbox"
        message_id = deliver_email(
            to_email,
            f"You've been invited to {project_name} ({project_key})",
            f"""
                <h2>New project invitation</h2>
                <p><strong>{inviter_name}</strong> has invited you to the project
                <strong>{project_name}</strong> as <strong>{role}</strong>.</p>
                {_button(inbox_url, "View Invitation")}
                <p>This invitation expires in {settings.INVITATION_EXPIRY_DAYS} days.</p>
            """,
        )
        return {"status": "sent", "message_id": message_id}

    except Exception as exc:
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))


@celery_app.task(name="projecthub.workers.email_tasks.send_welcome_email", bind=True, max_retries=3)
def send_welcome_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    display_name: str,
    workspace_name: str,
    frontend_url: str,
) -> dict[str, str]:
    """Send the first sign-in welcome email."""
    try:
        message_id = deliver_email(
            to_email,
            "Welcome to ProjectHub",
            f"""
                <h2>Welcome, {display_name}!</h2>
                <p>Your workspace <strong>{workspace_name}</strong> is ready.</p>
                {_button(frontend_url, "Open ProjectHub")}
            """,
        )
        return {"status": "sent", "message_id": message_id}

    except Exception as exc:
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))


def render_otp_email(code: str) -> tuple[str, str]:
    """Subject and body for a verification code email."""
    return (
        "Your ProjectHub verification code",
        f"""
            <h2>Email Verification</h2>
            <p>Your verification code is:</p>
            <h1 style="letter-spacing:5px;">{code}</h1>
            <p>This code will expire in {settings.OTP_EXPIRE_MINUTES} minutes.</p>
            <p>If you didn't request this code, please ignore this email.</p>
        """,
    )
