"""Transactional email through the Resend REST API."""
from html import escape
from typing import Optional

import httpx
import structlog

from justbecause.core.config import RESEND_API_KEY, RESEND_API_URL, FROM_EMAIL, FRONTEND_URL, APP_NAME

logger = structlog.get_logger()


async def send_email(to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
    """Send one email. Without an API key the message is only logged (development mode)."""
    if not to:
        logger.info("Email skipped (no recipient)", subject=subject)
        return False

    if not RESEND_API_KEY:
        logger.info("Email not sent (Resend not configured)", to=to, subject=subject)
        return True

    payload = {
        "from": FROM_EMAIL,
        "to": [to],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(
                f"{RESEND_API_URL}/emails",
                json=payload,
                headers={
                    "Authorization": f"Bearer {RESEND_API_KEY}",
                    "Content-Type": "application/json",
                },
            )
    except httpx.HTTPError as e:
        logger.warning("Email request failed", to=to, subject=subject, error=str(e))
        return False

    if response.status_code >= 400:
        logger.warning(
            "Resend rejected email",
            to=to,
            subject=subject,
            status_code=response.status_code,
            body=response.text[:500],
        )
        return False

    logger.info("Email sent", to=to, subject=subject)
    return True


# ==================== TEMPLATES ====================

def _layout(title: str, body: str, cta_label: str = None, cta_path: str = None) -> str:
    button = ""
    if cta_label and cta_path:
        button = (
            f'<p style="margin:24px 0"><a href="{FRONTEND_URL}{cta_path}" '
            f'style="background:#0f766e;color:#fff;padding:12px 20px;border-radius:6px;text-decoration:none">'
            f'{escape(cta_label)}</a></p>'
        )
    return (
        '<div style="font-family:Arial,sans-serif;max-width:560px;margin:0 auto;color:#111">'
        f'<h2 style="color:#0f766e">{escape(title)}</h2>'
        f'{body}{button}'
        f'<p style="color:#6b7280;font-size:12px">{escape(APP_NAME)}</p>'
        '</div>'
    )


def otp_email(code: str, purpose: str, minutes: int):
    action = "reset your password" if purpose == "reset_password" else "verify your email"
    html = _layout(
        "Your verification code",
        f"<p>Use this code to {action}:</p>"
        f'<p style="font-size:28px;letter-spacing:6px;font-weight:bold">{escape(code)}</p>'
        f"<p>It expires in {minutes} minutes. If you didn't request it, ignore this email.</p>",
    )
    return f"Your {APP_NAME} code: {code}", html, f"Your code is {code}. It expires in {minutes} minutes."


def welcome_email(name: str, role: str):
    next_step = "post your first project" if role == "ngo" else "find opportunities that match your skills"
    html = _layout(
        f"Welcome to {APP_NAME}, {name}!",
        f"<p>Your account is ready. Complete your profile and {next_step}.</p>",
        "Go to dashboard", f"/{role}/dashboard" if role in ("ngo", "volunteer") else "/",
    )
    return f"Welcome to {APP_NAME}", html, f"Hi {name}, welcome to {APP_NAME}!"


def new_opportunity_email(volunteer_name: str, project_title: str, ngo_name: str, project_id: str):
    html = _layout(
        "A new opportunity matches your skills",
        f"<p>Hi {escape(volunteer_name)},</p>"
        f"<p><strong>{escape(ngo_name)}</strong> just posted <strong>{escape(project_title)}</strong>, "
        "which matches your skills.</p>",
        "View opportunity", f"/projects/{project_id}",
    )
    return f"New opportunity: {project_title}", html, f"{ngo_name} posted {project_title}."


def new_application_email(ngo_name: str, volunteer_name: str, project_title: str):
    html = _layout(
        "New application received",
        f"<p>Hi {escape(ngo_name)},</p>"
        f"<p><strong>{escape(volunteer_name)}</strong> applied to <strong>{escape(project_title)}</strong>.</p>",
        "Review applications", "/ngo/applications",
    )
    return f"New application for {project_title}", html, f"{volunteer_name} applied to {project_title}."


def application_status_email(volunteer_name: str, project_title: str, status: str, notes: str = None):
    if status == "accepted":
        subject = f"Your application has been accepted on {APP_NAME}!"
    elif status == "shortlisted":
        subject = f"You've been shortlisted on {APP_NAME}!"
    else:
        subject = f"Application update on {APP_NAME}"
    body = (
        f"<p>Hi {escape(volunteer_name)},</p>"
        f"<p>Your application for <strong>{escape(project_title)}</strong> has been <strong>{escape(status)}</strong>.</p>"
    )
    if notes:
        body += f"<p>Note from the organization: {escape(notes)}</p>"
    html = _layout("Application update", body, "View applications", "/volunteer/applications")
    text = f"Hi {volunteer_name}, your application for \"{project_title}\" has been {status}. Log in for more details."
    return subject, html, text


def new_message_email(receiver_name: str, sender_name: str, preview: str):
    html = _layout(
        f"New message from {sender_name}",
        f"<p>Hi {escape(receiver_name)},</p><blockquote>{escape(preview)}</blockquote>",
        "Reply", "/messages",
    )
    return f"New message from {sender_name}", html, f"{sender_name}: {preview}"


def subscription_confirmation_email(name: str, plan_name: str, amount: float, currency_label: str, expiry: str):
    html = _layout(
        "Your Pro subscription is active",
        f"<p>Hi {escape(name)},</p>"
        f"<p>Thanks for upgrading to <strong>{escape(plan_name)}</strong>. "
        f"We received {escape(currency_label)}. Your plan renews or expires on {escape(expiry[:10])}.</p>",
        "Open dashboard", "/",
    )
    return f"{APP_NAME} Pro is active", html, f"Your {plan_name} subscription is active until {expiry[:10]}."


def new_follower_email(name: str, follower_name: str):
    html = _layout(
        "You have a new follower",
        f"<p>Hi {escape(name)},</p><p><strong>{escape(follower_name)}</strong> started following you.</p>",
    )
    return f"{follower_name} started following you", html, f"{follower_name} started following you."
