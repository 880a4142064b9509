"""
Outbound Email

Sends transactional mail through the Resend HTTP API.
"""

import logging

import httpx

from byggportal.core.config import settings
from byggportal.core.errors import ExternalServiceError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


def build_invite_url(token: str) -> str:
    """Link the invitee follows to accept."""
    return f"{settings.app_url.rstrip('/')}/invite/{token}"


def render_invitation_text(
    project_name: str,
    inviter_name: str,
    role_name: str,
    invite_url: str,
) -> str:
    return (
        f"Du har bjudits in till {project_name}!\n\n"
        f"{inviter_name} har bjudit in dig att gå med i projektet {project_name} "
        f"som {role_name}.\n\n"
        "Klicka på länken nedan för att acceptera inbjudan:\n"
        f"{invite_url}\n\n"
        "Om du inte har ett konto kommer du att kunna skapa ett när du accepterar inbjudan.\n\n"
        f"Denna inbjudan gäller i {settings.invitation_valid_days} dagar.\n"
    )


def render_invitation_html(
    project_name: str,
    inviter_name: str,
    role_name: str,
    invite_url: str,
) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>Projektinbjudan</title></head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
    <h2>Du har bjudits in till ett projekt!</h2>
    <p><strong>{inviter_name}</strong> har bjudit in dig att gå med i projektet
    <strong>{project_name}</strong> som <strong>{role_name}</strong>.</p>
    <p><a href="{invite_url}">Acceptera inbjudan</a></p>
    <p style="color: #6b7280; font-size: 14px;">
      Om du inte har ett konto kommer du att kunna skapa ett när du accepterar inbjudan.
    </p>
    <p style="color: #9ca3af; font-size: 12px;">
      Om du inte förväntade dig denna inbjudan kan du ignorera detta e-postmeddelande.<br>
      Denna inbjudan gäller i {settings.invitation_valid_days} dagar.
    </p>
  </body>
</html>"""


async def send_invitation_email(
    to: str,
    token: str,
    project_name: str,
    inviter_name: str,
    role_name: str,
) -> str | None:
    """
    Send a project invitation email.

    Returns the provider's message id. Raises ExternalServiceError when the
    provider rejects the message or cannot be reached.
    """
    if not settings.resend_api_key:
        raise ServiceNotConfiguredError("E-posttjänsten är inte konfigurerad")

    invite_url = build_invite_url(token)
    payload = {
        "from": settings.email_from,
        "to": [to],
        "subject": f"Du har bjudits in till {project_name}",
        "html": render_invitation_html(project_name, inviter_name, role_name, invite_url),
        "text": render_invitation_text(project_name, inviter_name, role_name, invite_url),
    }

    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            response = await client.post(
                settings.resend_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            )
    except httpx.HTTPError as e:
        raise ExternalServiceError("Kunde inte skicka inbjudningsmail") from e

    if response.status_code >= 400:
        logger.error(
            f"Resend rejected invitation email to {to}: "
            f"{response.status_code} {response.text[:200]}"
        )
        raise ExternalServiceError("Kunde inte skicka inbjudningsmail")

    return response.json().get("id")
