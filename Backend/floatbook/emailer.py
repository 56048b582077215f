import logging
from typing import Sequence, Union

import httpx

from .core.config import get_settings

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"


async def send_email(
    to_email: Union[str, Sequence[str]],
    subject: str,
    html: str,
) -> bool:
    """Send an HTML email through Resend. Returns False when email isn't configured."""
    settings = get_settings()
    if not settings.email_configured:
        logger.warning("Resend is not configured; skipping email send.")
        return False

    recipients = [to_email] if isinstance(to_email, str) else list(to_email)
    payload = {
        "from": settings.resend_from,
        "to": recipients,
        "subject": subject,
        "html": html,
    }

    headers = {
        "Authorization": f"Bearer {settings.resend_api_key}",
        "Content-Type": "application/json",
    }

    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(RESEND_EMAILS_URL, json=payload, headers=headers)
        response.raise_for_status()
    return True
