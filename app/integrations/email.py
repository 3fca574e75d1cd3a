"""
Resend email integration (plain HTML, no templates).
"""

import logging

from app.config import settings
from app.integrations import http_client as http_module

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


async def send_email(to: str, subject: str, html: str) -> bool:
    """Send one message. Returns False instead of raising when mail is unconfigured or fails."""
    if not settings.resend_api_key:
        logger.warning("[EMAIL] RESEND_API_KEY not set. Skipping email.")
        return False

    try:
        await http_module.request_json(
            "resend",
            "POST",
            RESEND_URL,
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            json_body={
                "from": settings.noreply_email,
                "to": [to],
                "subject": subject,
                "html": html,
            },
        )
        logger.info(f"[EMAIL] Sent '{subject}' to {to}")
        return True
    except Exception as e:
        logger.error(f"[EMAIL] Failed to send '{subject}' to {to}: {e}")
        return False
