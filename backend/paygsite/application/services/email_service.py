import logging
from dataclasses import dataclass

import httpx

from paygsite.core.config import is_resend_configured, settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class SentEmail:
    provider_message_id: str


async def send_email(
    *,
    to: str | list[str],
    subject: str,
    html: str,
    text: str | None = None,
    reply_to: str | None = None,
) -> SentEmail | None:
    """Send through the Resend HTTP API; returns None when Resend is not configured."""
    if not is_resend_configured():
        logger.warning("email_not_configured subject=%s", subject)
        return None

    body: dict[str, object] = {
        "from": settings.email_from,
        "to": to if isinstance(to, list) else [to],
        "subject": subject,
        "html": html,
    }
    if text:
        body["text"] = text
    if reply_to:
        body["reply_to"] = reply_to

    try:
        async with httpx.AsyncClient(timeout=settings.resend_timeout_seconds) as client:
            response = await client.post(
                f"{settings.resend_base_url.rstrip('/')}/emails",
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
                json=body,
            )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"Resend request failed: {exc}") from exc

    if response.status_code >= 400:
        raise EmailDeliveryError(f"Resend API error {response.status_code}: {response.text[:500]}")

    try:
        data = response.json()
    except ValueError:
        logger.warning("email_sent_unparsed_response status=%s", response.status_code)
        data = {}
    message_id = str((data if isinstance(data, dict) else {}).get("id") or "unknown")
    logger.info("email_sent subject=%s provider_message_id=%s", subject, message_id)
    return SentEmail(provider_message_id=message_id)
