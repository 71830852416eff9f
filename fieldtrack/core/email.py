import logging

import httpx

from fieldtrack.core.config import settings

logger = logging.getLogger(__name__)

EMAILJS_URL = "https://api.emailjs.com/api/v1.0/email/send"


def _configured() -> bool:
    return all((
        settings.EMAILJS_SERVICE_ID,
        settings.EMAILJS_PUBLIC_KEY,
        settings.EMAILJS_TEMPLATE_ID,
        settings.EMAILJS_PRIVATE_KEY,
    ))


async def _send(to_email: str, template_params: dict):
    if not _configured():
        logger.info("EmailJS credentials not configured. Skipping email to %s", to_email)
        return

    payload = {
        "service_id": settings.EMAILJS_SERVICE_ID,
        "template_id": settings.EMAILJS_TEMPLATE_ID,
        "user_id": settings.EMAILJS_PUBLIC_KEY,
        "accessToken": settings.EMAILJS_PRIVATE_KEY,
        "template_params": {"to_email": to_email, **template_params},
    }

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(EMAILJS_URL, json=payload)
            response.raise_for_status()
        logger.info("Email sent to %s", to_email)
    except httpx.HTTPStatusError as e:
        logger.error("Failed to send email to %s. Status %s: %s",
                     to_email, e.response.status_code, e.response.text)
    except httpx.HTTPError as e:
        logger.error("Failed to send email to %s: %s", to_email, e)


async def send_supervisor_credentials(to_email: str, name: str, password: str):
    """Sends a promoted supervisor their temporary password."""
    await _send(to_email, {
        "to_name": name,
        "subject": "Your FieldTrack supervisor account",
        "password": password,
        "login_url": f"{settings.APP_BASE_URL}/login",
    })


async def send_learning_contract_link(to_email: str, name: str, site_name: str, token: str):
    """Sends the agency the link for completing its learning contract."""
    await _send(to_email, {
        "to_name": name or site_name,
        "subject": f"Learning contract for {site_name}",
        "site_name": site_name,
        "contract_url": f"{settings.APP_BASE_URL}/agency-learning-contract/{token}",
        "expires_in_days": settings.LEARNING_CONTRACT_TTL_DAYS,
    })
