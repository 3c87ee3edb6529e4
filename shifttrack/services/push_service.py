"""
Push delivery boundary.

Posts `{userId, title, body, data}` to an HTTP push gateway that owns the
device-level protocols. Raises on delivery failure; callers fanning out to
many users catch per recipient.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from shifttrack.core.settings import env_float, env_str

logger = logging.getLogger(__name__)


class PushDeliveryError(RuntimeError):
    pass


def send_to_user(
    user_id: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
    *,
    http_client: Optional[httpx.Client] = None,
) -> bool:
    gateway_url = env_str("PUSH_GATEWAY_URL", "")
    if not gateway_url:
        logger.debug("Push gateway not configured; skipping push", extra={"user_id": user_id})
        return False

    headers = {}
    token = env_str("PUSH_GATEWAY_TOKEN", "")
    if token:
        headers["Authorization"] = f"Bearer {token}"

    payload = {
        "userId": str(user_id),
        "title": title,
        "body": body,
        "data": data or {},
    }

    try:
        if http_client is not None:
            response = http_client.post(gateway_url, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=env_float("PUSH_GATEWAY_TIMEOUT_SECONDS", 10.0)) as client:
                response = client.post(gateway_url, json=payload, headers=headers)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise PushDeliveryError(f"Push to user {user_id} failed: {exc}") from exc

    return True
