"""Reply delivery through the Instagram send-message API.

Retry policy: a connectivity failure (timeout, connection error, no response)
is retried once, immediately. Any response that did arrive, 4xx or
otherwise, is final.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from src.models import DeliveryOutcome

logger = logging.getLogger(__name__)

_MAX_RETRIES = 1
_MAX_ERROR_TEXT = 500


class DeliveryClient:
    """Sends a text reply to a recipient and reports a DeliveryOutcome."""

    def __init__(
        self,
        access_token: str,
        api_base: str,
        timeout: float = 5.0,
        max_retries: int = _MAX_RETRIES,
    ) -> None:
        self._access_token = access_token
        self._url = f"{api_base.rstrip('/')}/me/messages"
        self._timeout = timeout
        self._max_retries = max_retries

    async def send(self, recipient_id: str, text: str) -> DeliveryOutcome:
        payload = {
            "recipient": {"id": recipient_id},
            "message": {"text": text},
        }
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        max_attempts = self._max_retries + 1
        last_error = "Max retries exceeded"

        async with httpx.AsyncClient(verify=True) as client:
            for attempt in range(1, max_attempts + 1):
                logger.debug(
                    "Sending message recipient_id=%s attempt=%d/%d",
                    recipient_id, attempt, max_attempts,
                )
                try:
                    resp = await client.post(
                        self._url, json=payload, headers=headers, timeout=self._timeout,
                    )
                except httpx.TransportError as exc:
                    last_error = str(exc) or type(exc).__name__
                    logger.error(
                        "Instagram API connectivity error recipient_id=%s attempt=%d: %s",
                        recipient_id, attempt, last_error,
                    )
                    if attempt < max_attempts:
                        logger.debug("Retrying Instagram API call after connectivity error")
                    continue
                except Exception as exc:
                    logger.error(
                        "Unexpected error sending message recipient_id=%s",
                        recipient_id, exc_info=True,
                    )
                    return DeliveryOutcome(
                        delivered=False, error_description=str(exc), attempts=attempt,
                    )

                if resp.status_code < 300:
                    message_id = self._external_id(resp)
                    logger.info(
                        "Message sent recipient_id=%s message_id=%s",
                        recipient_id, message_id,
                    )
                    return DeliveryOutcome(
                        delivered=True, external_message_id=message_id, attempts=attempt,
                    )

                error = self._error_description(resp)
                logger.error(
                    "Instagram API error recipient_id=%s attempt=%d status=%d: %s",
                    recipient_id, attempt, resp.status_code, error,
                )
                return DeliveryOutcome(
                    delivered=False, error_description=error, attempts=attempt,
                )

        return DeliveryOutcome(
            delivered=False, error_description=last_error, attempts=max_attempts,
        )

    @staticmethod
    def _external_id(resp: httpx.Response) -> str | None:
        try:
            data: Any = resp.json()
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        message_id = data.get("message_id") or data.get("id")
        return str(message_id) if message_id is not None else None

    @staticmethod
    def _error_description(resp: httpx.Response) -> str:
        fallback = f"HTTP {resp.status_code} {resp.reason_phrase}".strip()
        try:
            data = resp.json()
        except json.JSONDecodeError:
            return resp.text[:_MAX_ERROR_TEXT] or fallback
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return fallback
