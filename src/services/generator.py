"""Reply generation via an OpenAI-compatible chat-completions API."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from src.models import GenerationResult

logger = logging.getLogger(__name__)

PERSONA_PROMPT = (
    "You are a casual 25-year-old Indian friend. Respond in 1-2 sentences "
    "maximum. Match the language of the input (English/Hindi/Hinglish). "
    "Be friendly and natural, don't reveal you're a bot. Avoid controversial, "
    "financial, and medical topics."
)

_DEFAULT_TEMPERATURE = 0.85
_DEFAULT_MAX_TOKENS = 75


class ReplyGenerator:
    """Turns an inbound message text into a short conversational reply."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 15.0,
        system_prompt: str = PERSONA_PROMPT,
        temperature: float = _DEFAULT_TEMPERATURE,
        max_tokens: int = _DEFAULT_MAX_TOKENS,
    ) -> None:
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._model = model
        self._timeout = timeout
        self._system_prompt = system_prompt
        self._temperature = temperature
        self._max_tokens = max_tokens

    def build_request(self, text: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": text},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }

    async def generate(self, text: str) -> GenerationResult:
        """Request a reply. Failures come back as a result, never raised."""
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        logger.debug("Generating AI response input_length=%d", len(text))

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self._url,
                    json=self.build_request(text),
                    headers=headers,
                    timeout=self._timeout,
                )
        except httpx.TimeoutException:
            logger.error("AI response timed out after %.1fs", self._timeout)
            return GenerationResult(error="timeout")
        except httpx.HTTPError as exc:
            logger.error("AI request failed: %s", exc)
            return GenerationResult(error=f"transport_error: {exc}")

        if resp.status_code >= 400:
            logger.error(
                "AI API returned status %d: %s", resp.status_code, resp.text[:500],
            )
            return GenerationResult(error=f"http_status_{resp.status_code}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError):
            logger.error("Malformed AI response body: %s", resp.text[:500])
            return GenerationResult(error="malformed_response")

        if not isinstance(content, str) or not content.strip():
            logger.error("AI response contained no text")
            return GenerationResult(error="empty_response")

        reply = content.strip()
        usage = data.get("usage")
        logger.debug(
            "AI response generated response_length=%d tokens_used=%s",
            len(reply), usage.get("total_tokens") if isinstance(usage, dict) else None,
        )
        return GenerationResult(text=reply)
