"""Shared test fixtures for dm-autoreply."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.audit.logger import AuditLogger
from src.config import Settings
from src.models import DeliveryOutcome, GenerationResult, ParsedMessage

BOT_ID = "17841400000000000"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> Settings:
    defaults: dict[str, Any] = {
        "instagram_access_token": "ig-token",
        "verify_token": "verify-me",
        "ai_api_key": "ai-key",
        "bot_account_id": BOT_ID,
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_parsed_message(**kwargs: Any) -> ParsedMessage:
    defaults: dict[str, Any] = {
        "sender_id": "U1",
        "message_text": "hi",
        "has_attachments": False,
        "timestamp": 1700000000000,
        "message_id": "mid.1",
    }
    defaults.update(kwargs)
    return ParsedMessage(**defaults)


def make_messaging_payload(
    sender_id: str | None = "U1",
    text: str | None = "hi",
    mid: str | None = "mid.1",
    attachments: list[dict[str, Any]] | None = None,
    timestamp: int = 1700000000000,
    edited: bool = False,
) -> dict[str, Any]:
    """Shape A: entry[].messaging[] with a message (or message_edit) object."""
    message: dict[str, Any] = {}
    if mid is not None:
        message["mid"] = mid
    if text is not None:
        message["text"] = text
    if attachments is not None:
        message["attachments"] = attachments
    event: dict[str, Any] = {
        "recipient": {"id": BOT_ID},
        "timestamp": timestamp,
        "message_edit" if edited else "message": message,
    }
    if sender_id is not None:
        event["sender"] = {"id": sender_id}
    return {
        "object": "instagram",
        "entry": [{"id": BOT_ID, "time": timestamp, "messaging": [event]}],
    }


def make_changes_payload(
    sender_id: str | None = "U1",
    text: str | None = "hi",
    mid: str | None = "mid.1",
    attachments: list[dict[str, Any]] | None = None,
    timestamp: str | None = "1700000000",
    field: str = "messages",
) -> dict[str, Any]:
    """Shape B: entry[].changes[] field-change notification."""
    message: dict[str, Any] = {}
    if mid is not None:
        message["mid"] = mid
    if text is not None:
        message["text"] = text
    if attachments is not None:
        message["attachments"] = attachments
    value: dict[str, Any] = {
        "recipient": {"id": BOT_ID},
        "message": message,
    }
    if sender_id is not None:
        value["sender"] = {"id": sender_id}
    if timestamp is not None:
        value["timestamp"] = timestamp
    return {
        "object": "instagram",
        "entry": [{"id": BOT_ID, "time": 1700000000, "changes": [{"field": field, "value": value}]}],
    }


def make_generator(text: str | None = "heyy whats up", error: str | None = None) -> MagicMock:
    generator = MagicMock()
    generator.generate = AsyncMock(return_value=GenerationResult(text=text, error=error))
    return generator


def make_delivery(outcome: DeliveryOutcome | None = None) -> MagicMock:
    delivery = MagicMock()
    delivery.send = AsyncMock(return_value=outcome or DeliveryOutcome(
        delivered=True, external_message_id="ig-mid-1", attempts=1,
    ))
    return delivery


def mock_async_client(client_cls: MagicMock, **post_kwargs: Any) -> AsyncMock:
    """Wire a patched httpx.AsyncClient class to an async-context-managed mock."""
    client = AsyncMock()
    for key, value in post_kwargs.items():
        setattr(client.post, key, value)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client_cls.return_value = client
    return client


def json_response(status_code: int, body: Any) -> httpx.Response:
    return httpx.Response(status_code, json=body)
