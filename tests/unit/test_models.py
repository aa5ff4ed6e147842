"""Tests for shared data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.models import (
    DeliveryOutcome,
    GenerationResult,
    ParsedMessage,
    ParseResult,
    RejectionReason,
)
from tests.conftest import make_parsed_message


class TestParsedMessage:
    def test_defaults(self) -> None:
        msg = ParsedMessage(sender_id="U1", message_id="m1")
        assert msg.message_text is None
        assert msg.has_attachments is False
        assert msg.timestamp is None

    @pytest.mark.parametrize("field", ["sender_id", "message_id"])
    def test_empty_identifiers_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError):
            make_parsed_message(**{field: ""})

    def test_missing_identifier_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ParsedMessage(sender_id="U1")  # type: ignore[call-arg]

    def test_frozen(self) -> None:
        msg = make_parsed_message()
        with pytest.raises(ValidationError):
            msg.message_text = "changed"  # type: ignore[misc]


def test_parse_result_ok() -> None:
    assert ParseResult(message=make_parsed_message()).ok is True
    assert ParseResult(reason="no_entries").ok is False


def test_generation_result_ok() -> None:
    assert GenerationResult(text="yo").ok is True
    assert GenerationResult(error="timeout").ok is False


def test_delivery_outcome_attempts_non_negative() -> None:
    with pytest.raises(ValidationError):
        DeliveryOutcome(delivered=False, attempts=-1)


def test_rejection_reasons_in_priority_order() -> None:
    assert [r.value for r in RejectionReason] == [
        "invalid_event", "no_text", "has_attachments", "own_message",
    ]
