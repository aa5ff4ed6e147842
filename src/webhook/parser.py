"""Instagram webhook envelope parser.

Instagram delivers the same logical DM event in two envelope shapes:

- ``entry[0].messaging[0]`` (older Messenger-style format), which may carry
  either a ``message`` or a ``message_edit`` object;
- ``entry[0].changes[0].value`` (field-change notification format).

Both are normalized into a single ``ParsedMessage``. Anything else,
including read/delivery receipts and postbacks, is an invalid result rather
than an error. ``parse_event`` never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from src.models import EnvelopeShape, ParsedMessage, ParseResult

logger = logging.getLogger(__name__)

_NON_MESSAGE_EVENTS = ("read", "delivery", "postback")


def _non_empty_list(value: object) -> bool:
    return isinstance(value, list) and len(value) > 0


def classify_entry(entry: Mapping[str, Any]) -> EnvelopeShape:
    """Resolve which envelope shape an entry uses (messaging wins)."""
    if _non_empty_list(entry.get("messaging")):
        return EnvelopeShape.MESSAGING
    if _non_empty_list(entry.get("changes")):
        return EnvelopeShape.CHANGES
    return EnvelopeShape.UNRECOGNIZED


def _invalid(shape: EnvelopeShape, reason: str) -> ParseResult:
    return ParseResult(shape=shape, reason=reason)


def _extract_messaging(
    entry: Mapping[str, Any],
) -> tuple[dict[str, Any] | None, Any, Any, str | None]:
    """Return (message, sender_id, timestamp, reason) for shape A."""
    event = entry["messaging"][0]

    if event.get("message"):
        message = event["message"]
    elif event.get("message_edit"):
        edit = event["message_edit"]
        message = {
            "mid": edit.get("mid"),
            "text": edit.get("text"),
            "attachments": edit.get("attachments"),
        }
        logger.debug(
            "Processing edited message mid=%s entry=%s", edit.get("mid"), entry.get("id"),
        )
    else:
        event_type = next(
            (name for name in _NON_MESSAGE_EVENTS if event.get(name)), "unknown",
        )
        logger.debug("Ignoring non-message event: %s", event_type)
        return None, None, None, f"non_message_event:{event_type}"

    sender_id = (event.get("sender") or {}).get("id")
    return message, sender_id, event.get("timestamp"), None


def _extract_change(
    entry: Mapping[str, Any],
) -> tuple[dict[str, Any] | None, Any, Any, str | None]:
    """Return (message, sender_id, timestamp, reason) for shape B."""
    change = entry["changes"][0]
    field = change.get("field")
    value = change.get("value")
    if field != "messages" or not value:
        logger.debug("Ignoring non-message change: %s", field)
        return None, None, None, f"non_message_change:{field}"

    sender_id = (value.get("sender") or {}).get("id")
    return value.get("message"), sender_id, value.get("timestamp"), None


_EXTRACTORS = {
    EnvelopeShape.MESSAGING: _extract_messaging,
    EnvelopeShape.CHANGES: _extract_change,
}


def _as_id(value: object) -> str | None:
    # Graph API ids are strings, but some test tools send integers.
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        return str(value) or None
    return None


def _as_timestamp(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def parse_event(raw: object) -> ParseResult:
    """Normalize a raw webhook payload into a ParseResult.

    Only the first entry of a batch is examined.
    """
    shape = EnvelopeShape.UNRECOGNIZED
    try:
        if not isinstance(raw, Mapping):
            return _invalid(shape, "not_an_object")
        entries = raw.get("entry")
        if not _non_empty_list(entries):
            return _invalid(shape, "no_entries")
        if len(entries) > 1:
            logger.debug("Ignoring %d additional batched entries", len(entries) - 1)

        entry = entries[0]
        if not isinstance(entry, Mapping):
            return _invalid(shape, "malformed_entry")

        shape = classify_entry(entry)
        extractor = _EXTRACTORS.get(shape)
        if extractor is None:
            return _invalid(shape, "unrecognized_shape")

        message, sender, timestamp, reason = extractor(entry)
        if reason is not None:
            return _invalid(shape, reason)

        sender_id = _as_id(sender)
        if not sender_id or not isinstance(message, Mapping):
            return _invalid(shape, "missing_sender_or_message")
        message_id = _as_id(message.get("mid"))
        if not message_id:
            return _invalid(shape, "missing_message_id")

        text = message.get("text")
        parsed = ParsedMessage(
            sender_id=sender_id,
            message_text=text if isinstance(text, str) and text else None,
            has_attachments=_non_empty_list(message.get("attachments")),
            timestamp=_as_timestamp(timestamp),
            message_id=message_id,
        )
        return ParseResult(message=parsed, shape=shape)
    except Exception:  # malformed payloads must never reach the caller
        logger.error("Error parsing webhook event", exc_info=True)
        return _invalid(shape, "parse_error")
