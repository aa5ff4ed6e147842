"""Reply-eligibility rules applied to a parsed message."""

from __future__ import annotations

import logging

from src.models import EligibilityDecision, ParsedMessage, RejectionReason

logger = logging.getLogger(__name__)


def evaluate(parsed: ParsedMessage | None, self_id: str) -> EligibilityDecision:
    """Apply the eligibility rules in priority order, stopping at the first failure.

    1. invalid event (nothing parsed)
    2. no text
    3. attachments present
    4. sent by our own account (echo prevention)
    """
    if parsed is None:
        reason = RejectionReason.INVALID_EVENT
    elif parsed.message_text is None:
        reason = RejectionReason.NO_TEXT
    elif parsed.has_attachments:
        reason = RejectionReason.HAS_ATTACHMENTS
    elif parsed.sender_id == self_id:
        reason = RejectionReason.OWN_MESSAGE
    else:
        logger.debug(
            "Message passed all filters message_id=%s sender_id=%s",
            parsed.message_id, parsed.sender_id,
        )
        return EligibilityDecision(accepted=True)

    logger.debug(
        "Filtering message: %s message_id=%s sender_id=%s",
        reason.value,
        parsed.message_id if parsed else None,
        parsed.sender_id if parsed else None,
    )
    return EligibilityDecision(accepted=False, reason=reason)


def should_reply(parsed: ParsedMessage | None, self_id: str) -> bool:
    return evaluate(parsed, self_id).accepted
