"""Message pipeline: parse -> filter -> generate -> deliver.

Each stage returns a result value instead of raising, so a run is a straight
sequence of result checks. One event's failure ends that event only; the
outer catch keeps anything unforeseen from reaching the dispatcher.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.audit.logger import event_from_report, write_event
from src.models import (
    DeliveryOutcome,
    PipelineReport,
    PipelineStage,
)
from src.webhook.eligibility import evaluate
from src.webhook.parser import parse_event

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.services.delivery import DeliveryClient
    from src.services.generator import ReplyGenerator

logger = logging.getLogger(__name__)


class MessagePipeline:
    """Processes a single inbound webhook event to completion."""

    def __init__(
        self,
        bot_account_id: str,
        generator: ReplyGenerator,
        delivery: DeliveryClient,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._bot_account_id = bot_account_id
        self._generator = generator
        self._delivery = delivery
        self._audit = audit_logger

    async def process_event(self, raw: object) -> PipelineReport:
        message_id: str | None = None
        sender_id: str | None = None
        try:
            # Stage 1: Parse
            parsed = parse_event(raw)
            if parsed.message is None:
                logger.debug("Ignoring event (%s): %s", parsed.shape.value, parsed.reason)
                return PipelineReport(stage=PipelineStage.PARSED, reason=parsed.reason)
            message = parsed.message
            message_id, sender_id = message.message_id, message.sender_id
            logger.debug("Parsed message message_id=%s sender_id=%s", message_id, sender_id)

            # Stage 2: Eligibility
            decision = evaluate(message, self._bot_account_id)
            if not decision.accepted:
                reason = decision.reason.value if decision.reason else None
                logger.debug(
                    "Message filtered (%s) message_id=%s sender_id=%s",
                    reason, message_id, sender_id,
                )
                return PipelineReport(
                    stage=PipelineStage.FILTERED,
                    message_id=message_id,
                    sender_id=sender_id,
                    reason=reason,
                )

            # Stage 3: Generate
            generated = await self._generator.generate(message.message_text or "")
            if generated.text is None:
                logger.error(
                    "Reply generation failed message_id=%s sender_id=%s: %s",
                    message_id, sender_id, generated.error,
                )
                return self._audited(PipelineReport(
                    stage=PipelineStage.GENERATION_FAILED,
                    message_id=message_id,
                    sender_id=sender_id,
                    reason=generated.error,
                ))
            logger.info(
                "Generated reply message_id=%s sender_id=%s response_length=%d",
                message_id, sender_id, len(generated.text),
            )

            # Stage 4: Deliver
            outcome = await self._delivery.send(sender_id, generated.text)
            return self._audited(self._finish(message_id, sender_id, outcome))
        except Exception as exc:
            logger.error(
                "Error processing message message_id=%s sender_id=%s",
                message_id, sender_id, exc_info=True,
            )
            return self._audited(PipelineReport(
                stage=PipelineStage.CRASHED,
                message_id=message_id,
                sender_id=sender_id,
                reason=type(exc).__name__,
            ))

    def _finish(
        self, message_id: str, sender_id: str, outcome: DeliveryOutcome,
    ) -> PipelineReport:
        if outcome.delivered:
            logger.info(
                "Message processed successfully message_id=%s sender_id=%s "
                "instagram_message_id=%s",
                message_id, sender_id, outcome.external_message_id,
            )
            return PipelineReport(
                stage=PipelineStage.DELIVERED,
                message_id=message_id,
                sender_id=sender_id,
                outcome=outcome,
            )

        logger.error(
            "Failed to send reply message_id=%s sender_id=%s attempts=%d: %s",
            message_id, sender_id, outcome.attempts, outcome.error_description,
        )
        return PipelineReport(
            stage=PipelineStage.DELIVERY_FAILED,
            message_id=message_id,
            sender_id=sender_id,
            reason=outcome.error_description,
            outcome=outcome,
        )

    def _audited(self, report: PipelineReport) -> PipelineReport:
        write_event(self._audit, event_from_report(report))
        return report
