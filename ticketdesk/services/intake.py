"""
Ticket intake orchestrator

Turns raw ticket input into a stored ticket, using AI only to fill gaps:
- classify when the caller gave no request type (explicit input always wins)
- sentiment and entity extraction whenever there is text
- contact fields are backfilled from extracted entities only when empty

The three AI steps are independent and run concurrently. A failed step
leaves its fields at their defaults and is audited with success=false;
only a failure to store the ticket is surfaced to the caller.
"""
import asyncio
from typing import Any, Dict, List, Optional

from ticketdesk.exceptions import IntakeValidationError, PersistenceError
from ticketdesk.models.schemas import (
    AIOperationType,
    ExtractedEntities,
    IntakeRequest,
    IntakeResult,
    IntakeStep,
    Priority,
    RequestType,
    SentimentAnalysis,
    Ticket,
    TicketClassification,
    TicketCreate,
)
from ticketdesk.repositories.base import TicketStore
from ticketdesk.services.ai_service import AICallResult, AIService
from ticketdesk.services.audit_log import AuditLog
from ticketdesk.utils.logger import get_logger
from ticketdesk.utils.validators import sanitize_input

logger = get_logger(__name__)

MAX_AI_TEXT_LENGTH = 20000


class IntakeOrchestrator:
    """Creates tickets and enriches them with AI results"""

    def __init__(
        self,
        ai_service: AIService,
        ticket_store: TicketStore,
        audit_log: AuditLog,
        require_customer_contact: bool = False,
    ):
        self.ai_service = ai_service
        self.ticket_store = ticket_store
        self.audit_log = audit_log
        self.require_customer_contact = require_customer_contact

    def validate(self, request: IntakeRequest) -> None:
        """
        Reject input that cannot become a ticket

        Raises:
            IntakeValidationError: With messages per offending field
        """
        errors: Dict[str, List[str]] = {}

        if not request.text and request.request_type is None:
            message = "Provide a summary, a transcript or an explicit request type"
            errors["summary"] = [message]
            errors["transcriptText"] = [message]

        if self.require_customer_contact and not (request.customer_email or request.customer_phone):
            message = "A customer email or phone number is required"
            errors["customerEmail"] = [message]
            errors["customerPhone"] = [message]

        if errors:
            raise IntakeValidationError(errors)

    async def create_ticket(self, request: IntakeRequest) -> IntakeResult:
        """
        Run the intake pipeline

        Args:
            request: Raw ticket input

        Returns:
            IntakeResult with the stored ticket and per-step outcomes

        Raises:
            IntakeValidationError: If the input is rejected
            PersistenceError: If the ticket could not be stored
        """
        self.validate(request)

        text = sanitize_input(request.text, MAX_AI_TEXT_LENGTH) if request.text else None
        results = await self._run_ai_steps(request, text)

        ticket_fields = self._merge(request, results)

        ticket: Optional[Ticket] = None
        try:
            ticket = await self.ticket_store.insert(ticket_fields)
        except PersistenceError:
            raise
        except Exception as exc:
            logger.error(f"Failed to create ticket: {exc}")
            raise PersistenceError(f"Failed to create ticket: {exc}") from exc
        finally:
            # Audit even when the insert failed so the AI calls are accounted for
            await self._audit(results, text, ticket, request.call_id)

        logger.info(
            f"Created ticket #{ticket.id} type={ticket.request_type.value} "
            f"priority={ticket.priority.value} ai_steps={len(results)}"
        )
        return IntakeResult(
            ticket=ticket,
            classification=self._data_if_ok(results, AIOperationType.CLASSIFY),
            sentiment=self._data_if_ok(results, AIOperationType.SENTIMENT),
            entities=self._data_if_ok(results, AIOperationType.EXTRACT),
            steps=[
                IntakeStep(
                    operation=r.operation,
                    success=r.success,
                    cached=r.cached,
                    skipped=not r.attempted,
                    error=r.error,
                )
                for r in results.values()
            ],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _run_ai_steps(
        self,
        request: IntakeRequest,
        text: Optional[str],
    ) -> Dict[AIOperationType, AICallResult]:
        if not request.enable_ai or not text:
            return {}
        if not self.ai_service.is_configured():
            logger.info("AI provider not configured; creating ticket without AI enrichment")
            return {}

        operations = []
        if request.request_type is None:
            operations.append(AIOperationType.CLASSIFY)
        operations.extend([AIOperationType.SENTIMENT, AIOperationType.EXTRACT])

        outcomes = await asyncio.gather(
            *(self.ai_service.execute(operation, text) for operation in operations)
        )
        return dict(zip(operations, outcomes))

    @staticmethod
    def _data_if_ok(results: Dict[AIOperationType, AICallResult], operation: AIOperationType):
        result = results.get(operation)
        if result is None or not result.success:
            return None
        return result.data

    def _merge(
        self,
        request: IntakeRequest,
        results: Dict[AIOperationType, AICallResult],
    ) -> TicketCreate:
        fields: Dict[str, Any] = {
            "call_id": request.call_id,
            "request_type": request.request_type or RequestType.OTHER,
            "priority": request.priority or Priority.NORMAL,
            "summary": request.summary,
            "data": dict(request.data),
            "customer_name": request.customer_name,
            "customer_email": request.customer_email,
            "customer_phone": request.customer_phone,
            "assignee": request.assignee,
        }
        if request.transcript_text and "transcriptText" not in fields["data"]:
            fields["data"]["transcriptText"] = request.transcript_text

        classification: Optional[TicketClassification] = self._data_if_ok(
            results, AIOperationType.CLASSIFY
        )
        if classification is not None:
            fields["request_type"] = classification.request_type
            if request.priority is None:
                fields["priority"] = classification.priority
            fields["ai_classification"] = classification.model_dump(mode="json", by_alias=True)
            fields["ai_confidence"] = round(classification.confidence * 100)

        sentiment: Optional[SentimentAnalysis] = self._data_if_ok(results, AIOperationType.SENTIMENT)
        if sentiment is not None:
            fields["ai_sentiment"] = sentiment.sentiment
            fields["ai_sentiment_score"] = sentiment.ticket_score()

        entities: Optional[ExtractedEntities] = self._data_if_ok(results, AIOperationType.EXTRACT)
        if entities is not None:
            fields["ai_extracted_entities"] = entities.model_dump(mode="json", by_alias=True)
            if not fields["customer_name"] and entities.customer_name:
                fields["customer_name"] = entities.customer_name
            if not fields["customer_email"] and entities.emails:
                fields["customer_email"] = entities.emails[0]
            if not fields["customer_phone"] and entities.phone_numbers:
                fields["customer_phone"] = entities.phone_numbers[0]

        return TicketCreate(**fields)

    async def _audit(
        self,
        results: Dict[AIOperationType, AICallResult],
        text: Optional[str],
        ticket: Optional[Ticket],
        call_id: Optional[str],
    ) -> None:
        if not results:
            return
        ticket_id = ticket.id if ticket is not None else None
        await asyncio.gather(
            *(
                self.audit_log.record(result, {"text": text}, ticket_id=ticket_id, call_id=call_id)
                for result in results.values()
            )
        )
