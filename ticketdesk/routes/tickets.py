"""
Ticket API routes

- POST /api/v1/tickets - create a ticket through the intake pipeline
- GET /api/v1/tickets/{ticket_id} - fetch one ticket
- POST /api/v1/tickets/{ticket_id}/suggest-responses - AI reply drafts
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ticketdesk.dependencies import ServiceContainer, get_services
from ticketdesk.exceptions import IntakeValidationError, PersistenceError
from ticketdesk.models.schemas import AIOperationType, IntakeRequest, ResponseContext, Ticket
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/tickets", tags=["tickets"])


# ============================================================================
# Pydantic Models
# ============================================================================

class SuggestResponsesRequest(BaseModel):
    """Options for reply suggestions"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    additional_context: Optional[str] = Field(None, max_length=5000)
    include_history: bool = False
    max_responses: int = Field(3, ge=1, le=5)


async def _load_ticket(services: ServiceContainer, ticket_id: int) -> Ticket:
    try:
        ticket = await services.ticket_store.get(ticket_id)
    except PersistenceError as e:
        logger.error(f"Failed to load ticket #{ticket_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load ticket"
        )
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return ticket


# ============================================================================
# Routes
# ============================================================================

@router.post("")
async def create_ticket(
    request: IntakeRequest,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """
    Create a ticket; AI fills in type, priority, sentiment and contact gaps

    Returns 400 with field-level details when the input is rejected and
    500 when the ticket cannot be stored. AI problems never fail the call.
    """
    try:
        result = await services.intake.create_ticket(request)
    except IntakeValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid ticket input", "details": e.field_errors}
        )
    except PersistenceError as e:
        logger.error(f"Ticket creation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create ticket"
        )

    return {
        "success": True,
        "ticket": result.ticket.model_dump(mode="json"),
        "ai": {
            "classification": result.classification.model_dump(mode="json", by_alias=True)
            if result.classification else None,
            "sentiment": result.sentiment.model_dump(mode="json", by_alias=True)
            if result.sentiment else None,
            "entities": result.entities.model_dump(mode="json", by_alias=True)
            if result.entities else None,
            "steps": [step.model_dump(mode="json") for step in result.steps],
        },
    }


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: int,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Get one ticket"""
    ticket = await _load_ticket(services, ticket_id)
    return ticket.model_dump(mode="json")


@router.post("/{ticket_id}/suggest-responses")
async def suggest_responses(
    ticket_id: int,
    request: SuggestResponsesRequest,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """
    Draft replies for a ticket

    Returns 503 when no AI provider is configured.
    """
    if not services.ai_service.is_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service not configured"
        )

    ticket = await _load_ticket(services, ticket_id)

    history = ticket.data.get("history", []) if request.include_history else []
    context = ResponseContext(
        customer_message=ticket.summary or ticket.data.get("transcriptText") or "",
        request_type=ticket.request_type,
        customer_name=ticket.customer_name,
        previous_responses=[str(item) for item in history] if isinstance(history, list) else [],
        additional_context=request.additional_context,
        max_responses=request.max_responses,
    )

    result = await services.ai_service.execute(AIOperationType.SUGGEST, context)
    await services.audit_log.record(
        result,
        context.model_dump(mode="json", by_alias=True),
        ticket_id=ticket.id,
        call_id=ticket.call_id,
    )

    return {
        "success": result.success,
        "ticketId": ticket.id,
        "suggestions": result.data.model_dump(mode="json", by_alias=True),
        "error": result.error,
    }
