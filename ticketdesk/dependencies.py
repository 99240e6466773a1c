"""
Service wiring

Services are built once at startup and stored on `app.state.services`.
Routes receive them through `get_services`, which tests override with a
container holding in-memory stores and fake providers.
"""
from dataclasses import dataclass

from fastapi import Request

from ticketdesk.config import Settings
from ticketdesk.repositories.ai_operation_repository import AIOperationRepository
from ticketdesk.repositories.base import TicketStore
from ticketdesk.repositories.ticket_repository import TicketRepository
from ticketdesk.services.ai_service import AIService
from ticketdesk.services.audit_log import AuditLog
from ticketdesk.services.intake import IntakeOrchestrator
from ticketdesk.services.notifications import NotificationService
from ticketdesk.services.sla_escalation import SLAEscalationEngine
from ticketdesk.utils.logger import get_logger
from ticketdesk.utils.token_counter import get_token_counter

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    ai_service: AIService
    ticket_store: TicketStore
    audit_log: AuditLog
    intake: IntakeOrchestrator
    sla_engine: SLAEscalationEngine


def build_services(settings: Settings) -> ServiceContainer:
    """Create the production service graph from settings"""
    ai_service = AIService.from_settings(settings)
    ticket_store = TicketRepository()
    audit_log = AuditLog(AIOperationRepository(), token_counter=get_token_counter())

    intake = IntakeOrchestrator(
        ai_service=ai_service,
        ticket_store=ticket_store,
        audit_log=audit_log,
        require_customer_contact=settings.require_customer_contact,
    )
    sla_engine = SLAEscalationEngine(
        ticket_store=ticket_store,
        notifier=NotificationService.from_settings(settings),
        policy=settings.sla_policy(),
        app_url=settings.app_url,
    )

    logger.info("Services initialized (AI configured: %s)", ai_service.is_configured())
    return ServiceContainer(
        settings=settings,
        ai_service=ai_service,
        ticket_store=ticket_store,
        audit_log=audit_log,
        intake=intake,
        sla_engine=sla_engine,
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the service container"""
    return request.app.state.services
