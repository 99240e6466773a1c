"""
Pytest configuration and fixtures

In-memory stores, a scripted AI backend and a recording notification
channel stand in for Supabase, the AI providers and Mailgun/Slack.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from ticketdesk.exceptions import NotificationError, PersistenceError
from ticketdesk.models.schemas import (
    AIConfig,
    AIOperationQuery,
    AIOperationRecord,
    AIOperationType,
    AIProviderName,
    EscalationTier,
    ExtractedEntities,
    Priority,
    ProductMention,
    RequestType,
    ResponseContext,
    Sentiment,
    SentimentAnalysis,
    SLAPolicy,
    SLAThresholds,
    SuggestedResponse,
    SuggestedResponses,
    Ticket,
    TicketClassification,
    TicketCreate,
    TranscriptSummary,
)
from ticketdesk.repositories.base import AuditStore, TicketStore
from ticketdesk.services.ai_cache import InMemoryResponseCache
from ticketdesk.services.ai_providers import AIBackend
from ticketdesk.services.ai_service import AIService
from ticketdesk.services.audit_log import AuditLog
from ticketdesk.services.intake import IntakeOrchestrator
from ticketdesk.services.notifications import NotificationChannel, NotificationService
from ticketdesk.services.sla_escalation import SLAEscalationEngine


T0 = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Monotonic clock the tests move by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend(AIBackend):
    """AI backend returning canned results, errors or delays per operation"""

    name = "fake"
    model = "fake-model"

    def __init__(self):
        self.responses: Dict[AIOperationType, Any] = {
            AIOperationType.CLASSIFY: TicketClassification(
                request_type=RequestType.QUOTE,
                priority=Priority.HIGH,
                confidence=0.92,
                reasoning="Customer asks for pricing",
            ),
            AIOperationType.SENTIMENT: SentimentAnalysis(sentiment=Sentiment.NEUTRAL, score=0.2),
            AIOperationType.EXTRACT: ExtractedEntities(
                customer_name="Dana Reyes",
                emails=["dana@acme-chem.com"],
                phone_numbers=["555-0100"],
                products=[ProductMention(name="sulfuric acid", quantity=5000, unit="gallons")],
            ),
            AIOperationType.SUMMARIZE: TranscriptSummary(
                summary="Customer wants a quote for sulfuric acid",
                key_points=["5000 gallons"],
                action_items=["Send quote"],
            ),
            AIOperationType.SUGGEST: SuggestedResponses(
                responses=[
                    SuggestedResponse(text="Thanks, a quote is on its way.", tone="formal", confidence=0.8),
                    SuggestedResponse(text="Happy to help with pricing!", tone="friendly", confidence=0.7),
                ],
                escalation_needed=False,
            ),
        }
        self.errors: Dict[AIOperationType, Exception] = {}
        self.delays: Dict[AIOperationType, float] = {}
        self.calls: Dict[AIOperationType, int] = {op: 0 for op in AIOperationType}

    async def _answer(self, operation: AIOperationType):
        self.calls[operation] += 1
        if operation in self.delays:
            await asyncio.sleep(self.delays[operation])
        if operation in self.errors:
            raise self.errors[operation]
        return self.responses[operation].model_copy(deep=True)

    async def classify(self, text: str) -> TicketClassification:
        return await self._answer(AIOperationType.CLASSIFY)

    async def analyze_sentiment(self, text: str) -> SentimentAnalysis:
        return await self._answer(AIOperationType.SENTIMENT)

    async def extract_entities(self, text: str) -> ExtractedEntities:
        return await self._answer(AIOperationType.EXTRACT)

    async def summarize(self, text: str) -> TranscriptSummary:
        return await self._answer(AIOperationType.SUMMARIZE)

    async def suggest_responses(self, context: ResponseContext) -> SuggestedResponses:
        return await self._answer(AIOperationType.SUGGEST)


class InMemoryTicketStore(TicketStore):
    """Dict-backed TicketStore"""

    def __init__(self):
        self.tickets: Dict[int, Ticket] = {}
        self.updates: List[tuple] = []
        self.next_id = 1
        self.fail_insert = False
        self.fail_list = False
        self.fail_update_ids: set = set()
        self.created_at = T0

    def add(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = ticket
        self.next_id = max(self.next_id, ticket.id + 1)
        return ticket

    async def get(self, ticket_id: int) -> Optional[Ticket]:
        return self.tickets.get(ticket_id)

    async def insert(self, ticket: TicketCreate) -> Ticket:
        if self.fail_insert:
            raise PersistenceError("database unavailable")
        stored = Ticket(id=self.next_id, created_at=self.created_at, **ticket.model_dump())
        self.next_id += 1
        self.tickets[stored.id] = stored
        return stored

    async def update(self, ticket_id: int, fields: Dict[str, Any]) -> Optional[Ticket]:
        if ticket_id in self.fail_update_ids:
            raise PersistenceError("write conflict")
        current = self.tickets.get(ticket_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        self.tickets[ticket_id] = updated
        self.updates.append((ticket_id, dict(fields)))
        return updated

    async def list_open_without_first_response(self) -> List[Ticket]:
        if self.fail_list:
            raise PersistenceError("connection reset")
        return sorted(
            (
                t for t in self.tickets.values()
                if t.first_response_at is None and not t.is_closed
            ),
            key=lambda t: t.created_at,
        )


class InMemoryAuditStore(AuditStore):
    """List-backed AuditStore"""

    def __init__(self):
        self.records: List[AIOperationRecord] = []
        self.fail = False

    async def append(self, record: AIOperationRecord) -> AIOperationRecord:
        if self.fail:
            raise PersistenceError("audit table unavailable")
        stored = record.model_copy(update={
            "id": len(self.records) + 1,
            "created_at": datetime.now(timezone.utc),
        })
        self.records.append(stored)
        return stored

    async def query(self, filters: AIOperationQuery) -> List[AIOperationRecord]:
        rows = [
            r for r in reversed(self.records)
            if (filters.ticket_id is None or r.ticket_id == filters.ticket_id)
            and (filters.operation is None or r.operation == filters.operation)
            and (filters.success is None or r.success == filters.success)
        ]
        return rows[:filters.limit]

    def by_operation(self, operation: AIOperationType) -> List[AIOperationRecord]:
        return [r for r in self.records if r.operation == operation]


class RecordingChannel(NotificationChannel):
    """Keeps every message; can be told to fail"""

    name = "recording"

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    async def send(self, recipients, subject, html_body, text_body) -> None:
        if self.fail:
            raise NotificationError("SMTP relay refused", channel=self.name)
        self.sent.append({
            "recipients": list(recipients),
            "subject": subject,
            "html_body": html_body,
            "text_body": text_body,
        })


def make_ticket(ticket_id: int = 1, request_type: RequestType = RequestType.COA, **overrides) -> Ticket:
    """Ticket created at T0 unless overridden"""
    fields = {
        "id": ticket_id,
        "request_type": request_type,
        "created_at": T0,
        "summary": "Need the COA for lot 4471",
        "customer_name": "Dana Reyes",
        "customer_email": "dana@acme-chem.com",
    }
    fields.update(overrides)
    return Ticket(**fields)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ai_config() -> AIConfig:
    return AIConfig(
        provider=AIProviderName.OPENAI,
        api_key="sk-test-key",
        enable_caching=True,
        cache_expiry=300,
        timeout_seconds=0.2,
    )


@pytest.fixture
def ai_service(ai_config, fake_backend, clock) -> AIService:
    return AIService(
        config=ai_config,
        backend=fake_backend,
        cache=InMemoryResponseCache(max_entries=100, clock=clock),
    )


@pytest.fixture
def unconfigured_ai_service() -> AIService:
    return AIService()


@pytest.fixture
def ticket_store() -> InMemoryTicketStore:
    return InMemoryTicketStore()


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def audit_log(audit_store) -> AuditLog:
    return AuditLog(audit_store)


@pytest.fixture
def orchestrator(ai_service, ticket_store, audit_log) -> IntakeOrchestrator:
    return IntakeOrchestrator(ai_service, ticket_store, audit_log)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def notifier(channel) -> NotificationService:
    return NotificationService([channel])


@pytest.fixture
def sla_policy() -> SLAPolicy:
    return SLAPolicy(
        sla_minutes={"quote": 120, "coa": 60, "freight": 240, "claim": 1440, "other": 240},
        thresholds=SLAThresholds(warning=0.75, urgent=0.9, breach=1.0),
        recipients={
            EscalationTier.WARNING: ["supervisor@example.com"],
            EscalationTier.URGENT: ["supervisor@example.com", "manager@example.com"],
            EscalationTier.BREACH: ["supervisor@example.com", "manager@example.com", "coo@example.com"],
        },
    )


@pytest.fixture
def sla_engine(ticket_store, notifier, sla_policy) -> SLAEscalationEngine:
    return SLAEscalationEngine(ticket_store, notifier, sla_policy, app_url="https://desk.example.com")
