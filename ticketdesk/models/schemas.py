"""
Pydantic models for Ticket Desk

Covers the ticket record, AI operation results and their audit records, the
AI provider configuration, and the SLA escalation policy. AI result models
are exchanged with providers and API clients in camelCase; everything is
stored in snake_case.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ticketdesk.utils.validators import validate_email


# ============================================================================
# Enums
# ============================================================================

class RequestType(str, Enum):
    """Ticket categories; each one has its own SLA deadline"""
    QUOTE = "quote"
    COA = "coa"
    FREIGHT = "freight"
    CLAIM = "claim"
    OTHER = "other"


class Priority(str, Enum):
    """Valid ticket priorities"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    """Valid ticket statuses"""
    OPEN = "open"
    ROUTED = "routed"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


CLOSED_STATUSES = (TicketStatus.RESOLVED, TicketStatus.CLOSED)


class Sentiment(str, Enum):
    """Customer sentiment labels"""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class AIOperationType(str, Enum):
    """Operations offered by every AI provider"""
    CLASSIFY = "classify"
    SENTIMENT = "sentiment"
    SUGGEST = "suggest"
    SUMMARIZE = "summarize"
    EXTRACT = "extract"


class AIProviderName(str, Enum):
    """Supported AI providers"""
    OPENAI = "openai"
    GEMINI = "gemini"


class EscalationTier(str, Enum):
    """SLA escalation tiers, lowest first"""
    NONE = "none"
    WARNING = "warning"
    URGENT = "urgent"
    BREACH = "breach"


# ============================================================================
# AI operation results
# ============================================================================

class AIResultModel(BaseModel):
    """Base for provider results; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("*", mode="before")
    @classmethod
    def none_to_empty_container(cls, value, info):
        field = cls.model_fields.get(info.field_name)
        if value is None and field is not None and field.default_factory in (list, dict):
            return field.default_factory()
        return value


def _clamp(value: Any, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(low, min(high, number))


def _coerce_enum(enum_cls, value: Any, fallback):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return fallback


class TicketClassification(AIResultModel):
    """Result of the classify operation"""
    request_type: RequestType = Field(RequestType.OTHER, description="Detected ticket category")
    priority: Priority = Field(Priority.NORMAL, description="Suggested priority")
    confidence: float = Field(0.0, ge=0.0, le=1.0, description="Model confidence 0-1")
    suggested_tags: List[str] = Field(default_factory=list)
    extracted_products: List[str] = Field(default_factory=list)
    reasoning: Optional[str] = None

    @field_validator("request_type", mode="before")
    @classmethod
    def normalize_request_type(cls, v):
        return _coerce_enum(RequestType, v, RequestType.OTHER)

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v):
        return _coerce_enum(Priority, v, Priority.NORMAL)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        return _clamp(v, 0.0, 1.0)


class SentimentAnalysis(AIResultModel):
    """Result of the sentiment operation"""
    sentiment: Sentiment = Field(Sentiment.NEUTRAL, description="Overall sentiment label")
    score: float = Field(0.0, ge=-1.0, le=1.0, description="-1 (negative) to 1 (positive)")
    emotions: Dict[str, float] = Field(default_factory=dict, description="Emotion -> intensity 0-1")
    urgency_indicators: List[str] = Field(default_factory=list)

    @field_validator("emotions", mode="before")
    @classmethod
    def emotions_from_list(cls, v):
        if isinstance(v, list):
            return {str(name): 1.0 for name in v}
        if isinstance(v, dict):
            return {str(k): _clamp(val, 0.0, 1.0) for k, val in v.items()}
        return v

    @field_validator("sentiment", mode="before")
    @classmethod
    def normalize_sentiment(cls, v):
        return _coerce_enum(Sentiment, v, Sentiment.NEUTRAL)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        return _clamp(v, -1.0, 1.0)

    def ticket_score(self) -> int:
        """Map the [-1, 1] score onto the 0-100 ticket scale."""
        return int(max(0, min(100, round((self.score + 1) * 50))))


class ProductMention(AIResultModel):
    """A product and optional quantity found in ticket text"""
    name: str
    quantity: Optional[float] = None
    unit: Optional[str] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def lenient_quantity(cls, v):
        if v in (None, ""):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None


class Amount(AIResultModel):
    """A monetary amount found in ticket text"""
    value: float
    currency: Optional[str] = None
    type: Optional[str] = Field(None, description="What the amount is, e.g. quote, invoice, claim")

    @field_validator("value", mode="before")
    @classmethod
    def lenient_value(cls, v):
        # Models often answer "$1,200" or "1 200 USD"
        if isinstance(v, str):
            cleaned = re.sub(r"[^\d.\-]", "", v)
            try:
                return float(cleaned)
            except ValueError:
                return v
        return v


def _valid_amounts(items: List[Any]) -> List[Any]:
    """Drop amount items that still fail validation."""
    kept = []
    for item in items:
        if isinstance(item, Amount):
            kept.append(item)
            continue
        try:
            kept.append(Amount.model_validate(item))
        except ValidationError:
            continue
    return kept


class ExtractedEntities(AIResultModel):
    """Result of the extract operation"""
    customer_name: Optional[str] = None
    company_name: Optional[str] = None
    emails: List[str] = Field(default_factory=list)
    phone_numbers: List[str] = Field(default_factory=list)
    addresses: List[str] = Field(default_factory=list)
    products: List[ProductMention] = Field(default_factory=list)
    order_numbers: List[str] = Field(default_factory=list)
    tracking_numbers: List[str] = Field(default_factory=list)
    dates: Dict[str, str] = Field(default_factory=dict, description="Label -> date, e.g. {\"delivery\": \"2024-05-01\"}")
    amounts: List[Amount] = Field(default_factory=list)

    @field_validator("products", mode="before")
    @classmethod
    def products_from_strings(cls, v):
        if not isinstance(v, list):
            return v
        return [{"name": item} if isinstance(item, str) else item for item in v]

    @field_validator("dates", mode="before")
    @classmethod
    def dates_from_list(cls, v):
        # Some models answer ["delivery: 2024-05-01", "2024-05-03"] instead of a mapping
        if isinstance(v, list):
            dates: Dict[str, str] = {}
            for position, item in enumerate(v, start=1):
                if item in (None, ""):
                    continue
                label, sep, value = str(item).partition(": ")
                if sep:
                    dates[label.strip()] = value.strip()
                else:
                    dates[f"date{position}"] = str(item)
            return dates
        if isinstance(v, dict):
            return {str(key): str(value) for key, value in v.items() if value not in (None, "")}
        return v

    @field_validator("amounts", mode="before")
    @classmethod
    def drop_unparseable_amounts(cls, v):
        if not isinstance(v, list):
            return v
        return _valid_amounts(v)

    @field_validator(
        "order_numbers", "emails", "phone_numbers", "addresses",
        "tracking_numbers",
        mode="before",
    )
    @classmethod
    def stringify_items(cls, v):
        if not isinstance(v, list):
            return v
        return [str(item) for item in v if item not in (None, "")]


class TranscriptSummary(AIResultModel):
    """Result of the summarize operation"""
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)


class ResponseContext(AIResultModel):
    """Input for the suggest operation"""
    customer_message: str = Field(..., description="Latest customer message or ticket summary")
    request_type: Optional[RequestType] = None
    customer_name: Optional[str] = None
    previous_responses: List[str] = Field(default_factory=list)
    additional_context: Optional[str] = None
    max_responses: int = Field(3, ge=1, le=5)


class SuggestedResponse(AIResultModel):
    """One draft reply"""
    text: str
    tone: str = "professional"
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        return _clamp(v, 0.0, 1.0)


class SuggestedResponses(AIResultModel):
    """Result of the suggest operation"""
    responses: List[SuggestedResponse] = Field(default_factory=list)
    escalation_needed: bool = False


class AIMetrics(AIResultModel):
    """Snapshot of the AI service counters"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    cache_hits: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


# ============================================================================
# AI configuration
# ============================================================================

class AIConfig(BaseModel):
    """Runtime configuration of the AI provider"""
    provider: AIProviderName
    api_key: SecretStr
    model: Optional[str] = None
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(2000, ge=100, le=8000)
    system_prompt: Optional[str] = None
    enable_caching: bool = False
    cache_expiry: int = Field(300, ge=60, description="Cache TTL in seconds")
    timeout_seconds: float = Field(30.0, gt=0)

    @field_validator("api_key")
    @classmethod
    def api_key_not_blank(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("api_key must not be empty")
        return v

    def masked(self) -> Dict[str, Any]:
        """Configuration as exposed to API clients; the credential is hidden."""
        return {
            "provider": self.provider.value,
            "apiKey": "***",
            "model": self.model,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "systemPrompt": self.system_prompt,
            "enableCaching": self.enable_caching,
            "cacheExpiry": self.cache_expiry,
        }


# ============================================================================
# Tickets
# ============================================================================

class TicketCreate(BaseModel):
    """Fields written when a ticket is inserted"""
    call_id: Optional[str] = None
    request_type: RequestType = RequestType.OTHER
    priority: Priority = Priority.NORMAL
    status: TicketStatus = TicketStatus.OPEN
    summary: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    assignee: Optional[str] = None
    ai_classification: Optional[Dict[str, Any]] = None
    ai_sentiment: Optional[Sentiment] = None
    ai_sentiment_score: Optional[int] = Field(None, ge=0, le=100)
    ai_extracted_entities: Optional[Dict[str, Any]] = None
    ai_confidence: Optional[int] = Field(None, ge=0, le=100)


class Ticket(TicketCreate):
    """
    Ticket record as stored in the `tickets` table.

    `breached` only ever goes from False to True. `warning_sent_at` and
    `urgent_sent_at` are set once, when the matching tier notification fires.
    """
    id: int
    created_at: datetime
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    breached: bool = False
    warning_sent_at: Optional[datetime] = None
    urgent_sent_at: Optional[datetime] = None

    @field_validator("data", mode="before")
    @classmethod
    def data_default(cls, v):
        return v or {}

    @field_validator("breached", mode="before")
    @classmethod
    def breached_default(cls, v):
        return bool(v)

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES


class IntakeRequest(BaseModel):
    """Raw ticket input accepted by the intake pipeline"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    call_id: Optional[str] = Field(None, description="Originating call identifier")
    request_type: Optional[RequestType] = Field(None, description="Explicit category; skips AI classification")
    priority: Optional[Priority] = Field(None, description="Explicit priority")
    summary: Optional[str] = Field(None, max_length=10000)
    transcript_text: Optional[str] = Field(None, max_length=100000)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    assignee: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    enable_ai: bool = Field(True, description="Run AI enrichment when a provider is configured")

    @field_validator(
        "call_id", "summary", "transcript_text", "customer_name",
        "customer_email", "customer_phone", "assignee",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.replace("\x00", "").strip()
            return v or None
        return v

    @field_validator("customer_email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not validate_email(v):
            raise ValueError("customer_email is not a valid email address")
        return v

    @property
    def text(self) -> Optional[str]:
        """Text fed to the AI steps: summary first, then transcript."""
        return self.summary or self.transcript_text


class IntakeStep(BaseModel):
    """Outcome of one AI step during intake"""
    operation: AIOperationType
    success: bool
    cached: bool = False
    skipped: bool = False
    error: Optional[str] = None


class IntakeResult(BaseModel):
    """Created ticket plus what the AI steps produced"""
    ticket: Ticket
    classification: Optional[TicketClassification] = None
    sentiment: Optional[SentimentAnalysis] = None
    entities: Optional[ExtractedEntities] = None
    steps: List[IntakeStep] = Field(default_factory=list)


# ============================================================================
# Audit
# ============================================================================

class AIOperationRecord(BaseModel):
    """Row of the append-only `ai_operations` table"""
    id: Optional[int] = None
    ticket_id: Optional[int] = None
    call_id: Optional[str] = None
    operation: AIOperationType
    provider: Optional[str] = None
    model: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    success: bool
    response_time_ms: int = Field(0, ge=0)
    error_message: Optional[str] = None
    tokens_used: Optional[int] = None
    cost_estimate: Optional[float] = None
    created_at: Optional[datetime] = None


class AIOperationQuery(BaseModel):
    """Filters for reading the audit log"""
    ticket_id: Optional[int] = None
    operation: Optional[AIOperationType] = None
    success: Optional[bool] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=1000)


# ============================================================================
# SLA
# ============================================================================

class SLAThresholds(BaseModel):
    """Elapsed/deadline ratios at which each tier starts"""
    warning: float = 0.75
    urgent: float = 0.9
    breach: float = 1.0

    @model_validator(mode="after")
    def check_order(self) -> "SLAThresholds":
        if not (0 < self.warning < self.urgent < self.breach):
            raise ValueError(
                "SLA thresholds must satisfy 0 < warning < urgent < breach "
                f"(got {self.warning}, {self.urgent}, {self.breach})"
            )
        return self


class SLAPolicy(BaseModel):
    """Deadlines per request type, tier thresholds and tier recipients"""
    sla_minutes: Dict[str, int]
    thresholds: SLAThresholds = Field(default_factory=SLAThresholds)
    recipients: Dict[EscalationTier, List[str]] = Field(default_factory=dict)

    @field_validator("sla_minutes")
    @classmethod
    def check_minutes(cls, v: Dict[str, int]) -> Dict[str, int]:
        if RequestType.OTHER.value not in v:
            raise ValueError("sla_minutes must define a deadline for 'other'")
        for key, minutes in v.items():
            if minutes <= 0:
                raise ValueError(f"SLA deadline for '{key}' must be positive")
        return v

    def deadline_for(self, request_type: RequestType) -> int:
        """Deadline in minutes; unknown categories use the 'other' deadline."""
        key = request_type.value if isinstance(request_type, RequestType) else str(request_type)
        return self.sla_minutes.get(key, self.sla_minutes[RequestType.OTHER.value])


class SweepResult(BaseModel):
    """Counters returned by one SLA sweep"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tickets_checked: int = 0
    breaches_detected: int = 0
    warnings_sent: int = 0
    errors: List[str] = Field(default_factory=list)
