"""
AI Service - provider-agnostic entry point for all AI operations

Wraps an `AIBackend` with:
- degraded default results when no provider is configured or a call fails
- a bounded per-call timeout
- response caching (successful results only; suggestions are never cached)
- running metrics readable while calls are in flight

Callers never need exception handling for "AI unavailable": every call
returns an `AICallResult` whose `data` is either the provider result or the
documented zero-confidence default for that operation.
"""
import asyncio
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel

from ticketdesk.config import Settings
from ticketdesk.exceptions import ProviderTimeoutError
from ticketdesk.models.schemas import (
    AIConfig,
    AIMetrics,
    AIOperationType,
    ExtractedEntities,
    Priority,
    RequestType,
    ResponseContext,
    SentimentAnalysis,
    SuggestedResponses,
    TicketClassification,
    TranscriptSummary,
)
from ticketdesk.services.ai_cache import InMemoryResponseCache, ResponseCache, make_cache_key
from ticketdesk.services.ai_providers import AIBackend, create_provider
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

NOT_CONFIGURED = "AI service not configured"
DEFAULT_TIMEOUT_SECONDS = 30.0

RESULT_MODELS = {
    AIOperationType.CLASSIFY: TicketClassification,
    AIOperationType.SENTIMENT: SentimentAnalysis,
    AIOperationType.EXTRACT: ExtractedEntities,
    AIOperationType.SUMMARIZE: TranscriptSummary,
    AIOperationType.SUGGEST: SuggestedResponses,
}

UNCACHED_OPERATIONS = {AIOperationType.SUGGEST}


def default_result(operation: AIOperationType, reason: str = NOT_CONFIGURED) -> BaseModel:
    """
    Zero-confidence result returned instead of raising

    Args:
        operation: AI operation
        reason: Why the default is used (shown in classify reasoning and summary)

    Returns:
        Result model for the operation
    """
    if operation == AIOperationType.CLASSIFY:
        return TicketClassification(
            request_type=RequestType.OTHER,
            priority=Priority.NORMAL,
            confidence=0.0,
            reasoning=reason,
        )
    if operation == AIOperationType.SUMMARIZE:
        return TranscriptSummary(summary=reason)
    return RESULT_MODELS[operation]()


@dataclass
class AICallResult:
    """Outcome of one AI operation, successful or degraded"""
    operation: AIOperationType
    data: BaseModel
    success: bool
    attempted: bool = True
    cached: bool = False
    error: Optional[str] = None
    response_time_ms: int = 0
    provider: Optional[str] = None
    model: Optional[str] = None


class MetricsTracker:
    """Thread-safe running counters for backend calls"""

    def __init__(self):
        self._lock = threading.Lock()
        self._total = 0
        self._successes = 0
        self._failures = 0
        self._average_ms = 0.0
        self._cache_hits = 0
        self._last_error: Optional[str] = None
        self._last_error_time: Optional[datetime] = None

    def record_success(self, response_time_ms: float) -> None:
        with self._lock:
            self._total += 1
            self._successes += 1
            # Streaming mean over successful calls only
            self._average_ms += (response_time_ms - self._average_ms) / self._successes

    def record_failure(self, error: str) -> None:
        with self._lock:
            self._total += 1
            self._failures += 1
            self._last_error = error
            self._last_error_time = datetime.now(timezone.utc)

    def record_cache_hit(self) -> None:
        with self._lock:
            self._cache_hits += 1

    def snapshot(self) -> AIMetrics:
        with self._lock:
            return AIMetrics(
                total_requests=self._total,
                successful_requests=self._successes,
                failed_requests=self._failures,
                average_response_time=round(self._average_ms, 2),
                cache_hits=self._cache_hits,
                last_error=self._last_error,
                last_error_time=self._last_error_time,
            )


class AIService:
    """
    Provider-agnostic AI service

    Built once at application startup and passed to the intake orchestrator
    and the API routes. Tests construct it with a fake backend.
    """

    def __init__(
        self,
        config: Optional[AIConfig] = None,
        backend: Optional[AIBackend] = None,
        cache: Optional[ResponseCache] = None,
        cache_max_entries: int = 100,
    ):
        self._config = config
        self._backend = backend
        if self._backend is None and config is not None:
            self._backend = create_provider(config)
        self._cache = cache if cache is not None else InMemoryResponseCache(max_entries=cache_max_entries)
        self._metrics = MetricsTracker()
        # Bumped by configure(); results from an older provider are not cached
        self._generation = 0

        if self._backend is None:
            logger.warning("AIService created without a provider; AI results will be defaults")
        else:
            logger.info(f"AIService initialized with provider {self.provider_name} ({self.model_name})")

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIService":
        """Build the service from environment settings"""
        return cls(
            config=settings.ai_config(),
            cache_max_entries=settings.ai_cache_max_entries,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def configure(self, config: AIConfig, backend: Optional[AIBackend] = None) -> None:
        """
        Replace the provider configuration at runtime

        Raises:
            ConfigurationError: If the provider cannot be created
        """
        new_backend = backend if backend is not None else create_provider(config)
        self._config = config
        self._backend = new_backend
        self._generation += 1
        self._cache.clear()
        logger.info(f"AIService reconfigured: provider={self.provider_name} model={self.model_name}")

    def is_configured(self) -> bool:
        return self._backend is not None

    @property
    def provider_name(self) -> Optional[str]:
        return getattr(self._backend, "name", None)

    @property
    def model_name(self) -> Optional[str]:
        return getattr(self._backend, "model", None)

    def get_config(self) -> Optional[Dict[str, Any]]:
        """Current configuration with the API key masked"""
        if self._config is None:
            return None
        return self._config.masked()

    def get_metrics(self) -> AIMetrics:
        return self._metrics.snapshot()

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("AI response cache cleared")

    @property
    def caching_enabled(self) -> bool:
        return bool(self._config and self._config.enable_caching)

    @property
    def timeout_seconds(self) -> float:
        return self._config.timeout_seconds if self._config else DEFAULT_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def execute(
        self,
        operation: AIOperationType,
        payload: Union[str, ResponseContext, None],
    ) -> AICallResult:
        """
        Run one AI operation; never raises for provider problems

        Args:
            operation: Operation to run
            payload: Text for classify/sentiment/extract/summarize,
                ResponseContext for suggest

        Returns:
            AICallResult with provider data or the degraded default
        """
        if operation == AIOperationType.SUGGEST:
            if not isinstance(payload, ResponseContext):
                raise TypeError("suggest requires a ResponseContext payload")
            cache_input: Any = payload.model_dump(mode="json")
            has_input = bool(payload.customer_message.strip())
        else:
            text = payload if isinstance(payload, str) else ("" if payload is None else str(payload))
            cache_input = text
            has_input = bool(text.strip())

        backend = self._backend
        if backend is None:
            logger.warning(f"AI {operation.value} skipped: {NOT_CONFIGURED}")
            return AICallResult(
                operation=operation,
                data=default_result(operation),
                success=False,
                attempted=False,
                error=NOT_CONFIGURED,
            )

        if not has_input:
            return AICallResult(
                operation=operation,
                data=default_result(operation, "No text to analyze"),
                success=False,
                attempted=False,
                error="empty input",
                provider=backend.name,
                model=backend.model,
            )

        use_cache = self.caching_enabled and operation not in UNCACHED_OPERATIONS
        cache_key = make_cache_key(operation.value, cache_input) if use_cache else None

        if cache_key is not None:
            hit = self._cache.get(cache_key)
            if hit is not None:
                self._metrics.record_cache_hit()
                logger.debug(f"AI cache hit for {operation.value}")
                return AICallResult(
                    operation=operation,
                    data=RESULT_MODELS[operation].model_validate(hit),
                    success=True,
                    cached=True,
                    provider=backend.name,
                    model=backend.model,
                )

        generation = self._generation
        invoke = self._dispatcher(backend, operation, payload)
        start = time.perf_counter()
        try:
            data = await asyncio.wait_for(invoke(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            error = ProviderTimeoutError(
                f"{operation.value} timed out after {self.timeout_seconds}s",
                provider=backend.name,
                operation=operation.value,
            )
            return self._failed(operation, backend, error, start)
        except Exception as exc:
            # ProviderError, SDK bugs and unexpected shapes all degrade
            return self._failed(operation, backend, exc, start)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        self._metrics.record_success(elapsed_ms)

        if cache_key is not None and generation == self._generation:
            self._cache.set(cache_key, data.model_dump(mode="json"), self._config.cache_expiry)

        return AICallResult(
            operation=operation,
            data=data,
            success=True,
            response_time_ms=elapsed_ms,
            provider=backend.name,
            model=backend.model,
        )

    def _dispatcher(
        self,
        backend: AIBackend,
        operation: AIOperationType,
        payload: Union[str, ResponseContext],
    ) -> Callable[[], Awaitable[BaseModel]]:
        methods = {
            AIOperationType.CLASSIFY: backend.classify,
            AIOperationType.SENTIMENT: backend.analyze_sentiment,
            AIOperationType.EXTRACT: backend.extract_entities,
            AIOperationType.SUMMARIZE: backend.summarize,
            AIOperationType.SUGGEST: backend.suggest_responses,
        }
        method = methods[operation]
        return lambda: method(payload)

    def _failed(
        self,
        operation: AIOperationType,
        backend: AIBackend,
        error: Exception,
        start: float,
    ) -> AICallResult:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        message = str(error) or type(error).__name__
        self._metrics.record_failure(message)
        logger.warning(f"AI {operation.value} failed via {backend.name}: {message}")
        return AICallResult(
            operation=operation,
            data=default_result(operation, f"AI {operation.value} failed"),
            success=False,
            error=message,
            response_time_ms=elapsed_ms,
            provider=backend.name,
            model=backend.model,
        )

    # ------------------------------------------------------------------
    # Convenience wrappers returning only the data
    # ------------------------------------------------------------------
    async def classify(self, text: str) -> TicketClassification:
        return (await self.execute(AIOperationType.CLASSIFY, text)).data

    async def analyze_sentiment(self, text: str) -> SentimentAnalysis:
        return (await self.execute(AIOperationType.SENTIMENT, text)).data

    async def extract_entities(self, text: str) -> ExtractedEntities:
        return (await self.execute(AIOperationType.EXTRACT, text)).data

    async def summarize(self, text: str) -> TranscriptSummary:
        return (await self.execute(AIOperationType.SUMMARIZE, text)).data

    async def suggest_responses(self, context: ResponseContext) -> SuggestedResponses:
        return (await self.execute(AIOperationType.SUGGEST, context)).data
