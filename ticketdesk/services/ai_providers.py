"""
AI provider backends

Every backend offers the same five operations (classify, sentiment, extract,
summarize, suggest) and returns validated result models. Backends raise
`ProviderError` on any failure; turning failures into degraded results is
the job of `AIService`, not of the backends.

Supported:
- OpenAI chat completions (JSON mode), default model gpt-4o-mini
- Google Gemini (JSON mime type), default model gemini-1.5-flash
"""
import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TypeVar

import google.generativeai as genai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from ticketdesk.exceptions import ConfigurationError, ProviderError
from ticketdesk.models.schemas import (
    AIConfig,
    AIOperationType,
    AIProviderName,
    ExtractedEntities,
    ResponseContext,
    SentimentAnalysis,
    SuggestedResponses,
    TicketClassification,
    TranscriptSummary,
)
from ticketdesk.services import prompts
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)

DEFAULT_MODELS = {
    AIProviderName.OPENAI: "gpt-4o-mini",
    AIProviderName.GEMINI: "gemini-1.5-flash",
}


class AIBackend(ABC):
    """Interface every AI provider implements"""

    name: str
    model: str

    @abstractmethod
    async def classify(self, text: str) -> TicketClassification:
        pass

    @abstractmethod
    async def analyze_sentiment(self, text: str) -> SentimentAnalysis:
        pass

    @abstractmethod
    async def extract_entities(self, text: str) -> ExtractedEntities:
        pass

    @abstractmethod
    async def summarize(self, text: str) -> TranscriptSummary:
        pass

    @abstractmethod
    async def suggest_responses(self, context: ResponseContext) -> SuggestedResponses:
        pass


class BaseAIProvider(AIBackend):
    """
    Shared prompt handling and output parsing

    Subclasses only implement `_generate_json`, which sends one prompt and
    returns the raw JSON text produced by the model.
    """

    def __init__(self, config: AIConfig):
        self.config = config
        self.model = config.model or DEFAULT_MODELS[config.provider]

    @abstractmethod
    async def _generate_json(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        pass

    async def classify(self, text: str) -> TicketClassification:
        return await self._run(
            AIOperationType.CLASSIFY, prompts.classification_prompt(text), TicketClassification
        )

    async def analyze_sentiment(self, text: str) -> SentimentAnalysis:
        return await self._run(
            AIOperationType.SENTIMENT, prompts.sentiment_prompt(text), SentimentAnalysis
        )

    async def extract_entities(self, text: str) -> ExtractedEntities:
        return await self._run(
            AIOperationType.EXTRACT, prompts.extraction_prompt(text), ExtractedEntities
        )

    async def summarize(self, text: str) -> TranscriptSummary:
        return await self._run(
            AIOperationType.SUMMARIZE, prompts.summary_prompt(text), TranscriptSummary
        )

    async def suggest_responses(self, context: ResponseContext) -> SuggestedResponses:
        result = await self._run(
            AIOperationType.SUGGEST, prompts.response_prompt(context), SuggestedResponses
        )
        result.responses = result.responses[:context.max_responses]
        return result

    async def _run(
        self,
        operation: AIOperationType,
        prompt: str,
        result_model: Type[ResultT],
    ) -> ResultT:
        op_settings = prompts.OPERATION_SETTINGS[operation]
        system_prompt = self.config.system_prompt or op_settings.system_prompt
        temperature = (
            op_settings.temperature
            if op_settings.temperature is not None
            else self.config.temperature
        )
        max_tokens = min(op_settings.max_tokens, self.config.max_tokens)

        raw = await self._generate_json(prompt, system_prompt, temperature, max_tokens)
        payload = self._parse_json(raw, operation)

        try:
            return result_model.model_validate(payload)
        except ValidationError as exc:
            raise ProviderError(
                f"{self.name} returned an invalid {operation.value} result: {exc.error_count()} errors",
                provider=self.name,
                operation=operation.value,
            ) from exc

    def _parse_json(self, raw: str, operation: AIOperationType) -> Dict[str, Any]:
        if not raw or not raw.strip():
            raise ProviderError(
                f"{self.name} returned an empty response",
                provider=self.name,
                operation=operation.value,
            )
        text = raw.strip()
        # Gemini occasionally wraps JSON in a markdown fence
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ProviderError(
                f"{self.name} returned non-JSON output: {exc}",
                provider=self.name,
                operation=operation.value,
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderError(
                f"{self.name} returned JSON {type(payload).__name__}, expected object",
                provider=self.name,
                operation=operation.value,
            )
        return payload


class OpenAIProvider(BaseAIProvider):
    """OpenAI chat completions in JSON mode"""

    name = "openai"

    def __init__(self, config: AIConfig, client: Optional[AsyncOpenAI] = None):
        super().__init__(config)
        self.client = client or AsyncOpenAI(api_key=config.api_key.get_secret_value())
        logger.info(f"Initialized OpenAIProvider ({self.model})")

    async def _generate_json(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise ProviderError(f"OpenAI request failed: {e}", provider=self.name) from e

        if not response.choices:
            raise ProviderError("OpenAI returned no choices", provider=self.name)
        return response.choices[0].message.content or ""


class GeminiProvider(BaseAIProvider):
    """Google Gemini with a JSON response mime type"""

    name = "gemini"

    def __init__(self, config: AIConfig):
        super().__init__(config)
        genai.configure(api_key=config.api_key.get_secret_value())
        logger.info(f"Initialized GeminiProvider ({self.model})")

    def _generate_sync(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        model = genai.GenerativeModel(
            model_name=self.model,
            system_instruction=system_prompt,
        )
        response = model.generate_content(
            prompt,
            generation_config=genai.GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_tokens,
                response_mime_type="application/json",
            ),
        )
        return response.text

    async def _generate_json(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        # The Gemini SDK is synchronous
        try:
            return await asyncio.to_thread(
                self._generate_sync, prompt, system_prompt, temperature, max_tokens
            )
        except Exception as e:
            raise ProviderError(f"Gemini request failed: {e}", provider=self.name) from e


def create_provider(config: AIConfig) -> AIBackend:
    """
    Build the backend selected by the configuration

    Args:
        config: AI configuration

    Returns:
        Provider instance

    Raises:
        ConfigurationError: If the provider is not supported
    """
    if config.provider == AIProviderName.OPENAI:
        return OpenAIProvider(config)
    if config.provider == AIProviderName.GEMINI:
        return GeminiProvider(config)
    raise ConfigurationError(f"Unsupported AI provider: {config.provider}")
