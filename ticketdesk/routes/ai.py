"""
AI configuration, audit and utility routes

- GET/POST/DELETE /api/v1/ai/config - read (masked), replace, clear cache
- GET /api/v1/ai/operations - audit log with per-operation statistics
- POST /api/v1/ai/summarize - summarize a transcript
"""
from datetime import datetime
from typing import Any, Dict, Optional

from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ticketdesk.dependencies import ServiceContainer, get_services
from ticketdesk.exceptions import ConfigurationError, PersistenceError
from ticketdesk.models.schemas import (
    AIConfig,
    AIOperationQuery,
    AIOperationType,
    AIProviderName,
)
from ticketdesk.services.audit_log import build_statistics
from ticketdesk.utils.auth import verify_service_token
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/ai", tags=["ai"])


# ============================================================================
# Pydantic Models
# ============================================================================

class AIConfigRequest(BaseModel):
    """New AI configuration"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: AIProviderName
    api_key: str = Field(..., min_length=1)
    model: Optional[str] = None
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(2000, ge=100, le=8000)
    system_prompt: Optional[str] = None
    enable_caching: bool = False
    cache_expiry: int = Field(300, ge=60, description="Seconds")
    timeout_seconds: float = Field(30.0, gt=0, le=300)


class SummarizeRequest(BaseModel):
    """Text to summarize"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str = Field(..., min_length=1, max_length=100000)
    ticket_id: Optional[int] = None


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return date_parser.isoparse(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name}: expected an ISO 8601 date"
        )


# ============================================================================
# Configuration
# ============================================================================

@router.get("/config")
async def get_ai_config(services: ServiceContainer = Depends(get_services)) -> Dict[str, Any]:
    """Current provider, masked configuration and metrics"""
    ai = services.ai_service
    return {
        "configured": ai.is_configured(),
        "provider": ai.provider_name,
        "config": ai.get_config(),
        "metrics": ai.get_metrics().model_dump(mode="json", by_alias=True),
    }


@router.post("/config", dependencies=[Depends(verify_service_token)])
async def update_ai_config(
    request: AIConfigRequest,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Replace the provider configuration; callers keep working unchanged"""
    try:
        config = AIConfig(**request.model_dump())
        services.ai_service.configure(config)
    except (ConfigurationError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "success": True,
        "message": "AI configuration updated",
        "config": services.ai_service.get_config(),
    }


@router.delete("/config", dependencies=[Depends(verify_service_token)])
async def clear_ai_cache(services: ServiceContainer = Depends(get_services)) -> Dict[str, Any]:
    """Drop all cached AI responses"""
    services.ai_service.clear_cache()
    return {"success": True, "message": "AI cache cleared"}


# ============================================================================
# Audit
# ============================================================================

@router.get("/operations")
async def list_ai_operations(
    operation: Optional[AIOperationType] = None,
    ticket_id: Optional[int] = Query(None, alias="ticketId"),
    success: Optional[bool] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    limit: int = Query(100, ge=1, le=1000),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Audit records, newest first, with statistics per operation and provider"""
    filters = AIOperationQuery(
        ticket_id=ticket_id,
        operation=operation,
        success=success,
        start=_parse_date(start_date, "startDate"),
        end=_parse_date(end_date, "endDate"),
        limit=limit,
    )
    try:
        records = await services.audit_log.query(filters)
    except PersistenceError as e:
        logger.error(f"Failed to get AI operations: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get AI operations"
        )

    return {
        "success": True,
        "operations": [record.model_dump(mode="json") for record in records],
        **build_statistics(records),
    }


# ============================================================================
# Utilities
# ============================================================================

@router.post("/summarize")
async def summarize(
    request: SummarizeRequest,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Summarize a transcript into summary, key points and action items"""
    if not services.ai_service.is_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service not configured"
        )

    result = await services.ai_service.execute(AIOperationType.SUMMARIZE, request.text)
    await services.audit_log.record(result, {"text": request.text}, ticket_id=request.ticket_id)

    return {
        "success": result.success,
        "summary": result.data.model_dump(mode="json", by_alias=True),
        "cached": result.cached,
        "error": result.error,
    }
