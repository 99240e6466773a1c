"""
Scheduled job triggers

- POST /api/v1/jobs/sla-check - run one SLA sweep (bearer token)
- GET /api/v1/jobs/sla-check - SLA table and recommended schedule
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ticketdesk.dependencies import ServiceContainer, get_services
from ticketdesk.exceptions import PersistenceError
from ticketdesk.utils.auth import verify_service_token
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])

SLA_CHECK_PATH = "/api/v1/jobs/sla-check"


@router.post("/sla-check", dependencies=[Depends(verify_service_token)])
async def run_sla_check(services: ServiceContainer = Depends(get_services)):
    """Run one SLA escalation sweep"""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        result = await services.sla_engine.run_sweep()
    except PersistenceError as e:
        logger.error(f"SLA check job failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "timestamp": timestamp, "error": "SLA check failed"},
        )

    return {
        "success": True,
        "timestamp": timestamp,
        "result": result.model_dump(by_alias=True),
    }


@router.get("/sla-check")
async def describe_sla_check(services: ServiceContainer = Depends(get_services)) -> Dict[str, Any]:
    """How the SLA check is configured and how to call it"""
    policy = services.sla_engine.policy
    return {
        "success": True,
        "configuration": {
            "slaMinutes": policy.sla_minutes,
            "thresholds": policy.thresholds.model_dump(),
            "endpoint": SLA_CHECK_PATH,
            "method": "POST",
            "authentication": "Bearer token required (CRON_SECRET or SERVICE_SECRET)",
            "frequency": services.settings.sla_check_frequency,
        },
    }
