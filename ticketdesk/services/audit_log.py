"""
Audit Log for AI operations

Every attempted AI call (including cache hits) produces exactly one
`AIOperationRecord`, whether it succeeded or not. Writing the record is
best-effort: a failing audit store is logged and never breaks the caller.
"""
from collections import defaultdict
from typing import Any, Dict, List, Optional

from ticketdesk.exceptions import PersistenceError
from ticketdesk.models.schemas import AIOperationQuery, AIOperationRecord
from ticketdesk.repositories.base import AuditStore
from ticketdesk.services.ai_service import AICallResult
from ticketdesk.utils.logger import get_logger
from ticketdesk.utils.token_counter import TokenCounter

logger = get_logger(__name__)


class AuditLog:
    """Append-only record of AI operations"""

    def __init__(self, store: AuditStore, token_counter: Optional[TokenCounter] = None):
        self.store = store
        self.token_counter = token_counter

    async def record(
        self,
        result: AICallResult,
        input_snapshot: Dict[str, Any],
        ticket_id: Optional[int] = None,
        call_id: Optional[str] = None,
    ) -> Optional[AIOperationRecord]:
        """
        Append one record for an AI call

        Calls that never reached a provider (no provider configured, empty
        input) are not audited.

        Args:
            result: Outcome returned by AIService.execute
            input_snapshot: Input sent to the provider
            ticket_id: Ticket the call belongs to, if any
            call_id: Originating call id, if any

        Returns:
            Stored record, or None when skipped or the store failed
        """
        if not result.attempted:
            return None

        output = result.data.model_dump(mode="json", by_alias=True) if result.success else None
        tokens_used, cost_estimate = self._estimate(result, input_snapshot, output)

        record = AIOperationRecord(
            ticket_id=ticket_id,
            call_id=call_id,
            operation=result.operation,
            provider=result.provider,
            model=result.model,
            input=input_snapshot,
            output=output,
            success=result.success,
            response_time_ms=result.response_time_ms,
            error_message=result.error,
            tokens_used=tokens_used,
            cost_estimate=cost_estimate,
        )

        try:
            return await self.store.append(record)
        except Exception as exc:
            logger.error(
                "Failed to write audit record for %s (ticket %s): %s",
                result.operation.value, ticket_id, exc
            )
            return None

    def _estimate(
        self,
        result: AICallResult,
        input_snapshot: Dict[str, Any],
        output: Optional[Dict[str, Any]],
    ):
        if self.token_counter is None or result.cached:
            return None, None
        try:
            input_tokens = self.token_counter.count_tokens_in_dict(input_snapshot)
            output_tokens = self.token_counter.count_tokens_in_dict(output or {})
            cost = self.token_counter.estimate_cost(
                input_tokens, output_tokens, model_name=result.model
            )
            return input_tokens + output_tokens, cost
        except Exception as exc:
            logger.debug("Token estimation failed: %s", exc)
            return None, None

    async def query(self, filters: AIOperationQuery) -> List[AIOperationRecord]:
        """
        Read audit records

        Raises:
            PersistenceError: If the audit store cannot be read
        """
        try:
            return await self.store.query(filters)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Failed to query AI operations: {exc}") from exc


def build_statistics(records: List[AIOperationRecord]) -> Dict[str, Any]:
    """
    Aggregate audit records per (operation, provider)

    Returns:
        {"statistics": [...], "summary": {...}} with camelCase keys
    """
    groups: Dict[tuple, List[AIOperationRecord]] = defaultdict(list)
    for record in records:
        groups[(record.operation.value, record.provider)].append(record)

    statistics = []
    for (operation, provider), items in sorted(groups.items(), key=lambda kv: (kv[0][0], kv[0][1] or "")):
        statistics.append({
            "operation": operation,
            "provider": provider,
            "totalCount": len(items),
            "successCount": sum(1 for r in items if r.success),
            "avgResponseTime": round(sum(r.response_time_ms for r in items) / len(items)),
            "totalCost": round(sum(r.cost_estimate or 0.0 for r in items), 6),
        })

    total = len(records)
    successes = sum(1 for r in records if r.success)
    summary = {
        "totalOperations": total,
        "uniqueProviders": sorted({r.provider for r in records if r.provider}),
        "uniqueOperationTypes": sorted({r.operation.value for r in records}),
        "overallSuccessRate": round(successes / total * 100, 2) if total else 0.0,
    }
    return {"statistics": statistics, "summary": summary}
