"""
AI Operation Repository

Append-only `AuditStore` over the `ai_operations` table. Rows are inserted
once per attempted AI call and never updated.
"""
from __future__ import annotations

import asyncio
from typing import List

from ticketdesk.exceptions import PersistenceError
from ticketdesk.models.schemas import AIOperationQuery, AIOperationRecord
from ticketdesk.repositories.base import AuditStore, SupabaseRepository
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


class AIOperationRepository(SupabaseRepository, AuditStore):
    """Repository for ai_operations table operations."""

    table_name = "ai_operations"

    def append_record(self, record: AIOperationRecord) -> AIOperationRecord:
        """Insert one audit record."""
        try:
            payload = self._serialize_payload(record.model_dump(exclude={"id", "created_at"}))

            response = self.client.table(self.table_name) \
                .insert(payload) \
                .execute()

            if not response.data:
                raise ValueError("Supabase insert returned no data")

            return AIOperationRecord.model_validate(response.data[0])

        except Exception as exc:
            logger.error("Failed to append AI operation: %s", exc)
            raise PersistenceError(f"Failed to append AI operation: {exc}") from exc

    async def append(self, record: AIOperationRecord) -> AIOperationRecord:
        return await asyncio.to_thread(self.append_record, record)

    def query_records(self, filters: AIOperationQuery) -> List[AIOperationRecord]:
        """Fetch audit records matching the filters, newest first."""
        try:
            query = self.client.table(self.table_name).select("*")

            if filters.ticket_id is not None:
                query = query.eq("ticket_id", filters.ticket_id)
            if filters.operation is not None:
                query = query.eq("operation", filters.operation.value)
            if filters.success is not None:
                query = query.eq("success", filters.success)
            if filters.start is not None:
                query = query.gte("created_at", filters.start.isoformat())
            if filters.end is not None:
                query = query.lte("created_at", filters.end.isoformat())

            response = query \
                .order("created_at", desc=True) \
                .limit(filters.limit) \
                .execute()

            return [AIOperationRecord.model_validate(row) for row in response.data or []]

        except Exception as exc:
            logger.error("Failed to query AI operations: %s", exc)
            raise PersistenceError(f"Failed to query AI operations: {exc}") from exc

    async def query(self, filters: AIOperationQuery) -> List[AIOperationRecord]:
        return await asyncio.to_thread(self.query_records, filters)
