"""
Ticket Repository

Supabase-backed `TicketStore` for the `tickets` table. Updates are partial
single-row writes so that the SLA sweep can set one marker without touching
columns written concurrently by agents.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from ticketdesk.exceptions import PersistenceError
from ticketdesk.models.schemas import CLOSED_STATUSES, Ticket, TicketCreate
from ticketdesk.repositories.base import SupabaseRepository, TicketStore
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


class TicketRepository(SupabaseRepository, TicketStore):
    """Repository for tickets table operations."""

    table_name = "tickets"

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def insert_ticket(self, ticket: TicketCreate) -> Ticket:
        """Insert a new ticket and return the stored row."""
        try:
            payload = self._serialize_payload(ticket.model_dump())

            response = self.client.table(self.table_name) \
                .insert(payload) \
                .execute()

            if not response.data:
                raise ValueError("Supabase insert returned no data")

            return Ticket.model_validate(response.data[0])

        except Exception as exc:
            logger.error("Failed to insert ticket: %s", exc)
            raise PersistenceError(f"Failed to insert ticket: {exc}") from exc

    async def insert(self, ticket: TicketCreate) -> Ticket:
        return await asyncio.to_thread(self.insert_ticket, ticket)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def get_ticket(self, ticket_id: int) -> Optional[Ticket]:
        """Fetch one ticket by id."""
        try:
            response = self.client.table(self.table_name) \
                .select("*") \
                .eq("id", ticket_id) \
                .limit(1) \
                .execute()

            rows = response.data or []
            return Ticket.model_validate(rows[0]) if rows else None

        except Exception as exc:
            logger.error("Failed to fetch ticket %s: %s", ticket_id, exc)
            raise PersistenceError(f"Failed to fetch ticket {ticket_id}: {exc}") from exc

    async def get(self, ticket_id: int) -> Optional[Ticket]:
        return await asyncio.to_thread(self.get_ticket, ticket_id)

    def fetch_open_without_first_response(self) -> List[Ticket]:
        """Tickets still waiting for a first response, oldest first."""
        try:
            response = self.client.table(self.table_name) \
                .select("*") \
                .is_("first_response_at", "null") \
                .not_.in_("status", [status.value for status in CLOSED_STATUSES]) \
                .order("created_at") \
                .execute()

            return [Ticket.model_validate(row) for row in response.data or []]

        except Exception as exc:
            logger.error("Failed to list open tickets: %s", exc)
            raise PersistenceError(f"Failed to list open tickets: {exc}") from exc

    async def list_open_without_first_response(self) -> List[Ticket]:
        return await asyncio.to_thread(self.fetch_open_without_first_response)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------
    def update_ticket(self, ticket_id: int, fields: Dict[str, Any]) -> Optional[Ticket]:
        """Write the given columns and return the updated row."""
        if not fields:
            raise ValueError("No updates provided")

        try:
            payload = self._serialize_payload(fields, keep_none=True)

            response = self.client.table(self.table_name) \
                .update(payload) \
                .eq("id", ticket_id) \
                .execute()

            rows = response.data or []
            return Ticket.model_validate(rows[0]) if rows else None

        except Exception as exc:
            logger.error("Failed to update ticket %s: %s", ticket_id, exc)
            raise PersistenceError(f"Failed to update ticket {ticket_id}: {exc}") from exc

    async def update(self, ticket_id: int, fields: Dict[str, Any]) -> Optional[Ticket]:
        return await asyncio.to_thread(self.update_ticket, ticket_id, fields)
