"""
Store interfaces and the shared Supabase repository base

The intake orchestrator, the audit log and the SLA engine only depend on
`TicketStore` / `AuditStore`; the Supabase repositories are the production
implementations.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ticketdesk.config import get_settings
from ticketdesk.models.schemas import (
    AIOperationQuery,
    AIOperationRecord,
    Ticket,
    TicketCreate,
)
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class TicketStore(ABC):
    """Persistence for ticket records"""

    @abstractmethod
    async def get(self, ticket_id: int) -> Optional[Ticket]:
        pass

    @abstractmethod
    async def insert(self, ticket: TicketCreate) -> Ticket:
        pass

    @abstractmethod
    async def update(self, ticket_id: int, fields: Dict[str, Any]) -> Optional[Ticket]:
        """
        Write only the given columns of one ticket

        Returns:
            The updated ticket, or None if it does not exist
        """

    @abstractmethod
    async def list_open_without_first_response(self) -> List[Ticket]:
        """Tickets with no first response whose status is not resolved/closed."""


class AuditStore(ABC):
    """Append-only persistence for AI operation records"""

    @abstractmethod
    async def append(self, record: AIOperationRecord) -> AIOperationRecord:
        pass

    @abstractmethod
    async def query(self, filters: AIOperationQuery) -> List[AIOperationRecord]:
        """Matching records, newest first."""


class SupabaseRepository:
    """Supabase client handling shared by the repositories."""

    table_name: str = ""

    def __init__(self, supabase_client=None) -> None:
        if supabase_client is None:
            from supabase import create_client  # Lazy import for tests

            self.client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key or settings.supabase_key
            )
        else:
            self.client = supabase_client

        logger.info("%s initialized for table: %s", type(self).__name__, self.table_name)

    @staticmethod
    def _serialize_payload(data: Dict[str, Any], keep_none: bool = False) -> Dict[str, Any]:
        """Prepare payload for Supabase (convert enums and datetimes, strip None)."""
        serialized: Dict[str, Any] = {}
        for key, value in data.items():
            if value is None and not keep_none:
                continue
            if isinstance(value, Enum):
                serialized[key] = value.value
            elif isinstance(value, datetime):
                serialized[key] = value.isoformat()
            else:
                serialized[key] = value
        return serialized
