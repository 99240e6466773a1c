"""
Ticket Desk exception hierarchy
"""
from typing import Dict, List, Optional


class TicketDeskError(Exception):
    """Base class for all application errors"""


class ConfigurationError(TicketDeskError):
    """AI provider selection or credentials are missing or unsupported"""


class ProviderError(TicketDeskError):
    """An upstream AI call failed or returned unusable output"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.operation = operation


class ProviderTimeoutError(ProviderError):
    """An upstream AI call did not finish within the configured timeout"""


class PersistenceError(TicketDeskError):
    """A ticket or audit store operation failed"""


class NotificationError(TicketDeskError):
    """A notification channel could not deliver a message"""

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(message)
        self.channel = channel


class IntakeValidationError(TicketDeskError):
    """Intake input was rejected before the pipeline started"""

    def __init__(self, field_errors: Dict[str, List[str]]):
        self.field_errors = field_errors
        fields = ", ".join(sorted(field_errors))
        super().__init__(f"Invalid ticket input: {fields}")
