"""
Notification fan-out

Delivers a rendered message through every configured channel. Channels
raise `NotificationError`; `NotificationService.notify` collects failures
into a `DeliveryReport` and never raises.

Channels:
- Mailgun email (HTTP API)
- Slack incoming webhook
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from ticketdesk.config import Settings
from ticketdesk.exceptions import NotificationError
from ticketdesk.services.notification_templates import RenderedNotification
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationChannel(ABC):
    """One delivery mechanism"""

    name: str = "channel"

    @abstractmethod
    async def send(
        self,
        recipients: List[str],
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        """
        Deliver a message

        Raises:
            NotificationError: If delivery failed
        """


class MailgunEmailChannel(NotificationChannel):
    """Email delivery through the Mailgun HTTP API"""

    name = "email"

    def __init__(
        self,
        api_key: str,
        domain: str,
        sender: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.domain = domain
        self.sender = sender
        self.timeout = timeout
        self.transport = transport
        self.url = f"https://api.mailgun.net/v3/{domain}/messages"

    async def send(
        self,
        recipients: List[str],
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        if not recipients:
            raise NotificationError("No email recipients", channel=self.name)

        data = {
            "from": self.sender,
            "to": recipients,
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, auth=("api", self.api_key), data=data)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"Mailgun returned {e.response.status_code}", channel=self.name
            ) from e
        except httpx.HTTPError as e:
            raise NotificationError(f"Mailgun request failed: {e}", channel=self.name) from e

        logger.info(f"Email sent to {len(recipients)} recipient(s): {subject}")


class SlackWebhookChannel(NotificationChannel):
    """Posts the plain-text body to a Slack incoming webhook"""

    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    async def send(
        self,
        recipients: List[str],
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        payload = {"text": f"*{subject}*\n{text_body}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"Slack webhook failed: {e.response.status_code}", channel=self.name
            ) from e
        except httpx.HTTPError as e:
            raise NotificationError(f"Slack webhook request failed: {e}", channel=self.name) from e


@dataclass
class DeliveryReport:
    """Per-channel outcome of one notification"""
    delivered: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.delivered) and not self.failures

    def describe_failures(self) -> str:
        return "; ".join(f"{channel}: {error}" for channel, error in self.failures.items())


class NotificationService:
    """Fans a message out to every channel"""

    def __init__(self, channels: Optional[List[NotificationChannel]] = None):
        self.channels = list(channels or [])

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationService":
        channels: List[NotificationChannel] = []
        if settings.mailgun_api_key and settings.mailgun_domain:
            channels.append(MailgunEmailChannel(
                api_key=settings.mailgun_api_key,
                domain=settings.mailgun_domain,
                sender=settings.mail_from,
            ))
        if settings.slack_webhook_url:
            channels.append(SlackWebhookChannel(settings.slack_webhook_url))
        if not channels:
            logger.warning("No notification channels configured; SLA alerts will not be delivered")
        return cls(channels)

    async def notify(self, recipients: List[str], message: RenderedNotification) -> DeliveryReport:
        """
        Deliver through all channels; failures are reported, not raised

        Args:
            recipients: Addresses for channels that address people
            message: Rendered subject and bodies

        Returns:
            DeliveryReport
        """
        report = DeliveryReport()
        if not self.channels:
            report.failures["none"] = "No notification channel configured"
            return report

        for channel in self.channels:
            try:
                await channel.send(recipients, message.subject, message.html_body, message.text_body)
                report.delivered.append(channel.name)
            except Exception as exc:
                logger.warning(f"Notification via {channel.name} failed: {exc}")
                report.failures[channel.name] = str(exc)

        return report
