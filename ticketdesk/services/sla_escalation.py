"""
SLA Escalation Engine

A sweep over tickets that are still waiting for a first response. For each
ticket the elapsed/deadline ratio selects a tier:

    ratio >= breach  -> BREACH
    ratio >= urgent  -> URGENT
    ratio >= warning -> WARNING
    otherwise        -> NONE

Each tier notifies at most once per ticket. The marker (`breached`,
`urgent_sent_at`, `warning_sent_at`) is written before the notification is
sent, as a single-row partial update; skipped tiers are not replayed.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ticketdesk.exceptions import PersistenceError
from ticketdesk.models.schemas import (
    EscalationTier,
    SLAPolicy,
    SLAThresholds,
    SweepResult,
    Ticket,
)
from ticketdesk.repositories.base import TicketStore
from ticketdesk.services.notification_templates import SLAAlertContext, render_sla_alert
from ticketdesk.services.notifications import NotificationService
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


def compute_tier(ratio: float, thresholds: SLAThresholds) -> EscalationTier:
    """Map an elapsed/deadline ratio onto a tier"""
    if ratio >= thresholds.breach:
        return EscalationTier.BREACH
    if ratio >= thresholds.urgent:
        return EscalationTier.URGENT
    if ratio >= thresholds.warning:
        return EscalationTier.WARNING
    return EscalationTier.NONE


@dataclass
class TierEvaluation:
    elapsed_minutes: float
    deadline_minutes: int
    ratio: float
    tier: EscalationTier


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def evaluate_ticket(ticket: Ticket, now: datetime, policy: SLAPolicy) -> TierEvaluation:
    """
    Compute where a ticket stands against its SLA deadline

    Args:
        ticket: Ticket to evaluate
        now: Evaluation time
        policy: Deadlines and thresholds

    Returns:
        TierEvaluation
    """
    elapsed = (_as_utc(now) - _as_utc(ticket.created_at)).total_seconds() / 60
    elapsed = max(elapsed, 0.0)
    deadline = policy.deadline_for(ticket.request_type)
    ratio = elapsed / deadline
    return TierEvaluation(
        elapsed_minutes=elapsed,
        deadline_minutes=deadline,
        ratio=ratio,
        tier=compute_tier(ratio, policy.thresholds),
    )


class SLAEscalationEngine:
    """Runs SLA sweeps over open tickets"""

    def __init__(
        self,
        ticket_store: TicketStore,
        notifier: NotificationService,
        policy: SLAPolicy,
        app_url: str = "",
    ):
        self.ticket_store = ticket_store
        self.notifier = notifier
        self.policy = policy
        self.app_url = app_url

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Check every open ticket without a first response

        Args:
            now: Evaluation time (defaults to the current UTC time)

        Returns:
            SweepResult counters; per-ticket failures are listed in `errors`

        Raises:
            PersistenceError: If the open tickets cannot be listed
        """
        now = _as_utc(now or datetime.now(timezone.utc))
        result = SweepResult()

        tickets = await self.ticket_store.list_open_without_first_response()

        for ticket in tickets:
            result.tickets_checked += 1
            try:
                await self._process_ticket(ticket, now, result)
            except Exception as exc:
                logger.error(f"SLA check failed for ticket #{ticket.id}: {exc}")
                result.errors.append(f"Failed to process ticket #{ticket.id}: {exc}")

        logger.info(
            f"SLA Check completed: {result.tickets_checked} tickets checked, "
            f"{result.breaches_detected} breaches detected, {result.warnings_sent} warnings sent, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _process_ticket(self, ticket: Ticket, now: datetime, result: SweepResult) -> None:
        evaluation = evaluate_ticket(ticket, now, self.policy)
        tier = evaluation.tier

        fields: Dict[str, Any]
        if tier == EscalationTier.BREACH and not ticket.breached:
            fields = {"breached": True}
        elif tier == EscalationTier.URGENT and ticket.urgent_sent_at is None:
            fields = {"urgent_sent_at": now}
        elif tier == EscalationTier.WARNING and ticket.warning_sent_at is None:
            fields = {"warning_sent_at": now}
        else:
            return

        try:
            updated = await self.ticket_store.update(ticket.id, fields)
        except PersistenceError as exc:
            result.errors.append(f"Failed to mark {tier.value} for ticket #{ticket.id}: {exc}")
            return

        if updated is None:
            result.errors.append(f"Ticket #{ticket.id} disappeared before its {tier.value} marker was written")
            return

        if updated.is_closed or updated.first_response_at is not None:
            logger.warning(
                f"Ticket #{ticket.id} was answered or closed during the SLA sweep; "
                f"sending {tier.value} notification anyway"
            )

        if tier == EscalationTier.BREACH:
            result.breaches_detected += 1
        else:
            result.warnings_sent += 1

        rendered = render_sla_alert(SLAAlertContext(
            ticket=ticket,
            tier=tier,
            elapsed_minutes=evaluation.elapsed_minutes,
            deadline_minutes=evaluation.deadline_minutes,
            ratio=evaluation.ratio,
            app_url=self.app_url,
        ))
        recipients = self.policy.recipients.get(tier, [])
        report = await self.notifier.notify(recipients, rendered)

        if not report.success:
            result.errors.append(
                f"Failed to send {tier.value} notification for ticket #{ticket.id}: "
                f"{report.describe_failures()}"
            )
