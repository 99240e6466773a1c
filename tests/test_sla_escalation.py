"""
Tests for the SLA escalation sweep
"""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from ticketdesk.exceptions import PersistenceError
from ticketdesk.models.schemas import (
    EscalationTier,
    RequestType,
    SLAPolicy,
    SLAThresholds,
    TicketStatus,
)
from ticketdesk.services.notification_templates import SLAAlertContext, render_sla_alert
from ticketdesk.services.notifications import NotificationService
from ticketdesk.services.sla_escalation import (
    SLAEscalationEngine,
    compute_tier,
    evaluate_ticket,
)
from tests.conftest import T0, InMemoryTicketStore, RecordingChannel, make_ticket


def minutes(n: float):
    return T0 + timedelta(minutes=n)


class TestTiers:
    """Ratio to tier mapping"""

    @pytest.mark.parametrize("ratio,expected", [
        (0.0, EscalationTier.NONE),
        (0.7499, EscalationTier.NONE),
        (0.75, EscalationTier.WARNING),
        (0.8999, EscalationTier.WARNING),
        (0.9, EscalationTier.URGENT),
        (0.9999, EscalationTier.URGENT),
        (1.0, EscalationTier.BREACH),
        (3.5, EscalationTier.BREACH),
    ])
    def test_boundaries(self, ratio, expected):
        assert compute_tier(ratio, SLAThresholds()) == expected

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ValidationError):
            SLAThresholds(warning=0.9, urgent=0.8, breach=1.0)
        with pytest.raises(ValidationError):
            SLAThresholds(warning=0, urgent=0.8, breach=1.0)

    def test_policy_requires_other_deadline(self):
        with pytest.raises(ValidationError):
            SLAPolicy(sla_minutes={"quote": 120})

    def test_policy_rejects_non_positive_deadline(self):
        with pytest.raises(ValidationError):
            SLAPolicy(sla_minutes={"other": 0})

    def test_missing_type_uses_other_deadline(self):
        policy = SLAPolicy(sla_minutes={"other": 100})
        evaluation = evaluate_ticket(make_ticket(request_type=RequestType.CLAIM), minutes(80), policy)

        assert evaluation.deadline_minutes == 100
        assert evaluation.tier == EscalationTier.WARNING

    def test_clock_skew_counts_as_zero_elapsed(self, sla_policy):
        evaluation = evaluate_ticket(make_ticket(), minutes(-5), sla_policy)

        assert evaluation.elapsed_minutes == 0
        assert evaluation.tier == EscalationTier.NONE

    def test_naive_timestamps_are_treated_as_utc(self, sla_policy):
        ticket = make_ticket(created_at=T0.replace(tzinfo=None))
        evaluation = evaluate_ticket(ticket, minutes(30), sla_policy)

        assert evaluation.elapsed_minutes == pytest.approx(30)


class TestSweep:
    """Escalation across repeated sweeps"""

    @pytest.mark.asyncio
    async def test_warning_then_breach(self, sla_engine, ticket_store, channel):
        ticket_store.add(make_ticket(1, RequestType.COA))

        first = await sla_engine.run_sweep(now=minutes(46))
        assert first.tickets_checked == 1
        assert first.warnings_sent == 1
        assert first.breaches_detected == 0
        assert ticket_store.tickets[1].warning_sent_at == minutes(46)
        assert len(channel.sent) == 1
        assert channel.sent[0]["subject"] == "SLA Warning: COA Ticket #1 at 77%"

        second = await sla_engine.run_sweep(now=minutes(50))
        assert second.warnings_sent == 0
        assert len(channel.sent) == 1

        third = await sla_engine.run_sweep(now=minutes(61))
        assert third.breaches_detected == 1
        assert ticket_store.tickets[1].breached is True
        assert len(channel.sent) == 2
        assert channel.sent[1]["subject"] == "SLA BREACH: COA Ticket #1"
        assert third.errors == []

    @pytest.mark.asyncio
    async def test_breach_notifies_once(self, sla_engine, ticket_store, channel):
        ticket_store.add(make_ticket(1, RequestType.COA))

        await sla_engine.run_sweep(now=minutes(61))
        await sla_engine.run_sweep(now=minutes(90))
        result = await sla_engine.run_sweep(now=minutes(600))

        assert result.breaches_detected == 0
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_skipped_tiers_are_not_replayed(self, sla_engine, ticket_store, channel):
        ticket_store.add(make_ticket(1, RequestType.COA))

        await sla_engine.run_sweep(now=minutes(55))

        ticket = ticket_store.tickets[1]
        assert ticket.urgent_sent_at == minutes(55)
        assert ticket.warning_sent_at is None
        assert [m["subject"] for m in channel.sent] == ["SLA URGENT: COA Ticket #1 at 92%"]

    @pytest.mark.asyncio
    async def test_urgent_after_warning(self, sla_engine, ticket_store, channel):
        ticket_store.add(make_ticket(1, RequestType.COA))

        await sla_engine.run_sweep(now=minutes(46))
        result = await sla_engine.run_sweep(now=minutes(56))

        assert result.warnings_sent == 1
        assert ticket_store.tickets[1].urgent_sent_at == minutes(56)
        assert len(channel.sent) == 2

    @pytest.mark.asyncio
    async def test_recipients_per_tier(self, sla_engine, ticket_store, channel, sla_policy):
        ticket_store.add(make_ticket(1, RequestType.COA))
        ticket_store.add(make_ticket(2, RequestType.COA, created_at=minutes(-10)))
        ticket_store.add(make_ticket(3, RequestType.COA, created_at=minutes(-20)))

        await sla_engine.run_sweep(now=minutes(46))

        by_subject = {m["subject"].split(":")[0]: m["recipients"] for m in channel.sent}
        assert by_subject["SLA Warning"] == sla_policy.recipients[EscalationTier.WARNING]
        assert by_subject["SLA URGENT"] == sla_policy.recipients[EscalationTier.URGENT]
        assert by_subject["SLA BREACH"] == sla_policy.recipients[EscalationTier.BREACH]

    @pytest.mark.asyncio
    async def test_fresh_and_answered_tickets_are_ignored(self, sla_engine, ticket_store, channel):
        ticket_store.add(make_ticket(1, RequestType.COA, created_at=minutes(30)))
        ticket_store.add(make_ticket(2, RequestType.COA, first_response_at=minutes(5)))
        ticket_store.add(make_ticket(3, RequestType.COA, status=TicketStatus.RESOLVED))

        result = await sla_engine.run_sweep(now=minutes(61))

        assert result.tickets_checked == 1
        assert channel.sent == []
        assert ticket_store.updates == []


class TestSweepFailures:
    """Failures are collected per ticket"""

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_marker(self, sla_engine, ticket_store, channel):
        ticket_store.add(make_ticket(1, RequestType.COA))
        ticket_store.add(make_ticket(2, RequestType.COA))
        channel.fail = True

        result = await sla_engine.run_sweep(now=minutes(61))

        assert result.tickets_checked == 2
        assert result.breaches_detected == 2
        assert len(result.errors) == 2
        assert result.errors[0].startswith("Failed to send breach notification for ticket #1")
        assert ticket_store.tickets[1].breached is True

        channel.fail = False
        retry = await sla_engine.run_sweep(now=minutes(62))
        assert retry.breaches_detected == 0
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_marker_write_failure_skips_notification(self, sla_engine, ticket_store, channel):
        ticket_store.add(make_ticket(1, RequestType.COA))
        ticket_store.add(make_ticket(2, RequestType.COA))
        ticket_store.fail_update_ids = {1}

        result = await sla_engine.run_sweep(now=minutes(46))

        assert result.warnings_sent == 1
        assert result.errors == ["Failed to mark warning for ticket #1: write conflict"]
        assert [m["subject"] for m in channel.sent] == ["SLA Warning: COA Ticket #2 at 77%"]

    @pytest.mark.asyncio
    async def test_listing_failure_raises(self, sla_engine, ticket_store):
        ticket_store.fail_list = True

        with pytest.raises(PersistenceError):
            await sla_engine.run_sweep(now=minutes(61))

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported_per_ticket(self, notifier, sla_policy, channel):
        class ExplodingStore(InMemoryTicketStore):
            async def update(self, ticket_id, fields):
                if ticket_id == 1:
                    raise RuntimeError("boom")
                return await super().update(ticket_id, fields)

        store = ExplodingStore()
        store.add(make_ticket(1, RequestType.COA))
        store.add(make_ticket(2, RequestType.COA))
        engine = SLAEscalationEngine(store, notifier, sla_policy)

        result = await engine.run_sweep(now=minutes(61))

        assert result.errors == ["Failed to process ticket #1: boom"]
        assert result.breaches_detected == 1
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_ticket_resolved_during_sweep_is_still_notified(self, notifier, sla_policy, channel):
        class StaleListStore(InMemoryTicketStore):
            async def list_open_without_first_response(self):
                snapshot = list(self.tickets.values())
                for ticket in snapshot:
                    self.tickets[ticket.id] = ticket.model_copy(update={"status": TicketStatus.RESOLVED})
                return snapshot

        store = StaleListStore()
        store.add(make_ticket(1, RequestType.COA))
        engine = SLAEscalationEngine(store, notifier, sla_policy)

        result = await engine.run_sweep(now=minutes(61))

        assert result.breaches_detected == 1
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_no_channels_reports_error(self, ticket_store, sla_policy):
        engine = SLAEscalationEngine(ticket_store, NotificationService([]), sla_policy)
        ticket_store.add(make_ticket(1, RequestType.COA))

        result = await engine.run_sweep(now=minutes(61))

        assert result.breaches_detected == 1
        assert "No notification channel configured" in result.errors[0]


class TestTemplates:
    """SLA alert rendering"""

    def _context(self, tier, elapsed, **ticket_fields):
        return SLAAlertContext(
            ticket=make_ticket(42, RequestType.QUOTE, **ticket_fields),
            tier=tier,
            elapsed_minutes=elapsed,
            deadline_minutes=120,
            ratio=elapsed / 120,
            app_url="https://desk.example.com/",
        )

    def test_breach(self):
        rendered = render_sla_alert(self._context(EscalationTier.BREACH, 130))

        assert rendered.subject == "SLA BREACH: QUOTE Ticket #42"
        assert "https://desk.example.com/tickets/42" in rendered.html_body
        assert "Time elapsed: 130 minutes" in rendered.text_body

    def test_urgent(self):
        rendered = render_sla_alert(self._context(EscalationTier.URGENT, 110))

        assert rendered.subject == "SLA URGENT: QUOTE Ticket #42 at 92%"
        assert "Time remaining: 10 minutes" in rendered.text_body

    def test_warning(self):
        rendered = render_sla_alert(self._context(EscalationTier.WARNING, 90, assignee=None))

        assert rendered.subject == "SLA Warning: QUOTE Ticket #42 at 75%"
        assert "Unassigned" in rendered.text_body

    def test_html_is_escaped(self):
        rendered = render_sla_alert(
            self._context(EscalationTier.BREACH, 130, summary="<script>alert(1)</script>")
        )

        assert "<script>" not in rendered.html_body
        assert "&lt;script&gt;" in rendered.html_body
