"""
SLA alert rendering

Produces subject, HTML body and plain-text body for the three escalation
tiers. Ticket values come from customers and agents, so everything inserted
into HTML is escaped.
"""
from dataclasses import dataclass
from html import escape

from ticketdesk.models.schemas import EscalationTier, Ticket

TIER_STYLE = {
    EscalationTier.WARNING: ("#ffc107", "#212529", "SLA Warning"),
    EscalationTier.URGENT: ("#fd7e14", "white", "Urgent SLA Warning"),
    EscalationTier.BREACH: ("#dc3545", "white", "SLA Breach Alert"),
}


@dataclass
class SLAAlertContext:
    """Values shown in an SLA alert"""
    ticket: Ticket
    tier: EscalationTier
    elapsed_minutes: float
    deadline_minutes: int
    ratio: float
    app_url: str

    @property
    def percent(self) -> int:
        return round(self.ratio * 100)

    @property
    def remaining_minutes(self) -> int:
        return round(self.deadline_minutes - self.elapsed_minutes)

    @property
    def type_label(self) -> str:
        return self.ticket.request_type.value.upper()

    @property
    def ticket_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/tickets/{self.ticket.id}"


@dataclass
class RenderedNotification:
    subject: str
    html_body: str
    text_body: str


def _row(label: str, value: str) -> str:
    return (
        f'<tr><td style="padding: 8px 0;"><strong>{escape(label)}:</strong></td>'
        f'<td style="padding: 8px 0;">{escape(value)}</td></tr>'
    )


def _wrap(context: SLAAlertContext, intro: str, rows: str) -> str:
    background, color, title = TIER_STYLE[context.tier]
    url = escape(context.ticket_url, quote=True)
    return f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: {background}; color: {color}; padding: 20px; border-radius: 8px 8px 0 0;">
    <h2 style="margin: 0;">{title}</h2>
  </div>
  <div style="background-color: #f8f9fa; padding: 20px; border: 1px solid #dee2e6; border-top: none;">
    {intro}
    <table style="width: 100%; border-collapse: collapse;">{rows}</table>
    <div style="margin-top: 20px;">
      <a href="{url}" style="display: inline-block; padding: 10px 20px; background-color: {background}; color: {color}; text-decoration: none; border-radius: 4px;">View Ticket</a>
    </div>
  </div>
</div>"""


def render_breach(context: SLAAlertContext) -> RenderedNotification:
    ticket = context.ticket
    customer = f"{ticket.customer_name or 'Unknown'} ({ticket.customer_email or 'No email'})"
    elapsed = round(context.elapsed_minutes)
    rows = "".join([
        _row("Ticket ID", f"#{ticket.id}"),
        _row("Request Type", context.type_label),
        _row("Customer", customer),
        _row("Assignee", ticket.assignee or "Unassigned"),
        _row("SLA Target", f"{context.deadline_minutes} minutes"),
        _row("Time Elapsed", f"{elapsed} minutes ({context.percent}% of SLA)"),
        _row("Summary", ticket.summary or "No summary available"),
    ])
    return RenderedNotification(
        subject=f"SLA BREACH: {context.type_label} Ticket #{ticket.id}",
        html_body=_wrap(context, "", rows),
        text_body=(
            f"SLA BREACH Alert: Ticket #{ticket.id} ({ticket.request_type.value}) has breached "
            f"its SLA of {context.deadline_minutes} minutes. Time elapsed: {elapsed} minutes. "
            f"Customer: {customer}. Assignee: {ticket.assignee or 'Unassigned'}. "
            f"View ticket: {context.ticket_url}"
        ),
    )


def render_urgent(context: SLAAlertContext) -> RenderedNotification:
    ticket = context.ticket
    rows = "".join([
        _row("Request Type", context.type_label),
        _row("Time Remaining", f"{context.remaining_minutes} minutes"),
        _row("Assignee", ticket.assignee or "Unassigned"),
    ])
    intro = f"<p><strong>Ticket #{ticket.id}</strong> is at risk of breaching SLA!</p>"
    return RenderedNotification(
        subject=f"SLA URGENT: {context.type_label} Ticket #{ticket.id} at {context.percent}%",
        html_body=_wrap(context, intro, rows),
        text_body=(
            f"URGENT: Ticket #{ticket.id} ({ticket.request_type.value}) is at {context.percent}% "
            f"of SLA. Time remaining: {context.remaining_minutes} minutes. "
            f"Assignee: {ticket.assignee or 'Unassigned'}. View ticket: {context.ticket_url}"
        ),
    )


def render_warning(context: SLAAlertContext) -> RenderedNotification:
    ticket = context.ticket
    rows = "".join([
        _row("Progress", f"{context.percent}% of SLA"),
        _row("Time Remaining", f"{context.remaining_minutes} minutes"),
        _row("Assignee", ticket.assignee or "Unassigned"),
    ])
    intro = f"<p>Ticket #{ticket.id} is approaching its SLA limit.</p>"
    return RenderedNotification(
        subject=f"SLA Warning: {context.type_label} Ticket #{ticket.id} at {context.percent}%",
        html_body=_wrap(context, intro, rows),
        text_body=(
            f"SLA Warning: Ticket #{ticket.id} ({ticket.request_type.value}) is at {context.percent}% "
            f"of SLA. Time remaining: {context.remaining_minutes} minutes. "
            f"Assignee: {ticket.assignee or 'Unassigned'}. View ticket: {context.ticket_url}"
        ),
    )


RENDERERS = {
    EscalationTier.WARNING: render_warning,
    EscalationTier.URGENT: render_urgent,
    EscalationTier.BREACH: render_breach,
}


def render_sla_alert(context: SLAAlertContext) -> RenderedNotification:
    """Render the alert for the context's tier"""
    return RENDERERS[context.tier](context)
