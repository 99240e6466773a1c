"""
Prompt templates for the AI operations

Providers share these so that switching backend does not change what the
model is asked. Each template asks for a single JSON object whose keys match
the camelCase aliases of the result models.
"""
from typing import Dict, NamedTuple, Optional

from ticketdesk.models.schemas import AIOperationType, ResponseContext


class OperationSettings(NamedTuple):
    """Sampling settings used for one operation"""
    system_prompt: str
    temperature: Optional[float]
    max_tokens: int


OPERATION_SETTINGS: Dict[AIOperationType, OperationSettings] = {
    AIOperationType.CLASSIFY: OperationSettings(
        "You are an AI assistant specialized in classifying customer service "
        "tickets for a chemical supply company.",
        0.3,
        1000,
    ),
    AIOperationType.SENTIMENT: OperationSettings(
        "You are an AI sentiment analysis specialist.",
        0.3,
        500,
    ),
    AIOperationType.EXTRACT: OperationSettings(
        "You are an AI assistant that extracts structured data from customer "
        "service conversations.",
        0.2,
        1000,
    ),
    AIOperationType.SUMMARIZE: OperationSettings(
        "You are an AI assistant specialized in summarizing customer service calls.",
        0.5,
        1200,
    ),
    # None -> use the configured temperature
    AIOperationType.SUGGEST: OperationSettings(
        "You are an AI assistant helping customer service agents craft responses.",
        None,
        1500,
    ),
}


def classification_prompt(text: str) -> str:
    return f"""Analyze the following customer service request and classify it:

{text}

Classify this into one of these request types:
- quote: Request for pricing or product quotes
- coa: Certificate of Analysis request
- freight: Shipping, delivery, or logistics inquiries
- claim: Complaints, issues, or damage claims
- other: Anything else

Also determine priority (low, normal, high, urgent) based on customer urgency,
business impact and time sensitivity. List any products mentioned.

Respond in JSON format with:
{{
  "requestType": "...",
  "priority": "...",
  "confidence": 0.0-1.0,
  "suggestedTags": [],
  "extractedProducts": [],
  "reasoning": "..."
}}"""


def sentiment_prompt(text: str) -> str:
    return f"""Analyze the sentiment and emotional tone of this customer message:

{text}

Respond in JSON format:
{{
  "sentiment": "positive" | "neutral" | "negative",
  "score": -1.0 (very negative) to 1.0 (very positive),
  "emotions": {{"anger": 0.0-1.0, "frustration": 0.0-1.0, "satisfaction": 0.0-1.0, "urgency": 0.0-1.0}},
  "urgencyIndicators": []
}}"""


def extraction_prompt(text: str) -> str:
    return f"""Extract all relevant entities from this customer service text:

{text}

Respond in JSON format (omit what is not present):
{{
  "customerName": "...",
  "companyName": "...",
  "phoneNumbers": [],
  "emails": [],
  "addresses": [],
  "products": [{{"name": "...", "quantity": 0, "unit": "..."}}],
  "orderNumbers": [],
  "trackingNumbers": [],
  "dates": {{"delivery": "YYYY-MM-DD"}},
  "amounts": [{{"value": 0, "currency": "USD", "type": "quote"}}]
}}"""


def summary_prompt(text: str) -> str:
    return f"""Summarize this customer service call transcript:

{text}

Provide a concise summary (2-3 sentences), the key points discussed and the
action items identified.

Respond in JSON format:
{{
  "summary": "...",
  "keyPoints": [],
  "actionItems": []
}}"""


def response_prompt(context: ResponseContext) -> str:
    lines = [
        "Generate suggested responses for this customer service situation:",
        "",
        f"Ticket Type: {context.request_type.value if context.request_type else 'unknown'}",
        f"Customer: {context.customer_name or 'unknown'}",
        f"Customer Message: {context.customer_message}",
    ]
    if context.previous_responses:
        lines.append("")
        lines.append("Previous Messages:")
        lines.extend(f"- {message}" for message in context.previous_responses)
    if context.additional_context:
        lines.append("")
        lines.append(f"Additional Context: {context.additional_context}")

    lines.append("")
    lines.append(
        f"Generate {context.max_responses} different response options with varying "
        "tones (formal, friendly, apologetic). Flag escalationNeeded when a "
        "supervisor should step in."
    )
    lines.append("""
Respond in JSON format:
{
  "responses": [{"text": "...", "tone": "...", "confidence": 0.0-1.0}],
  "escalationNeeded": false
}""")
    return "\n".join(lines)
