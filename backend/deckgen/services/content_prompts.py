from __future__ import annotations

from typing import Any, Callable

from deckgen.deck_types import Section, SubjectContext


JSON_ONLY_SYSTEM = (
    "You write slide content for a storm-restoration sales team. "
    "Return ONLY valid JSON. No markdown, no code blocks, no explanation. "
    "Start your response with { and end with }."
)

# Section id -> prompt key when they differ.
PROMPT_KEYS: dict[str, str] = {
    "objection-handling": "objection-handlers",
    "storm-exposure": "storm-history",
    "recommended-actions": "next-steps",
}


def _value(row: dict[str, Any], *keys: str, default: str = "Unknown") -> str:
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 1000:
                return f"{value:,.0f}"
            return str(value)
    return default


def _customer_lines(subject: dict[str, Any]) -> str:
    name = f"{_value(subject, 'first_name', 'firstName', default='')} {_value(subject, 'last_name', 'lastName', default='')}".strip()
    return "\n".join(
        [
            f"- Name: {name or 'Unknown'}",
            f"- Location: {_value(subject, 'city')}, {_value(subject, 'state')}",
            f"- Lead Score: {_value(subject, 'lead_score', 'leadScore')}/100",
            f"- Urgency Score: {_value(subject, 'urgency_score', 'urgencyScore')}/100",
            f"- Property Value: ${_value(subject, 'property_value', 'propertyValue')}",
            f"- Roof Age: {_value(subject, 'roof_age', 'roofAge')} years",
            f"- Roof Type: {_value(subject, 'roof_type', 'roofType')}",
            f"- Insurance: {_value(subject, 'insurance_carrier', 'insuranceCarrier')}",
            f"- Deductible: ${_value(subject, 'deductible')}",
            f"- Stage: {_value(subject, 'stage')}",
            f"- Lead Source: {_value(subject, 'lead_source', 'leadSource')}",
        ]
    )


def _event_lines(events: list[dict[str, Any]]) -> str:
    if not events:
        return "No storm data available"
    rows = []
    for event in events[:12]:
        details = [_value(event, "severity") + " severity"]
        hail = event.get("hail_size") or event.get("hailSize")
        wind = event.get("wind_speed") or event.get("windSpeed")
        if hail:
            details.append(f'{hail}" hail')
        if wind:
            details.append(f"{wind} mph winds")
        if event.get("claim_filed") or event.get("claimFiled"):
            details.append("claim filed")
        rows.append(f"- {_value(event, 'event_type', 'eventType')} on {_value(event, 'event_date', 'eventDate')}: {', '.join(details)}")
    return "\n".join(rows)


def _customer_overview(ctx: SubjectContext, section: Section) -> str:
    return f"""Create a "{section.title}" stats slide for a sales presentation.
Generate 4 strategic insight cards that help a sales rep understand this customer quickly.

CUSTOMER DATA:
{_customer_lines(ctx.subject)}

WEATHER HISTORY:
{_event_lines(ctx.related_events)}

Return a JSON object with this structure:
{{"title": "compelling headline", "stats": [{{"label": "2-4 words", "value": "display value", "insight": "1 sentence", "icon": "Target|Home|Calendar|Zap|DollarSign|Shield|TrendingUp|AlertTriangle"}}], "bottomLine": "biggest opportunity or risk in 1 sentence"}}
Provide insights, not restated data."""


def _talking_points(ctx: SubjectContext, section: Section) -> str:
    return f"""Write a personalized call script for this specific customer.

CUSTOMER DATA:
{_customer_lines(ctx.subject)}

WEATHER HISTORY:
{_event_lines(ctx.related_events)}

Return a JSON object with this structure:
{{"title": "personalized title", "points": [{{"topic": "topic name", "script": "exact words to say", "priority": "high|medium|low", "timing": "when to use it"}}], "keyInsight": "the #1 thing to know"}}
Use the customer's first name, reference specific storms and property details, provide at least 5 points."""


def _objection_handlers(ctx: SubjectContext, section: Section) -> str:
    return f"""Prepare customer-specific objection handlers for this homeowner.

CUSTOMER DATA:
{_customer_lines(ctx.subject)}

WEATHER HISTORY:
{_event_lines(ctx.related_events)}

Return a JSON object with this structure:
{{"title": "{section.title}", "items": [{{"objection": "what they will say", "response": "tailored response", "followUp": "question to ask next", "priority": "high|medium|low"}}], "proactiveTip": "what to say before they object"}}"""


def _storm_history(ctx: SubjectContext, section: Section) -> str:
    return f"""Analyze this homeowner's storm exposure to identify sales opportunities.

PROPERTY:
{_customer_lines(ctx.subject)}

WEATHER EVENTS:
{_event_lines(ctx.related_events)}

Return a JSON object with this structure:
{{"title": "{section.title}", "events": [{{"date": "formatted date", "title": "storm type with note", "description": "what it means for the roof", "status": "completed|current|upcoming", "damageRisk": "high|medium|low", "opportunity": "why it matters for the sale"}}]}}
Hail 1"+ means likely roof damage. Wind 60+ mph is worth an inspection. Unclaimed major storms are an opportunity."""


def _next_steps(ctx: SubjectContext, section: Section) -> str:
    return f"""Create a specific action plan for closing this customer.

CUSTOMER DATA:
{_customer_lines(ctx.subject)}

WEATHER HISTORY:
{len(ctx.related_events)} storm events recorded

Return a JSON object with this structure:
{{"title": "{section.title}", "items": [{{"action": "specific action", "timing": "Today|Within 24h|This week", "script": "what to say or do", "icon": "Calendar|Phone|FileText|CheckCircle|MapPin|Shield", "priority": "high|medium|low"}}], "primaryGoal": "most important outcome"}}
Base actions on the customer's stage."""


SECTION_PROMPTS: dict[str, Callable[[SubjectContext, Section], str]] = {
    "customer-overview": _customer_overview,
    "talking-points": _talking_points,
    "objection-handlers": _objection_handlers,
    "storm-history": _storm_history,
    "next-steps": _next_steps,
}


def prompt_key(section_id: str) -> str:
    return PROMPT_KEYS.get(section_id, section_id)


def build_section_prompts(ctx: SubjectContext, section: Section) -> tuple[str, str] | None:
    builder = SECTION_PROMPTS.get(prompt_key(section.id))
    if builder is None:
        return None
    return JSON_ONLY_SYSTEM, builder(ctx, section).strip()
