"""Presentation hints derived from resolved slide content.

Hints sit beside the content on each slide (``slide.hints``); the content
itself is never rewritten.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Mapping

from deckgen.deck_types import SlideType


SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
LEADING_INT = re.compile(r"^\s*(-?\d+)")

SUCCESS_COLOR = "#10B981"
WARNING_COLOR = "#F59E0B"
DANGER_COLOR = "#EF4444"


def _leading_int(text: str) -> int | None:
    match = LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def enhance_stats(stats: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    enhanced = []
    for index, stat in enumerate(stats):
        value = str(stat.get("value", ""))
        label = str(stat.get("label", "")).lower()
        insight = str(stat.get("insight") or "").lower()
        is_percentage = "%" in value
        is_currency = "$" in value
        is_number = value[:1].isdigit()

        if "risk" in label or "urgent" in label or "critical" in insight:
            emphasis = "danger"
        elif "score" in label or "opportunity" in label or "high" in insight:
            emphasis = "success"
        elif "value" in label or "price" in label or is_currency:
            emphasis = "accent"
        else:
            emphasis = "primary"

        progress_value = None
        show_progress_bar = False
        if is_percentage:
            progress_value = _leading_int(value)
            show_progress_bar = progress_value is not None
        elif "score" in label and is_number:
            progress_value = _leading_int(value)
            show_progress_bar = progress_value is not None and progress_value <= 100

        if is_currency:
            visual_type = "currency"
        elif is_percentage:
            visual_type = "percentage"
        elif is_number:
            visual_type = "number"
        else:
            visual_type = "text"

        enhanced.append(
            {
                "size": "hero" if index == 0 else "large" if index == 1 else "standard",
                "emphasis": emphasis,
                "visual_type": visual_type,
                "show_progress_bar": show_progress_bar,
                "progress_value": progress_value,
                "progress_color": progress_color(progress_value) if show_progress_bar else None,
            }
        )
    return enhanced


def parse_script_segments(script: str) -> dict[str, str]:
    sentences = [part for part in SENTENCE_BREAK.split(script or "") if part.strip()]
    if not sentences:
        return {"hook": script}
    if len(sentences) == 1:
        return {"hook": sentences[0]}
    if len(sentences) == 2:
        return {"hook": sentences[0], "cta": sentences[1]}
    return {"hook": sentences[0], "evidence": " ".join(sentences[1:-1]), "cta": sentences[-1]}


def enhance_talking_points(points: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    return [{"segments": parse_script_segments(str(point.get("script", "")))} for point in points]


def _timeline_icon(title: str, description: str) -> str:
    for keyword, icon in (("hail", "hail"), ("wind", "wind"), ("damage", "damage")):
        if keyword in title or keyword in description:
            return icon
    if any(keyword in text for keyword in ("opportunity", "claim") for text in (title, description)):
        return "opportunity"
    return "storm"


def enhance_timeline_events(events: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    enhanced = []
    for event in events:
        risk = event.get("damage_risk")
        enhanced.append(
            {
                "icon_type": _timeline_icon(str(event.get("title", "")).lower(), str(event.get("description") or "").lower()),
                "visual_weight": {"high": "critical", "medium": "important"}.get(risk, "standard"),
                "connector_style": {"high": "danger", "medium": "warning"}.get(risk, "normal"),
                "colors": risk_colors(risk),
            }
        )
    return enhanced


def enhance_list_items(items: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    flagged = [bool(item.get("highlight")) or item.get("priority") == "high" for item in items]
    # First flagged item leads; with nothing flagged the first item does.
    hero_index = flagged.index(True) if any(flagged) else 0

    enhanced = []
    for index, is_flagged in enumerate(flagged):
        if index == hero_index:
            weight = "hero"
        elif is_flagged:
            weight = "important"
        else:
            weight = "standard"
        enhanced.append(
            {
                "visual_weight": weight,
                "badge": {"text": "PRIORITY", "color": "warning"} if is_flagged else None,
            }
        )
    return enhanced


def format_large_number(value: float) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def progress_color(value: float) -> str:
    if value >= 80:
        return SUCCESS_COLOR
    if value >= 50:
        return WARNING_COLOR
    return DANGER_COLOR


def risk_colors(risk: str | None) -> dict[str, str]:
    if risk == "high":
        return {"bg": "rgba(239, 68, 68, 0.15)", "border": DANGER_COLOR, "text": DANGER_COLOR}
    if risk == "medium":
        return {"bg": "rgba(245, 158, 11, 0.15)", "border": WARNING_COLOR, "text": WARNING_COLOR}
    return {"bg": "rgba(16, 185, 129, 0.15)", "border": SUCCESS_COLOR, "text": SUCCESS_COLOR}


def _rows(content: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    return [row for row in (content.get(key) or []) if isinstance(row, Mapping)]


ENHANCERS: dict[SlideType, Callable[[Mapping[str, Any]], dict[str, Any]]] = {
    SlideType.STATS: lambda content: {"stats": enhance_stats(_rows(content, "stats"))},
    SlideType.TALKING_POINTS: lambda content: {"points": enhance_talking_points(_rows(content, "points"))},
    SlideType.TIMELINE: lambda content: {"events": enhance_timeline_events(_rows(content, "events"))},
    SlideType.LIST: lambda content: {"items": enhance_list_items(_rows(content, "items"))},
}


def enhance_content(slide_type: SlideType, content: Mapping[str, Any]) -> dict[str, Any]:
    enhancer = ENHANCERS.get(slide_type)
    if enhancer is None:
        return {}
    return enhancer(content)
