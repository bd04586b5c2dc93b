from __future__ import annotations

import json
from typing import Any, Callable, Mapping

from deckgen.deck_types import BrandingConfig, SlideImageRequest, SlideType


def _section_label(section_id: str) -> str:
    return " ".join(word.capitalize() for word in section_id.split("-") if word)


def _title_prompt(content: Mapping[str, Any], section_id: str) -> str:
    title = content.get("title") or content.get("customer_name") or "Customer Prep Deck"
    subtitle = content.get("subtitle") or content.get("address") or ""
    lines = [
        "TITLE SLIDE CONTENT:",
        f'- Main headline (large, bold, centered): "{title}"',
    ]
    if subtitle:
        lines.append(f'- Subtitle (smaller, below headline): "{subtitle}"')
    if content.get("prepared_for"):
        lines.append(f'- "Prepared for: {content["prepared_for"]}"')
    if content.get("date"):
        lines.append(f"- Date: {content['date']}")
    lines += [
        "",
        "DESIGN REQUIREMENTS:",
        "- Make the title dramatically large and impactful",
        "- Add subtle geometric decorations using the accent color",
        "- Include a small company logo placeholder in the corner",
    ]
    return "\n".join(lines)


def _stats_prompt(content: Mapping[str, Any], section_id: str) -> str:
    stats = content.get("stats") or []
    stats_text = "\n".join(f"  {idx}. {row.get('label')}: {row.get('value')}" for idx, row in enumerate(stats, start=1))
    lines = [
        "STATISTICS SLIDE CONTENT:",
        f'- Title: "{content.get("title") or "Key Metrics"}"',
        "- Key statistics to display prominently:",
        stats_text,
        "",
        "DESIGN REQUIREMENTS:",
        "- Display each stat as a large, eye-catching number",
        "- Arrange stats in a balanced grid layout (2x2 or 1x3)",
        "- Make the first stat the largest and most prominent",
    ]
    if content.get("footnote"):
        lines.append(f'- Footer note: "{content["footnote"]}"')
    return "\n".join(lines)


def _list_prompt(content: Mapping[str, Any], section_id: str) -> str:
    numbered = bool(content.get("numbered"))
    rows = []
    for idx, item in enumerate(content.get("items") or [], start=1):
        prefix = f"{idx}." if numbered else "-"
        secondary = f" - {item.get('secondary')}" if item.get("secondary") else ""
        highlight = " [HIGHLIGHT THIS]" if item.get("highlight") else ""
        rows.append(f"  {prefix} {item.get('primary')}{secondary}{highlight}")
    return "\n".join(
        [
            "LIST SLIDE CONTENT:",
            f'- Title: "{content.get("title") or "Key Points"}"',
            "- Items:",
            "\n".join(rows),
            "",
            "DESIGN REQUIREMENTS:",
            "- Create a clean, scannable list layout",
            "- Use numbered list with stylized numbers" if numbered else "- Use elegant bullet points",
            "- Highlight important items with an accent color border",
        ]
    )


def _timeline_prompt(content: Mapping[str, Any], section_id: str) -> str:
    rows = []
    for event in content.get("events") or []:
        status = f" ({event.get('status')})" if event.get("status") else ""
        rows.append(f"  - {event.get('date')}: {event.get('title')}{status}")
    return "\n".join(
        [
            "TIMELINE SLIDE CONTENT:",
            f'- Title: "{content.get("title") or "Timeline"}"',
            "- Events (chronological order):",
            "\n".join(rows),
            "",
            "DESIGN REQUIREMENTS:",
            "- Create a horizontal timeline flowing left to right",
            "- Use connected nodes for each event, dates above and titles below",
            "- Use different styles for completed vs upcoming events",
        ]
    )


def _talking_points_prompt(content: Mapping[str, Any], section_id: str) -> str:
    rows = []
    for idx, point in enumerate(content.get("points") or [], start=1):
        script = str(point.get("script") or "")[:100]
        rows.append(f'  {idx}. {point.get("topic")}: "{script}..."')
    return "\n".join(
        [
            "TALKING POINTS SLIDE CONTENT:",
            f'- Title: "{content.get("title") or "Key Talking Points"}"',
            "- Discussion points:",
            "\n".join(rows),
            "",
            "DESIGN REQUIREMENTS:",
            "- Create a speaker-notes style layout with a bold topic header per point",
            "- Use visual hierarchy to show priority",
        ]
    )


def _chart_prompt(content: Mapping[str, Any], section_id: str) -> str:
    chart_type = content.get("chart_type") or "bar"
    return "\n".join(
        [
            "CHART SLIDE CONTENT:",
            f'- Title: "{content.get("title") or "Data Visualization"}"',
            f"- Chart type: {chart_type}",
            f"- Data points: {json.dumps(list(content.get('data') or [])[:12], default=str)}",
            "",
            "DESIGN REQUIREMENTS:",
            f"- Create a clean, professional {chart_type} chart",
            "- Use the accent color for data elements and include axis labels",
        ]
    )


def _image_prompt(content: Mapping[str, Any], section_id: str) -> str:
    lines = [
        "IMAGE SLIDE CONTENT:",
        f'- Title: "{content.get("title") or "Property View"}"',
    ]
    if content.get("caption"):
        lines.append(f'- Caption: "{content["caption"]}"')
    lines += [
        "",
        "DESIGN REQUIREMENTS:",
        "- Create a slide with a large 16:9 image placeholder area with a subtle frame",
        "- Leave space for the caption at the bottom",
    ]
    return "\n".join(lines)


def _generic_prompt(content: Mapping[str, Any], section_id: str) -> str:
    summary = json.dumps(dict(content), indent=2, default=str)[:500]
    return "\n".join(
        [
            "CONTENT SLIDE:",
            f'- Section: "{_section_label(section_id)}"',
            f"- Content summary: {summary}",
            "",
            "DESIGN REQUIREMENTS:",
            "- Organize information in a clear visual hierarchy",
            "- Use the accent color for emphasis and keep it uncluttered",
        ]
    )


PROMPT_BUILDERS: dict[SlideType, Callable[[Mapping[str, Any], str], str]] = {
    SlideType.TITLE: _title_prompt,
    SlideType.STATS: _stats_prompt,
    SlideType.LIST: _list_prompt,
    SlideType.TIMELINE: _timeline_prompt,
    SlideType.TALKING_POINTS: _talking_points_prompt,
    SlideType.CHART: _chart_prompt,
    SlideType.IMAGE: _image_prompt,
    SlideType.MAP: _generic_prompt,
    SlideType.COMPARISON: _generic_prompt,
    SlideType.QUOTE: _generic_prompt,
}


def _base_prompt(branding: BrandingConfig, slide_number: int, total_slides: int) -> str:
    colors = branding.colors
    return f"""You are a professional presentation designer. Create a visually stunning slide image.

IMAGE SPECIFICATIONS:
- Dimensions: 1280 x 720 pixels (16:9 aspect ratio)

COLOR SCHEME (STRICT - use these exact colors):
- Background: {colors.get("background", "#0F1419")}
- Primary accent: {colors.get("secondary", "#D4A656")}
- Text color: {colors.get("text", "#FFFFFF")}
- Muted text: {colors.get("text_muted", "#9CA3AF")}
- Success indicators: {colors.get("success", "#10B981")}
- Warning indicators: {colors.get("warning", "#F59E0B")}

STYLE GUIDELINES:
- Premium, corporate aesthetic with subtle gradients and depth
- No clip art or cartoonish elements
- Professional roofing/construction industry feel

SLIDE POSITION: {slide_number} of {total_slides}
"""


def build_slide_prompt(request: SlideImageRequest) -> str:
    builder = PROMPT_BUILDERS.get(request.slide_type, _generic_prompt)
    return (
        _base_prompt(request.branding, request.slide_number, request.total_slides)
        + "\n"
        + builder(request.content, request.section_id)
        + """

FINAL INSTRUCTIONS:
- Generate ONLY the slide image, no explanatory text
- Ensure all text in the image is readable
- Use the exact colors specified above
"""
    )


def build_generation_payload(request: SlideImageRequest) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": build_slide_prompt(request)}]}],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }
