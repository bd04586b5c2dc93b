"""Reshape loosely-typed generated payloads into each content-kind's canonical shape.

Every normalizer returns ``None`` when the payload lacks the fields its kind
requires; the resolver then falls back to the deterministic data source.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Mapping

from deckgen.deck_types import Section, SlideType


PRIORITIES = ("high", "medium", "low")
EVENT_STATUSES = ("completed", "current", "upcoming")
CHART_TYPES = ("bar", "line", "pie", "area")
NUMBERED_LIST_SECTIONS = frozenset({"recommended-actions", "next-steps"})

Normalizer = Callable[[Mapping[str, Any], Section], "dict[str, Any] | None"]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _rows(payload: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    rows = payload.get(key)
    if not isinstance(rows, list):
        return []
    return [row for row in rows if isinstance(row, Mapping)]


def _title(payload: Mapping[str, Any], section: Section) -> str:
    return _text(payload.get("title")) or section.title


def _priority(value: Any, default: str = "medium") -> str:
    text = _text(value).lower()
    return text if text in PRIORITIES else default


def _compact(row: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in row.items() if value not in (None, "")}


def normalize_title(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    title = _text(payload.get("title"))
    if not title:
        return None
    return _compact(
        {
            "title": title,
            "subtitle": _text(payload.get("subtitle")),
            "date": _text(payload.get("date")) or date.today().isoformat(),
            "prepared_for": _text(payload.get("prepared_for") or payload.get("preparedFor")),
            "prepared_by": _text(payload.get("prepared_by") or payload.get("preparedBy")),
        }
    )


def normalize_stats(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    stats = []
    for row in _rows(payload, "stats"):
        label = _text(row.get("label"))
        value = row.get("value")
        if not label or value in (None, ""):
            continue
        stats.append(
            _compact(
                {
                    "label": label,
                    "value": value,
                    "insight": _text(row.get("insight")),
                    "icon": _text(row.get("icon")) or "Target",
                    "trend": _text(row.get("trend")) or "neutral",
                }
            )
        )
    if not stats:
        return None
    footnote = _text(payload.get("bottom_line") or payload.get("bottomLine") or payload.get("footnote"))
    return {
        "title": _title(payload, section),
        "stats": stats,
        "footnote": footnote or f"AI-generated insights as of {date.today().isoformat()}",
    }


def normalize_list(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    items = []
    for row in _rows(payload, "items"):
        primary = _text(row.get("objection") or row.get("action") or row.get("primary"))
        if not primary:
            continue
        items.append(
            _compact(
                {
                    "primary": primary,
                    "secondary": _text(row.get("response") or row.get("script") or row.get("timing") or row.get("secondary")),
                    "icon": _text(row.get("icon")) or "CheckCircle",
                    "highlight": bool(row.get("highlight")) or _text(row.get("priority")).lower() == "high",
                }
            )
        )
    if not items:
        return None
    return {
        "title": _title(payload, section),
        "items": items,
        "numbered": bool(payload.get("numbered")) or section.id in NUMBERED_LIST_SECTIONS,
    }


def normalize_timeline(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    events = []
    for row in _rows(payload, "events"):
        event_date = _text(row.get("date"))
        title = _text(row.get("title"))
        if not event_date or not title:
            continue
        status = _text(row.get("status")).lower()
        risk = _text(row.get("damage_risk") or row.get("damageRisk")).lower()
        events.append(
            _compact(
                {
                    "date": event_date,
                    "title": title,
                    "description": _text(row.get("description") or row.get("opportunity")),
                    "status": status if status in EVENT_STATUSES else "upcoming",
                    "damage_risk": risk if risk in PRIORITIES else None,
                }
            )
        )
    if not events:
        return None
    return {"title": _title(payload, section), "events": events}


def normalize_talking_points(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    points = []
    for row in _rows(payload, "points"):
        topic = _text(row.get("topic"))
        script = _text(row.get("script"))
        if not topic or not script:
            continue
        points.append({"topic": topic, "script": script, "priority": _priority(row.get("priority"))})
    if not points:
        return None
    return {"title": _title(payload, section), "ai_generated": True, "points": points}


def normalize_chart(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    data = [dict(row) for row in _rows(payload, "data")]
    x_key = _text(payload.get("x_key") or payload.get("xKey"))
    y_key = _text(payload.get("y_key") or payload.get("yKey"))
    if not data or not x_key or not y_key:
        return None
    chart_type = _text(payload.get("chart_type") or payload.get("chartType")).lower()
    return _compact(
        {
            "title": _title(payload, section),
            "chart_type": chart_type if chart_type in CHART_TYPES else "bar",
            "data": data,
            "x_key": x_key,
            "y_key": y_key,
            "footnote": _text(payload.get("footnote")),
        }
    )


def normalize_image(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    image_url = _text(payload.get("image_url") or payload.get("imageUrl"))
    if not image_url:
        return None
    notes = [str(note) for note in (payload.get("notes") or []) if str(note).strip()]
    return _compact(
        {
            "title": _title(payload, section),
            "image_url": image_url,
            "caption": _text(payload.get("caption")),
            "notes": notes or None,
            "alt_text": _text(payload.get("alt_text") or payload.get("altText")) or section.title,
        }
    )


def _coordinate(row: Any) -> dict[str, float] | None:
    if not isinstance(row, Mapping):
        return None
    try:
        return {"lat": float(row["lat"]), "lng": float(row["lng"])}
    except (KeyError, TypeError, ValueError):
        return None


def normalize_map(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    center = _coordinate(payload.get("center"))
    if center is None:
        return None
    markers = []
    for row in _rows(payload, "markers"):
        point = _coordinate(row)
        if point is None:
            continue
        markers.append(_compact({**point, "label": _text(row.get("label")), "color": _text(row.get("color"))}))
    try:
        zoom = int(payload.get("zoom") or 10)
    except (TypeError, ValueError):
        zoom = 10
    return _compact(
        {
            "title": _title(payload, section),
            "center": center,
            "zoom": zoom,
            "markers": markers,
            "footnote": _text(payload.get("footnote")),
        }
    )


def normalize_comparison(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    columns = []
    for row in _rows(payload, "columns"):
        header = _text(row.get("header"))
        items = [str(item) for item in (row.get("items") or []) if str(item).strip()]
        if header and items:
            columns.append({"header": header, "items": items})
    if len(columns) < 2:
        return None
    return {"title": _title(payload, section), "columns": columns}


def normalize_quote(payload: Mapping[str, Any], section: Section) -> dict[str, Any] | None:
    quote = _text(payload.get("quote"))
    author = _text(payload.get("author"))
    if not quote or not author:
        return None
    return _compact(
        {
            "title": _title(payload, section),
            "quote": quote,
            "author": author,
            "role": _text(payload.get("role")),
            "company": _text(payload.get("company")),
        }
    )


NORMALIZERS: dict[SlideType, Normalizer] = {
    SlideType.TITLE: normalize_title,
    SlideType.STATS: normalize_stats,
    SlideType.LIST: normalize_list,
    SlideType.TIMELINE: normalize_timeline,
    SlideType.MAP: normalize_map,
    SlideType.CHART: normalize_chart,
    SlideType.IMAGE: normalize_image,
    SlideType.TALKING_POINTS: normalize_talking_points,
    SlideType.COMPARISON: normalize_comparison,
    SlideType.QUOTE: normalize_quote,
}

missing = set(SlideType) - set(NORMALIZERS)
if missing:
    raise RuntimeError(f"No normalizer for content kinds: {sorted(kind.value for kind in missing)}")
del missing


def normalize_content(slide_type: SlideType, payload: Mapping[str, Any] | None, section: Section) -> dict[str, Any] | None:
    if not payload:
        return None
    return NORMALIZERS[slide_type](payload, section)
