from __future__ import annotations

import json
from typing import Any

from deckgen.deck_types import Section, SubjectContext


def preview_text(text: str, limit: int = 180) -> str:
    raw = str(text or "").replace("\r", " ").replace("\n", " ").strip()
    if len(raw) <= limit:
        return raw
    return raw[:limit].rstrip() + " ..."


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first ``{...}`` span of a model reply, tolerating code fences."""
    raw = str(text or "").replace("```json", "").replace("```", "")
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object found in model output")
    payload = json.loads(raw[start : end + 1])
    if not isinstance(payload, dict):
        raise ValueError("Model output is not a JSON object")
    return payload


class BaseContentProvider:
    name = "base"
    last_warnings: list[str]

    def __init__(self):
        self.last_warnings = []

    def reset_warnings(self) -> None:
        self.last_warnings = []

    def generate_content(self, subject_context: SubjectContext, section: Section) -> dict[str, Any]:
        """Loosely-shaped content for ``section``; empty when nothing usable was produced."""
        return {}
