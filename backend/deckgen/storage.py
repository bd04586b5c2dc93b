import json
import os
from pathlib import Path
from uuid import uuid4

from deckgen.config import settings
from deckgen.deck_types import GeneratedDeck, GeneratedSlide


DECKS = "decks"
SCHEDULED = "scheduled"


def storage_path(kind: str, stem: str | None = None, extension: str = "json") -> Path:
    folder = settings.storage_root / kind
    folder.mkdir(parents=True, exist_ok=True)
    return folder / f"{stem or uuid4()}.{extension.lstrip('.')}"


def write_json(path: Path, payload: dict | list) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # API readers may poll mid-write; swap the finished file in atomically.
    staging = path.with_name(f".{path.name}.tmp")
    staging.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(staging, path)


def read_json(path: Path) -> dict | list:
    return json.loads(path.read_text(encoding="utf-8"))


def save_deck(deck: GeneratedDeck, *, kind: str = DECKS, stem: str | None = None) -> Path:
    path = storage_path(kind, stem or deck.id)
    write_json(path, deck.to_dict())
    return path


def load_deck(path: str | Path | None) -> dict | None:
    if not path:
        return None
    path = Path(path)
    if not path.exists():
        return None
    payload = read_json(path)
    return payload if isinstance(payload, dict) else None


def save_pending_slides(row_id: str, slides: list[GeneratedSlide], *, content_ms: int) -> Path:
    """Slides waiting on a provider batch job, plus the time already spent building their content."""
    path = storage_path(SCHEDULED, f"{row_id}-slides")
    write_json(path, {"slides": [slide.to_dict() for slide in slides], "content_ms": content_ms})
    return path


def load_pending_slides(path: str | Path) -> tuple[list[GeneratedSlide], int]:
    stored = read_json(Path(path))
    if not isinstance(stored, dict):
        raise ValueError(f"Pending slides file is malformed: {path}")
    slides = [GeneratedSlide.from_dict(row) for row in stored.get("slides") or []]
    return slides, int(stored.get("content_ms") or 0)
