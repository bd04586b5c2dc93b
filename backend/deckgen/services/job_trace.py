"""Persisted trace of a deck job: state changes, progress snapshots and batch milestones."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select

from deckgen.config import settings
from deckgen.db import SessionLocal
from deckgen.deck_types import GenerationProgress
from deckgen.models import JobEvent


logger = logging.getLogger("deckgen.jobs")

EVENT_STAGES = ("batch", "scheduled", "progress", "state", "job")
WARNING_MARKERS = ("failed", "warning", "cancel", "retry", "fallback")


def event_stage(event_type: str) -> str:
    lower = str(event_type or "").lower()
    for stage in EVENT_STAGES[:-1]:
        if stage in lower:
            return stage
    return "job"


def event_severity(event_type: str) -> str:
    lower = str(event_type or "").lower()
    return "warning" if any(marker in lower for marker in WARNING_MARKERS) else "info"


def encode_payload(payload: dict[str, Any] | None) -> str:
    cleaned = {key: value for key, value in (payload or {}).items() if value is not None}
    try:
        return json.dumps(cleaned, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "{}"


def decode_payload(payload_json: str | None) -> dict[str, Any]:
    if not payload_json:
        return {}
    try:
        parsed = json.loads(payload_json)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def record_job_event(job_id: str, event_type: str, payload: dict[str, Any] | None = None, *, stage: str | None = None) -> bool:
    """Append one event row; returns False when persistence is off or the write failed."""
    if not settings.persist_job_events or not job_id:
        return False
    db = SessionLocal()
    try:
        db.add(
            JobEvent(
                job_id=job_id,
                ts=datetime.utcnow(),
                stage=stage or event_stage(event_type),
                event_type=event_type,
                payload_json=encode_payload(payload),
                severity=event_severity(event_type),
            )
        )
        db.commit()
        return True
    except Exception as exc:
        db.rollback()
        logger.warning("job_event_persist_failed job=%s event=%s reason=%s", job_id, event_type, exc)
        return False
    finally:
        db.close()


def record_progress(job_id: str, snapshot: GenerationProgress) -> bool:
    payload = snapshot.to_dict()
    payload["step"] = f"{snapshot.current_step}/{snapshot.total_steps}"
    return record_job_event(job_id, "progress", payload, stage="progress")


def list_job_events(job_id: str, *, limit: int = 400, stage: str | None = None) -> list[JobEvent]:
    db = SessionLocal()
    try:
        query = select(JobEvent).where(JobEvent.job_id == job_id)
        if stage:
            query = query.where(JobEvent.stage == stage)
        rows = db.scalars(
            query.order_by(JobEvent.ts.asc(), JobEvent.id.asc()).limit(max(1, min(limit, settings.job_events_page_size)))
        ).all()
        return list(rows)
    finally:
        db.close()


def event_to_dict(row: JobEvent) -> dict[str, Any]:
    return {
        "id": row.id,
        "job_id": row.job_id,
        "ts": row.ts,
        "stage": row.stage,
        "event_type": row.event_type,
        "payload": decode_payload(row.payload_json),
        "severity": row.severity,
    }
