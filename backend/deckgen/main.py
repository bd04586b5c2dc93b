from __future__ import annotations

import json
import logging
from datetime import datetime
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.orm import Session

from deckgen.config import settings
from deckgen.db import Base, engine, get_db
from deckgen.deck_types import Template
from deckgen.models import DeckJob, ScheduledDeck
from deckgen.schemas import (
    BulkScheduleOut,
    BulkScheduleRequest,
    CronRunOut,
    GenerateDeckRequest,
    JobEventOut,
    JobOut,
    ScheduleDeckRequest,
    ScheduledDeckOut,
    TemplateCategoryOut,
    TemplateOut,
)
from deckgen.services.deck_templates import get_template_by_id, list_template_categories, list_templates
from deckgen.services.job_trace import event_to_dict, list_job_events
from deckgen.storage import load_deck
from deckgen.tasks import configure_logging, process_scheduled_decks, run_generation_job

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin, "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ACTIVE_SCHEDULED_STATUSES = ("pending", "processing", "awaiting_batch")
TERMINAL_JOB_STATUSES = {"completed", "failed", "cancelled"}


class _AccessLogPathFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not settings.suppress_job_poll_access_logs:
            return True

        message = record.getMessage()
        if '"GET /api/jobs/' in message:
            return False
        if '"OPTIONS /api/jobs/' in message:
            return False
        return True


def _configure_runtime_logging() -> None:
    configure_logging()
    access_logger = logging.getLogger("uvicorn.access")
    if settings.suppress_job_poll_access_logs and not any(
        isinstance(row, _AccessLogPathFilter) for row in access_logger.filters
    ):
        access_logger.addFilter(_AccessLogPathFilter())


@app.on_event("startup")
def on_startup():
    _configure_runtime_logging()
    Base.metadata.create_all(bind=engine)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get(f"{settings.api_prefix}/templates", response_model=list[TemplateOut])
def get_templates(
    audience: str | None = None,
    category: str | None = None,
    tag: str | None = None,
):
    return [row.to_dict() for row in list_templates(audience=audience, category=category, tag=tag)]


@app.get(f"{settings.api_prefix}/templates/categories", response_model=list[TemplateCategoryOut])
def get_template_categories():
    return list_template_categories()


@app.get(f"{settings.api_prefix}/templates/{{template_id}}", response_model=TemplateOut)
def get_template(template_id: str):
    template = get_template_by_id(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template.to_dict()


@app.post(f"{settings.api_prefix}/decks/generate", response_model=JobOut)
def generate_deck(req: GenerateDeckRequest, db: Session = Depends(get_db)):
    template = get_template_by_id(req.template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")

    unknown = sorted(set(req.enabled_sections or ()) - set(template.section_ids()))
    if unknown:
        raise HTTPException(status_code=422, detail=f"Sections not defined by template: {', '.join(unknown)}")
    missing = template.missing_context(req.context)
    if missing:
        raise HTTPException(status_code=422, detail=f"Required context missing: {', '.join(missing)}")

    job = DeckJob(
        id=str(uuid4()),
        template_id=template.id,
        status="queued",
        phase="queued",
        progress_pct=0,
        message="Queued",
        payload_json=json.dumps(req.to_job_payload(template.default_section_ids())),
    )
    db.add(job)
    db.commit()
    db.refresh(job)

    run_generation_job.delay(job.id)
    return job


def _get_job_or_404(db: Session, job_id: str) -> DeckJob:
    job = db.get(DeckJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.get(f"{settings.api_prefix}/jobs/{{job_id}}", response_model=JobOut)
def get_job(job_id: str, db: Session = Depends(get_db)):
    return _get_job_or_404(db, job_id)


@app.get(f"{settings.api_prefix}/jobs/{{job_id}}/events", response_model=list[JobEventOut])
def get_job_events(
    job_id: str,
    stage: str | None = None,
    limit: int = Query(default=200, ge=1, le=2000),
    db: Session = Depends(get_db),
):
    _get_job_or_404(db, job_id)
    return [event_to_dict(row) for row in list_job_events(job_id, limit=limit, stage=stage)]


@app.post(f"{settings.api_prefix}/jobs/{{job_id}}/cancel", response_model=JobOut)
def cancel_job(job_id: str, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_id)
    if job.status in TERMINAL_JOB_STATUSES:
        raise HTTPException(status_code=409, detail=f"Job already {job.status}")
    job.cancel_requested = 1
    job.updated_at = datetime.utcnow()
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


@app.get(f"{settings.api_prefix}/jobs/{{job_id}}/deck")
def get_job_deck(job_id: str, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_id)
    if not job.deck_path:
        raise HTTPException(status_code=404, detail="Deck not ready")
    deck = load_deck(job.deck_path)
    if deck is None:
        raise HTTPException(status_code=404, detail="Deck file not found")
    return deck


def _active_scheduled_deck(db: Session, customer_id: str) -> ScheduledDeck | None:
    return db.scalar(
        select(ScheduledDeck).where(
            ScheduledDeck.customer_id == customer_id,
            ScheduledDeck.status.in_(ACTIVE_SCHEDULED_STATUSES),
        )
    )


def _new_scheduled_deck(req: ScheduleDeckRequest, template: Template) -> ScheduledDeck:
    return ScheduledDeck(
        id=str(uuid4()),
        customer_id=req.customer_id,
        customer_name=req.customer_name,
        template_id=req.template_id,
        assigned_to=req.assigned_to,
        status="pending",
        scheduled_for=req.scheduled_for or datetime.utcnow(),
        request_payload=json.dumps(req.to_request_payload(template.default_section_ids())),
    )


@app.post(f"{settings.api_prefix}/decks/schedule", response_model=ScheduledDeckOut)
def schedule_deck(req: ScheduleDeckRequest, db: Session = Depends(get_db)):
    template = get_template_by_id(req.template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    if _active_scheduled_deck(db, req.customer_id):
        raise HTTPException(status_code=409, detail="A deck is already scheduled for this customer")

    row = _new_scheduled_deck(req, template)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@app.post(f"{settings.api_prefix}/decks/schedule/bulk", response_model=BulkScheduleOut)
def schedule_decks_bulk(req: BulkScheduleRequest, db: Session = Depends(get_db)):
    scheduled: list[ScheduledDeck] = []
    skipped: list[dict[str, str]] = []
    seen: set[str] = set()
    for item in req.items:
        template = get_template_by_id(item.template_id)
        if not template:
            skipped.append({"customer_id": item.customer_id, "reason": "template_not_found"})
            continue
        if item.customer_id in seen or _active_scheduled_deck(db, item.customer_id):
            skipped.append({"customer_id": item.customer_id, "reason": "already_scheduled"})
            continue
        seen.add(item.customer_id)
        row = _new_scheduled_deck(item, template)
        db.add(row)
        scheduled.append(row)
    db.commit()
    return BulkScheduleOut(
        scheduled=[ScheduledDeckOut.model_validate(row, from_attributes=True) for row in scheduled],
        skipped=skipped,
    )


@app.get(f"{settings.api_prefix}/decks/ready", response_model=list[ScheduledDeckOut])
def get_ready_decks(
    assigned_to: str | None = None,
    include_viewed: bool = False,
    limit: int = Query(default=20, ge=1, le=50),
    db: Session = Depends(get_db),
):
    query = select(ScheduledDeck).where(ScheduledDeck.status == "completed")
    if assigned_to:
        query = query.where(ScheduledDeck.assigned_to == assigned_to)
    if not include_viewed:
        query = query.where(ScheduledDeck.viewed_at.is_(None))
    return db.scalars(query.order_by(ScheduledDeck.completed_at.desc()).limit(limit)).all()


@app.post(f"{settings.api_prefix}/decks/ready/{{deck_id}}/viewed", response_model=ScheduledDeckOut)
def mark_deck_viewed(deck_id: str, db: Session = Depends(get_db)):
    row = db.get(ScheduledDeck, deck_id)
    if not row:
        raise HTTPException(status_code=404, detail="Scheduled deck not found")
    if row.viewed_at is None:
        row.viewed_at = datetime.utcnow()
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


def _cron_token(x_cron_secret: str | None, authorization: str | None) -> str | None:
    if x_cron_secret:
        return x_cron_secret
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


@app.post(f"{settings.api_prefix}/cron/process-scheduled-decks", response_model=CronRunOut)
def trigger_scheduled_decks(
    x_cron_secret: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
):
    if not settings.cron_secret:
        raise HTTPException(status_code=503, detail="Cron secret not configured")
    if _cron_token(x_cron_secret, authorization) != settings.cron_secret:
        raise HTTPException(status_code=401, detail="Unauthorized")
    result = process_scheduled_decks.delay()
    return CronRunOut(queued=True, task_id=getattr(result, "id", None))
