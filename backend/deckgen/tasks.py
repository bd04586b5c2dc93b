from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from time import perf_counter

from sqlalchemy import select

from deckgen.celery_app import celery_app
from deckgen.config import settings
from deckgen.db import SessionLocal
from deckgen.deck_types import BatchItemResult, GeneratedDeck, GenerationProgress, GenerationRequest
from deckgen.errors import BatchConfigurationError, BatchSubmissionError, ImageSynthesisError
from deckgen.models import DeckJob, ScheduledDeck
from deckgen.services.batch_images import apply_batch_results, build_batch_items
from deckgen.services.deck_templates import get_template_by_id
from deckgen.services.job_trace import record_job_event, record_progress
from deckgen.services.pipeline import build_batch_processor, build_orchestrator
from deckgen.storage import SCHEDULED, load_pending_slides, save_deck, save_pending_slides


logger = logging.getLogger("deckgen.jobs")

CANCEL_POLL_SECONDS = 0.5


def configure_logging() -> None:
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    for name in ("deckgen.jobs", "deckgen.pipeline", "deckgen.images", "deckgen.batch", "deckgen.providers"):
        logging.getLogger(name).setLevel(level)
    if settings.suppress_httpx_info_logs:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)
        logging.getLogger("anthropic").setLevel(logging.WARNING)


def _log_fields(fields: dict) -> str:
    return " ".join(
        f"{key}={json.dumps(value, ensure_ascii=False, default=str)}" for key, value in fields.items() if value is not None
    )


def _job_log(job_id: str, message: str, *, persist: bool = True, **fields) -> None:
    if persist:
        record_job_event(job_id, message, fields)

    if not settings.verbose_job_trace and not message.endswith(("_start", "_complete", "_failed")):
        return
    details = _log_fields(fields)
    if details:
        logger.info("job=%s %s | %s", job_id, message, details)
    else:
        logger.info("job=%s %s", job_id, message)


configure_logging()


def _set_job_state(
    db,
    job: DeckJob,
    *,
    status: str,
    phase: str,
    progress: int,
    message: str | None = None,
    error_code=None,
    error_message=None,
):
    job.status = status
    job.phase = phase
    job.progress_pct = progress
    if message is not None:
        job.message = message
    job.error_code = error_code
    job.error_message = error_message
    job.updated_at = datetime.utcnow()
    if status in {"completed", "failed", "cancelled"}:
        job.completed_at = datetime.utcnow()
    db.add(job)
    db.commit()
    _job_log(
        job.id,
        "state_update",
        status=status,
        phase=phase,
        progress=progress,
        error_code=error_code,
    )


class JobCancelFlag:
    """Cancellation signal backed by ``DeckJob.cancel_requested``; read fresh on every check."""

    def __init__(self, job_id: str, *, poll_seconds: float = CANCEL_POLL_SECONDS):
        self.job_id = job_id
        self.poll_seconds = poll_seconds

    def is_set(self) -> bool:
        db = SessionLocal()
        try:
            flag = db.scalar(select(DeckJob.cancel_requested).where(DeckJob.id == self.job_id))
            return bool(flag)
        finally:
            db.close()

    def wait(self, timeout: float | None = None) -> bool:
        # Same contract as threading.Event.wait: None blocks until the flag is set.
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.is_set():
                return True
            if deadline is None:
                time.sleep(self.poll_seconds)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(self.poll_seconds, remaining))


def _progress_writer(db, job: DeckJob):
    def observe(snapshot: GenerationProgress) -> None:
        if snapshot.is_terminal:
            return
        job.status = "running"
        job.phase = snapshot.status.value
        job.progress_pct = snapshot.progress
        job.current_step = snapshot.current_step
        job.total_steps = snapshot.total_steps
        job.message = snapshot.message
        job.updated_at = datetime.utcnow()
        db.add(job)
        db.commit()
        record_progress(job.id, snapshot)
        _job_log(
            job.id,
            "progress",
            persist=False,
            phase=snapshot.status.value,
            step=f"{snapshot.current_step}/{snapshot.total_steps}",
            progress=snapshot.progress,
            slide=snapshot.current_slide,
            message=snapshot.message,
        )

    return observe


@celery_app.task(name="deckgen.tasks.run_generation_job")
def run_generation_job(job_id: str):
    db = SessionLocal()
    started_at = perf_counter()
    try:
        job = db.get(DeckJob, job_id)
        if not job:
            return

        payload = json.loads(job.payload_json)
        request = GenerationRequest.from_dict(payload)
        _job_log(
            job.id,
            "generation_job_start",
            template_id=request.template_id,
            enabled_sections=request.options.enabled_sections,
            include_ai_content=request.options.include_ai_content,
            provider=payload.get("provider"),
        )
        _set_job_state(db, job, status="running", phase="initializing", progress=0)

        orchestrator = build_orchestrator(settings, provider_name=payload.get("provider"))
        deck = orchestrator.generate(
            get_template_by_id(request.template_id),
            request,
            observer=_progress_writer(db, job),
            cancel=JobCancelFlag(job.id),
        )

        deck_path = save_deck(deck, stem=job.id)
        job.deck_path = str(deck_path)
        job.current_step = job.total_steps
        cancelled = deck.metadata.cancelled
        _set_job_state(
            db,
            job,
            status="cancelled" if cancelled else "completed",
            phase="complete",
            progress=100,
            message=f"Generation cancelled: partial deck with {deck.metadata.total_slides} slides"
            if cancelled
            else f"Deck ready: {deck.metadata.total_slides} slides",
        )
        _job_log(
            job.id,
            "generation_job_complete",
            deck_id=deck.id,
            slides=deck.metadata.total_slides,
            images=deck.metadata.image_slides_count,
            failed_images=deck.metadata.failed_image_count,
            cancelled=cancelled,
            duration_sec=f"{perf_counter() - started_at:.2f}",
        )
    except Exception as exc:
        if "job" in locals() and job:
            _job_log(job.id, "generation_job_failed", reason=str(exc))
            _set_job_state(
                db,
                job,
                status="failed",
                phase="error",
                progress=job.progress_pct,
                message=str(exc),
                error_code=getattr(exc, "code", "GENERATION_FAILED"),
                error_message=str(exc),
            )
        raise
    finally:
        db.close()


def _complete_scheduled(db, row: ScheduledDeck, deck: GeneratedDeck) -> None:
    path = save_deck(deck, kind=SCHEDULED, stem=row.id)
    row.result_path = str(path)
    row.actual_slides = deck.metadata.total_slides
    row.processing_time_ms = deck.metadata.generation_time_ms
    row.status = "completed"
    row.error_message = None
    row.completed_at = datetime.utcnow()
    row.updated_at = datetime.utcnow()
    db.add(row)
    db.commit()
    logger.info(
        "scheduled_deck_complete id=%s customer=%s slides=%d images=%d batch=%s",
        row.id,
        row.customer_id,
        deck.metadata.total_slides,
        deck.metadata.image_slides_count,
        deck.metadata.batch_processed,
    )


def _fail_scheduled(db, row: ScheduledDeck, reason: str) -> None:
    db.rollback()
    row.status = "failed"
    row.retry_count = (row.retry_count or 0) + 1
    row.error_message = reason
    row.updated_at = datetime.utcnow()
    db.add(row)
    db.commit()
    logger.error("scheduled_deck_failed id=%s customer=%s retry_count=%d reason=%s", row.id, row.customer_id, row.retry_count, reason)


def _process_scheduled_deck(db, row: ScheduledDeck, orchestrator, processor) -> str:
    started = perf_counter()
    row.status = "processing"
    row.updated_at = datetime.utcnow()
    db.add(row)
    db.commit()

    payload = json.loads(row.request_payload or "{}")
    payload.setdefault("template_id", row.template_id)
    request = GenerationRequest.from_dict(payload)
    template = get_template_by_id(request.template_id)
    slides = orchestrator.resolve_slides(template, request)
    items = build_batch_items(slides, orchestrator.branding_for(template, request))

    use_batch = bool(payload.get("use_batch")) or len(items) >= settings.batch_min_items
    if use_batch and items:
        try:
            batch_job_id = processor.submit_batch(items)
        except (BatchConfigurationError, BatchSubmissionError) as exc:
            logger.warning("scheduled_batch_fallback id=%s items=%d reason=%s", row.id, len(items), exc)
        else:
            slides_path = save_pending_slides(row.id, slides, content_ms=int((perf_counter() - started) * 1000))
            row.batch_job_id = batch_job_id
            row.slides_path = str(slides_path)
            row.status = "awaiting_batch"
            row.updated_at = datetime.utcnow()
            db.add(row)
            db.commit()
            logger.info("scheduled_batch_submitted id=%s job=%s items=%d", row.id, batch_job_id, len(items))
            return "awaiting_batch"

    try:
        results = processor.process_synchronously(items) if items else []
    except BatchConfigurationError as exc:
        results = [BatchItemResult(slide_id=item.slide_id, success=False, error=str(exc)) for item in items]
    apply_batch_results(slides, results)
    deck = orchestrator.finalize_deck(template, request, slides, started=started)
    _complete_scheduled(db, row, deck)
    return "completed"


@celery_app.task(name="deckgen.tasks.process_scheduled_decks")
def process_scheduled_decks(limit: int | None = None) -> dict:
    db = SessionLocal()
    started_at = perf_counter()
    summary = {"processed": 0, "completed": 0, "awaiting_batch": 0, "failed": 0}
    try:
        rows = db.scalars(
            select(ScheduledDeck)
            .where(ScheduledDeck.status == "pending", ScheduledDeck.scheduled_for <= datetime.utcnow())
            .order_by(ScheduledDeck.scheduled_for.asc())
            .limit(max(1, min(limit or settings.scheduled_batch_limit, settings.scheduled_batch_limit)))
        ).all()
        logger.info("scheduled_run_start pending=%d", len(rows))
        if not rows:
            return summary

        orchestrator = build_orchestrator(settings)
        processor = build_batch_processor(settings)
        for row in rows:
            summary["processed"] += 1
            try:
                outcome = _process_scheduled_deck(db, row, orchestrator, processor)
                summary[outcome] += 1
            except Exception as exc:
                _fail_scheduled(db, row, str(exc))
                summary["failed"] += 1

        logger.info(
            "scheduled_run_complete processed=%d completed=%d awaiting_batch=%d failed=%d duration_sec=%.2f",
            summary["processed"],
            summary["completed"],
            summary["awaiting_batch"],
            summary["failed"],
            perf_counter() - started_at,
        )
        return summary
    finally:
        db.close()


def _merge_batch(db, row: ScheduledDeck, orchestrator, processor) -> bool:
    slides, content_ms = load_pending_slides(row.slides_path)
    result = processor.poll_batch(row.batch_job_id, expected_ids=[slide.id for slide in slides])
    if not result.done:
        return False

    payload = json.loads(row.request_payload or "{}")
    payload.setdefault("template_id", row.template_id)
    request = GenerationRequest.from_dict(payload)
    template = get_template_by_id(request.template_id)
    if template is None:
        raise ValueError(f"Template not found: {request.template_id}")

    apply_batch_results(slides, result.results)
    # Content time was spent in an earlier run; count it together with the merge.
    started = perf_counter() - content_ms / 1000
    deck = orchestrator.finalize_deck(template, request, slides, started=started, batch_processed=True)
    _complete_scheduled(db, row, deck)
    return True


@celery_app.task(name="deckgen.tasks.poll_scheduled_batches")
def poll_scheduled_batches() -> dict:
    db = SessionLocal()
    summary = {"checked": 0, "completed": 0, "pending": 0, "failed": 0}
    try:
        rows = db.scalars(
            select(ScheduledDeck)
            .where(ScheduledDeck.status == "awaiting_batch")
            .order_by(ScheduledDeck.updated_at.asc())
            .limit(settings.scheduled_batch_limit)
        ).all()
        if not rows:
            return summary

        orchestrator = build_orchestrator(settings)
        processor = build_batch_processor(settings)
        for row in rows:
            summary["checked"] += 1
            try:
                if _merge_batch(db, row, orchestrator, processor):
                    summary["completed"] += 1
                else:
                    summary["pending"] += 1
            except ImageSynthesisError as exc:
                if exc.retryable:
                    logger.warning("scheduled_batch_poll_retry id=%s job=%s reason=%s", row.id, row.batch_job_id, exc)
                    summary["pending"] += 1
                else:
                    _fail_scheduled(db, row, str(exc))
                    summary["failed"] += 1
            except Exception as exc:
                _fail_scheduled(db, row, str(exc))
                summary["failed"] += 1
        logger.info(
            "scheduled_batch_poll_complete checked=%d completed=%d pending=%d failed=%d",
            summary["checked"],
            summary["completed"],
            summary["pending"],
            summary["failed"],
        )
        return summary
    finally:
        db.close()
