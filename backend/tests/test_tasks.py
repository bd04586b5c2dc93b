import json
from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest

from conftest import FakeContentProvider, FakeImageClient, FakeResponse, FakeSession, FakeSubjectStore, RecordingSleep, image_response
from deckgen import tasks
from deckgen.db import SessionLocal
from deckgen.errors import TemplateNotFoundError
from deckgen.models import DeckJob, ScheduledDeck
from deckgen.services.batch_images import BatchConfig, BatchImageProcessor
from deckgen.services.content_resolver import ContentResolver
from deckgen.services.data_sources import build_default_registry
from deckgen.services.deck_templates import CUSTOMER_CHEAT_SHEET
from deckgen.services.image_client import ImageProviderConfig
from deckgen.services.job_trace import list_job_events
from deckgen.services.orchestrator import DeckOrchestrator
from deckgen.storage import read_json


DEFAULT_SECTION_COUNT = len(CUSTOMER_CHEAT_SHEET.default_section_ids())


class EchoStore:
    """Returns a small list payload for every section the CRM is asked about."""

    def fetch_section_data(self, name, context):
        return {"title": name, "items": [{"primary": f"{name} item"}]}


@pytest.fixture
def orchestrator(engine_factory):
    return DeckOrchestrator(
        ContentResolver(build_default_registry(EchoStore()), FakeContentProvider()),
        engine_factory(FakeImageClient()),
        subject_store=FakeSubjectStore(None),
    )


@pytest.fixture
def make_processor(engine_factory):
    def make(session):
        return BatchImageProcessor(
            ImageProviderConfig(api_key="test-key"),
            engine_factory(FakeImageClient()),
            config=BatchConfig(item_delay_seconds=0),
            session=session,
            sleep=RecordingSleep(),
        )

    return make


@pytest.fixture
def wire(monkeypatch, orchestrator):
    def install(processor=None):
        monkeypatch.setattr(tasks, "build_orchestrator", lambda settings, provider_name=None: orchestrator)
        if processor is not None:
            monkeypatch.setattr(tasks, "build_batch_processor", lambda settings: processor)

    return install


@pytest.fixture(autouse=True)
def clean_scheduled():
    db = SessionLocal()
    try:
        db.query(ScheduledDeck).delete()
        db.commit()
    finally:
        db.close()


def _create_job(payload, **fields):
    db = SessionLocal()
    try:
        job = DeckJob(id=str(uuid4()), template_id=payload["template_id"], payload_json=json.dumps(payload), **fields)
        db.add(job)
        db.commit()
        return job.id
    finally:
        db.close()


def _load(model, row_id):
    db = SessionLocal()
    try:
        return db.get(model, row_id)
    finally:
        db.close()


def _schedule(payload, template_id="customer-cheat-sheet"):
    db = SessionLocal()
    try:
        row = ScheduledDeck(
            id=str(uuid4()),
            customer_id=str(uuid4()),
            template_id=template_id,
            scheduled_for=datetime.utcnow() - timedelta(minutes=5),
            request_payload=json.dumps(payload),
        )
        db.add(row)
        db.commit()
        return row.id
    finally:
        db.close()


def _payload(template_id="customer-cheat-sheet", use_batch=False, sections=None):
    options = {"include_ai_content": False}
    if sections is not None:
        options["enabled_sections"] = sections
    return {
        "template_id": template_id,
        "context": {"customer_id": "cust-9"},
        "use_batch": use_batch,
        "options": options,
    }


# ---------------------------------------------------------------------------
# run_generation_job
# ---------------------------------------------------------------------------

def test_generation_job_completes_and_stores_deck(wire):
    wire()
    job_id = _create_job(_payload())

    tasks.run_generation_job(job_id)

    job = _load(DeckJob, job_id)
    assert job.status == "completed"
    assert job.progress_pct == 100
    assert job.total_steps == 2 + 2 * DEFAULT_SECTION_COUNT
    assert job.completed_at is not None
    deck = read_json(Path(job.deck_path))
    assert deck["metadata"]["total_slides"] == DEFAULT_SECTION_COUNT
    assert deck["metadata"]["image_slides_count"] == DEFAULT_SECTION_COUNT

    event_types = [row.event_type for row in list_job_events(job_id)]
    assert "generation_job_start" in event_types
    assert "generation_job_complete" in event_types


def test_generation_job_with_empty_selection_builds_empty_deck(wire):
    wire()
    job_id = _create_job(_payload(sections=[]))

    tasks.run_generation_job(job_id)

    job = _load(DeckJob, job_id)
    assert job.status == "completed"
    assert job.progress_pct == 100
    assert job.total_steps == 2
    assert read_json(Path(job.deck_path))["slides"] == []


def test_generation_job_records_failure_code(wire):
    wire()
    job_id = _create_job(_payload(template_id="no-such-template"))

    with pytest.raises(TemplateNotFoundError):
        tasks.run_generation_job(job_id)

    job = _load(DeckJob, job_id)
    assert job.status == "failed"
    assert job.error_code == "TEMPLATE_NOT_FOUND"
    assert job.completed_at is not None


def test_generation_job_honours_cancel_request(wire):
    wire()
    job_id = _create_job(_payload(), cancel_requested=1)

    tasks.run_generation_job(job_id)

    job = _load(DeckJob, job_id)
    assert job.status == "cancelled"
    assert read_json(Path(job.deck_path))["metadata"]["cancelled"] is True


def test_unknown_job_is_ignored(wire):
    wire()
    assert tasks.run_generation_job("missing-job") is None


def test_cancel_flag_reads_database(wire):
    job_id = _create_job(_payload())
    flag = tasks.JobCancelFlag(job_id, poll_seconds=0.01)

    assert flag.is_set() is False
    assert flag.wait(0.02) is False

    db = SessionLocal()
    try:
        db.get(DeckJob, job_id).cancel_requested = 1
        db.commit()
    finally:
        db.close()

    assert flag.is_set() is True
    assert flag.wait(5) is True


def test_cancel_flag_wait_without_timeout_blocks_until_set(monkeypatch):
    job_id = _create_job(_payload())
    flag = tasks.JobCancelFlag(job_id, poll_seconds=0.01)
    naps = []

    def fake_sleep(seconds):
        naps.append(seconds)
        if len(naps) == 3:
            db = SessionLocal()
            try:
                db.get(DeckJob, job_id).cancel_requested = 1
                db.commit()
            finally:
                db.close()

    monkeypatch.setattr(tasks.time, "sleep", fake_sleep)

    assert flag.wait(None) is True
    assert naps == [0.01, 0.01, 0.01]


# ---------------------------------------------------------------------------
# Scheduled decks
# ---------------------------------------------------------------------------

def test_scheduled_deck_small_run_is_synchronous(wire, make_processor):
    session = FakeSession()
    wire(make_processor(session))
    row_id = _schedule(_payload())

    summary = tasks.process_scheduled_decks()

    assert summary == {"processed": 1, "completed": 1, "awaiting_batch": 0, "failed": 0}
    assert session.posts == []
    row = _load(ScheduledDeck, row_id)
    assert row.status == "completed"
    assert row.actual_slides == DEFAULT_SECTION_COUNT
    deck = read_json(Path(row.result_path))
    assert deck["metadata"]["batch_processed"] is False


def test_scheduled_deck_batch_round_trip(wire, make_processor):
    session = FakeSession(post=[FakeResponse(200, {"name": "batches/nightly-1"})])
    processor = make_processor(session)
    wire(processor)
    row_id = _schedule(_payload(use_batch=True))

    assert tasks.process_scheduled_decks()["awaiting_batch"] == 1
    row = _load(ScheduledDeck, row_id)
    assert row.status == "awaiting_batch"
    assert row.batch_job_id == "batches/nightly-1"

    slide_ids = [slide["id"] for slide in read_json(Path(row.slides_path))["slides"]]
    rows = [{"metadata": {"key": slide_id}, "response": image_response()} for slide_id in slide_ids[:-1]]
    session.get_queue = [
        FakeResponse(200, {"done": False}),
        FakeResponse(200, {"done": True, "response": {"inlinedResponses": rows}}),
    ]

    assert tasks.poll_scheduled_batches()["pending"] == 1
    assert tasks.poll_scheduled_batches()["completed"] == 1

    row = _load(ScheduledDeck, row_id)
    assert row.status == "completed"
    deck = read_json(Path(row.result_path))
    assert deck["metadata"]["batch_processed"] is True
    assert deck["metadata"]["image_slides_count"] == len(slide_ids) - 1
    assert deck["metadata"]["failed_image_count"] == 1


def test_batch_poll_outage_keeps_row_waiting(wire, make_processor):
    session = FakeSession(post=[FakeResponse(200, {"name": "batches/nightly-2"})], get=[FakeResponse(503)])
    wire(make_processor(session))
    row_id = _schedule(_payload(use_batch=True))
    tasks.process_scheduled_decks()

    summary = tasks.poll_scheduled_batches()

    assert summary["pending"] == 1
    assert _load(ScheduledDeck, row_id).status == "awaiting_batch"


def test_batch_submit_failure_falls_back_to_synchronous(wire, make_processor):
    session = FakeSession(post=[FakeResponse(500, text="unavailable")])
    wire(make_processor(session))
    row_id = _schedule(_payload(use_batch=True))

    summary = tasks.process_scheduled_decks()

    assert summary["completed"] == 1
    row = _load(ScheduledDeck, row_id)
    assert row.status == "completed"
    assert row.batch_job_id is None


def test_scheduled_deck_failure_increments_retry_count(wire, make_processor):
    wire(make_processor(FakeSession()))
    row_id = _schedule(_payload(template_id="no-such-template"), template_id="no-such-template")

    summary = tasks.process_scheduled_decks()

    assert summary["failed"] == 1
    row = _load(ScheduledDeck, row_id)
    assert row.status == "failed"
    assert row.retry_count == 1
    assert "no-such-template" in row.error_message


def test_future_scheduled_deck_is_not_picked_up(wire, make_processor):
    wire(make_processor(FakeSession()))
    db = SessionLocal()
    try:
        db.add(
            ScheduledDeck(
                id=str(uuid4()),
                customer_id="later",
                template_id="customer-cheat-sheet",
                scheduled_for=datetime.utcnow() + timedelta(days=1),
                request_payload=json.dumps(_payload()),
            )
        )
        db.commit()
    finally:
        db.close()

    assert tasks.process_scheduled_decks()["processed"] == 0
