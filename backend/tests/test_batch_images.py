import pytest

from conftest import FakeImageClient, FakeResponse, FakeSession, RecordingSleep, image_response
from deckgen.deck_types import BatchItemResult, GeneratedSlide, SlideType
from deckgen.errors import BatchConfigurationError, BatchSubmissionError, ImageSynthesisError
from deckgen.services.batch_images import (
    BatchConfig,
    BatchImageProcessor,
    apply_batch_results,
    build_batch_items,
)
from deckgen.services.image_client import ImageProviderConfig


def _slides(count):
    return [
        GeneratedSlide(
            id=f"slide-{idx}",
            type=SlideType.LIST,
            section_id=f"section-{idx}",
            content={"title": f"Section {idx}", "items": []},
            ai_generated=False,
            generated_at="2026-01-01T00:00:00+00:00",
        )
        for idx in range(1, count + 1)
    ]


@pytest.fixture
def items(branding):
    return build_batch_items(_slides(5), branding)


@pytest.fixture
def make_processor(engine_factory):
    def make(session=None, client=None, api_key="test-key", item_delay=0.5, sleep=None):
        return BatchImageProcessor(
            ImageProviderConfig(api_key=api_key, model="image-model"),
            engine_factory(client or FakeImageClient()),
            config=BatchConfig(item_delay_seconds=item_delay),
            session=session or FakeSession(),
            sleep=sleep or RecordingSleep(),
        )

    return make


def _done_payload(rows, **extra):
    return {"name": "batches/abc", "done": True, "response": {"inlinedResponses": {"inlinedResponses": rows}}, **extra}


# ---------------------------------------------------------------------------
# Item construction
# ---------------------------------------------------------------------------

def test_build_batch_items_numbers_slides(items):
    assert [item.slide_id for item in items] == [f"slide-{idx}" for idx in range(1, 6)]
    assert [item.request.slide_number for item in items] == [1, 2, 3, 4, 5]
    assert {item.request.total_slides for item in items} == {5}


# ---------------------------------------------------------------------------
# submit_batch
# ---------------------------------------------------------------------------

def test_submit_without_credential_fails_before_any_request(make_processor, items):
    session = FakeSession()
    processor = make_processor(session=session, api_key=None)

    with pytest.raises(BatchConfigurationError):
        processor.submit_batch(items)

    assert session.posts == []


def test_submit_returns_job_name_and_keys_each_item(make_processor, items):
    session = FakeSession(post=[FakeResponse(200, {"name": "batches/abc"})])
    processor = make_processor(session=session)

    job_id = processor.submit_batch(items)

    assert job_id == "batches/abc"
    url, kwargs = session.posts[0]
    assert url.endswith("/models/image-model:batchGenerateContent")
    requests_body = kwargs["json"]["batch"]["input_config"]["requests"]["requests"]
    assert [row["metadata"]["key"] for row in requests_body] == [item.slide_id for item in items]


def test_submit_http_error_raises_submission_error(make_processor, items):
    processor = make_processor(session=FakeSession(post=[FakeResponse(500, text="oops")]))

    with pytest.raises(BatchSubmissionError) as exc_info:
        processor.submit_batch(items)

    assert exc_info.value.status_code == 500


def test_submit_without_job_identifier_is_an_error(make_processor, items):
    processor = make_processor(session=FakeSession(post=[FakeResponse(200, {"state": "queued"})]))

    with pytest.raises(BatchSubmissionError):
        processor.submit_batch(items)


def test_submit_empty_batch_is_rejected(make_processor):
    with pytest.raises(BatchSubmissionError):
        make_processor().submit_batch([])


# ---------------------------------------------------------------------------
# poll_batch
# ---------------------------------------------------------------------------

def test_poll_pending_job_is_not_done(make_processor):
    session = FakeSession(get=[FakeResponse(200, {"name": "batches/abc", "done": False, "metadata": {"state": "BATCH_STATE_RUNNING"}})])
    processor = make_processor(session=session)

    result = processor.poll_batch("batches/abc")

    assert result.done is False
    assert result.results == ()
    assert session.gets[0][0].endswith("/batches/abc")


def test_poll_bare_job_id_gets_batches_prefix(make_processor):
    session = FakeSession(get=[FakeResponse(200, {"done": False})])

    make_processor(session=session).poll_batch("abc")

    assert session.gets[0][0].endswith("/batches/abc")


def test_poll_done_reports_per_item_failure(make_processor, items):
    expected = [item.slide_id for item in items]
    rows = [{"metadata": {"key": slide_id}, "response": image_response()} for slide_id in expected]
    rows[2] = {"metadata": {"key": expected[2]}, "error": {"message": "Safety filter"}}
    processor = make_processor(session=FakeSession(get=[FakeResponse(200, _done_payload(rows))]))

    result = processor.poll_batch("batches/abc", expected)

    assert result.done is True
    assert [row.slide_id for row in result.results] == expected
    assert [row.success for row in result.results] == [True, True, False, True, True]
    assert result.results[2].error == "Safety filter"


def test_poll_done_fills_missing_items(make_processor):
    rows = [{"metadata": {"key": "slide-1"}, "response": image_response()}]
    processor = make_processor(session=FakeSession(get=[FakeResponse(200, _done_payload(rows))]))

    result = processor.poll_batch("batches/abc", ["slide-1", "slide-2"])

    assert result.results[0].success is True
    assert result.results[1].success is False
    assert result.results[1].error == "No result returned for item"


def test_poll_failed_job_marks_every_item(make_processor):
    payload = {"done": True, "metadata": {"state": "BATCH_STATE_EXPIRED"}}
    processor = make_processor(session=FakeSession(get=[FakeResponse(200, payload)]))

    result = processor.poll_batch("batches/abc", ["slide-1", "slide-2"])

    assert [row.success for row in result.results] == [False, False]
    assert all("BATCH_STATE_EXPIRED" in row.error for row in result.results)


def test_poll_server_error_is_retryable(make_processor):
    processor = make_processor(session=FakeSession(get=[FakeResponse(503)]))

    with pytest.raises(ImageSynthesisError) as exc_info:
        processor.poll_batch("batches/abc")

    assert exc_info.value.retryable is True


# ---------------------------------------------------------------------------
# process_synchronously
# ---------------------------------------------------------------------------

def test_process_synchronously_isolates_failures_and_paces_items(make_processor, items):
    client = FakeImageClient(
        {"section-3": [ImageSynthesisError("Bad prompt", code="GEMINI_API_ERROR", retryable=False, status_code=400)]}
    )
    pacing = RecordingSleep()
    processor = make_processor(client=client, sleep=pacing)

    results = processor.process_synchronously(items)

    assert [row.success for row in results] == [True, True, False, True, True]
    assert "Bad prompt" in results[2].error
    assert pacing.delays == [0.5, 0.5, 0.5, 0.5]


def test_process_synchronously_without_credential(make_processor, items):
    client = FakeImageClient()

    with pytest.raises(BatchConfigurationError):
        make_processor(client=client, api_key="").process_synchronously(items)

    assert client.calls == []


# ---------------------------------------------------------------------------
# apply_batch_results
# ---------------------------------------------------------------------------

def test_apply_batch_results_leaves_every_slide_with_image_or_error():
    slides = _slides(3)
    results = [
        BatchItemResult(slide_id="slide-1", success=True, image_data="YQ==", mime_type="image/png"),
        BatchItemResult(slide_id="slide-2", success=False, error="Quota exceeded"),
    ]

    attached = apply_batch_results(slides, results)

    assert attached == 1
    assert slides[0].has_image and slides[0].image_error is None
    assert slides[1].image_error == "Quota exceeded"
    assert slides[2].image_error == "No batch result returned for slide"
    assert all(slide.has_image != bool(slide.image_error) for slide in slides)
