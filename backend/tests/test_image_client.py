import pytest
import requests

from conftest import FakeResponse, FakeSession, image_response
from deckgen.deck_types import SlideImageRequest, SlideType
from deckgen.errors import ImageSynthesisError
from deckgen.services.image_client import (
    ImageProviderConfig,
    ImageSynthesisClient,
    extract_inline_image,
    is_retryable_status,
)


@pytest.fixture
def slide_request(branding):
    return SlideImageRequest(
        slide_type=SlideType.LIST,
        section_id="next-steps",
        content={"title": "Next Steps", "items": [{"primary": "Call back"}]},
        branding=branding,
        slide_number=2,
        total_slides=4,
    )


def _client(session, **overrides):
    config = ImageProviderConfig(api_key=overrides.pop("api_key", "test-key"), **overrides)
    return ImageSynthesisClient(config, session=session)


def _error_for(session, slide_request, **overrides):
    with pytest.raises(ImageSynthesisError) as exc_info:
        _client(session, **overrides).synthesize(slide_request)
    return exc_info.value


# ---------------------------------------------------------------------------
# Status classification
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("status_code", [408, 429, 500, 502, 503])
def test_retryable_statuses(status_code):
    assert is_retryable_status(status_code) is True


@pytest.mark.parametrize("status_code", [400, 401, 403, 422])
def test_client_errors_are_not_retryable(status_code):
    assert is_retryable_status(status_code) is False


# ---------------------------------------------------------------------------
# synthesize
# ---------------------------------------------------------------------------

def test_missing_api_key_fails_without_network(slide_request):
    session = FakeSession()

    error = _error_for(session, slide_request, api_key="")

    assert error.code == "API_KEY_MISSING"
    assert error.retryable is False
    assert session.posts == []


def test_success_returns_inline_image(slide_request):
    session = FakeSession(post=[FakeResponse(200, image_response(data="Zm9v", mime_type="image/jpeg"))])

    image = _client(session, model="image-model").synthesize(slide_request)

    assert image.data == "Zm9v"
    assert image.mime_type == "image/jpeg"
    url, kwargs = session.posts[0]
    assert url.endswith("/models/image-model:generateContent")
    assert kwargs["headers"]["x-goog-api-key"] == "test-key"
    assert kwargs["json"]["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]
    assert kwargs["stream"] is True


def test_not_found_is_retryable_by_default(slide_request):
    error = _error_for(FakeSession(post=[FakeResponse(404, text="missing")]), slide_request)

    assert error.code == "ROUTE_NOT_FOUND"
    assert error.retryable is True
    assert error.status_code == 404


def test_not_found_can_be_made_terminal(slide_request):
    error = _error_for(FakeSession(post=[FakeResponse(404)]), slide_request, retry_on_not_found=False)

    assert error.retryable is False


def test_rate_limit_is_retryable(slide_request):
    error = _error_for(FakeSession(post=[FakeResponse(429, text="slow down")]), slide_request)

    assert error.code == "GEMINI_API_ERROR"
    assert error.retryable is True
    assert "429" in str(error)


def test_bad_request_is_not_retryable(slide_request):
    error = _error_for(FakeSession(post=[FakeResponse(400, text="invalid prompt")]), slide_request)

    assert error.retryable is False
    assert error.status_code == 400


def test_timeout_is_retryable(slide_request):
    error = _error_for(FakeSession(post=[requests.Timeout("read timed out")]), slide_request, timeout_seconds=5)

    assert error.code == "TIMEOUT"
    assert error.retryable is True
    assert "5 seconds" in str(error)


def test_slow_body_hits_total_deadline(slide_request):
    ticks = iter([0.0, 20.0, 45.0, 61.0, 90.0])
    response = FakeResponse(200, chunks=[b'{"candidates"', b": [", b"]}"])
    client = ImageSynthesisClient(
        ImageProviderConfig(api_key="test-key", timeout_seconds=60),
        session=FakeSession(post=[response]),
        clock=lambda: next(ticks),
    )

    with pytest.raises(ImageSynthesisError) as exc_info:
        client.synthesize(slide_request)

    assert exc_info.value.code == "TIMEOUT"
    assert exc_info.value.retryable is True
    assert response.closed is True


def test_body_stream_error_is_retryable(slide_request):
    class BrokenStream(FakeResponse):
        def iter_content(self, chunk_size=1):
            yield b'{"cand'
            raise requests.ConnectionError("connection reset")

    error = _error_for(FakeSession(post=[BrokenStream(200)]), slide_request)

    assert error.code == "NETWORK_ERROR"
    assert error.retryable is True


def test_connection_error_is_retryable(slide_request):
    error = _error_for(FakeSession(post=[requests.ConnectionError("refused")]), slide_request)

    assert error.code == "NETWORK_ERROR"
    assert error.retryable is True


def test_invalid_json_is_parse_error(slide_request):
    error = _error_for(FakeSession(post=[FakeResponse(200, None, text="<html>")]), slide_request)

    assert error.code == "PARSE_ERROR"
    assert error.retryable is True


def test_response_without_image_part(slide_request):
    payload = {"candidates": [{"content": {"parts": [{"text": "I cannot draw that"}]}}]}

    error = _error_for(FakeSession(post=[FakeResponse(200, payload)]), slide_request)

    assert error.code == "NO_IMAGE_GENERATED"
    assert error.retryable is True


def test_extract_inline_image_accepts_snake_case_parts():
    payload = {"candidates": [{"content": {"parts": [{"inline_data": {"mime_type": "image/webp", "data": "YWJj"}}]}}]}

    image = extract_inline_image(payload)

    assert image is not None
    assert image.mime_type == "image/webp"


def test_extract_inline_image_ignores_garbage():
    assert extract_inline_image(None) is None
    assert extract_inline_image({"candidates": []}) is None
    assert extract_inline_image({"candidates": ["nope"]}) is None
