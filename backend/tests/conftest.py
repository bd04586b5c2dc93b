import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="deckgen-tests-")
os.environ.setdefault("STORAGE_ROOT", _TEST_ROOT)
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_ROOT}/deckgen-test.db")
os.environ.setdefault("GOOGLE_AI_API_KEY", "")
os.environ.setdefault("DEFAULT_CONTENT_PROVIDER", "mock")

import json  # noqa: E402
import threading  # noqa: E402

import pytest  # noqa: E402
import requests  # noqa: E402

from deckgen.db import Base, engine  # noqa: E402
from deckgen import models  # noqa: E402,F401
from deckgen.deck_types import (  # noqa: E402
    BrandingConfig,
    ContextRequirement,
    GenerationOptions,
    GenerationRequest,
    ImagePayload,
    Section,
    SlideType,
    SubjectContext,
    Template,
)
from deckgen.providers.base import BaseContentProvider  # noqa: E402
from deckgen.services.content_resolver import ContentResolver  # noqa: E402
from deckgen.services.data_sources import DataSourceRegistry  # noqa: E402
from deckgen.services.image_retry import ImageRetryEngine, RetryPolicy  # noqa: E402
from deckgen.services.orchestrator import DeckOrchestrator  # noqa: E402


Base.metadata.create_all(bind=engine)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeImageClient:
    """Replays scripted outcomes per section id; default outcome is a PNG payload."""

    def __init__(self, outcomes=None, default=None):
        self.outcomes = {key: list(value) for key, value in (outcomes or {}).items()}
        self.default = default or ImagePayload(data="aW1hZ2U=", mime_type="image/png")
        self.calls = []

    def synthesize(self, request):
        self.calls.append(request)
        queue = self.outcomes.get(request.section_id)
        outcome = queue.pop(0) if queue else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeContentProvider(BaseContentProvider):
    name = "fake"

    def __init__(self, payloads=None):
        super().__init__()
        self.payloads = payloads or {}
        self.calls = []

    def generate_content(self, subject_context, section):
        self.calls.append(section.id)
        payload = self.payloads.get(section.id, {})
        if isinstance(payload, Exception):
            raise payload
        return payload


class FakeSubjectStore:
    def __init__(self, subject=None):
        self.subject = subject
        self.calls = []

    def fetch_subject_context(self, subject_id):
        self.calls.append(subject_id)
        return self.subject


class RecordingSleep:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text="", chunks=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.chunks = chunks
        self.closed = False

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def iter_content(self, chunk_size=1):
        if self.chunks is not None:
            yield from self.chunks
            return
        body = json.dumps(self._json).encode() if self._json is not None else self.text.encode()
        for start in range(0, len(body), chunk_size):
            yield body[start:start + chunk_size]

    def close(self):
        self.closed = True

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """Stand-in for ``requests.Session`` returning queued responses (or raising queued exceptions)."""

    def __init__(self, post=None, get=None):
        self.post_queue = list(post or [])
        self.get_queue = list(get or [])
        self.posts = []
        self.gets = []

    @staticmethod
    def _next(queue):
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        return self._next(self.post_queue)

    def get(self, url, **kwargs):
        self.gets.append((url, kwargs))
        return self._next(self.get_queue)


def image_response(data="aW1hZ2U=", mime_type="image/png"):
    return {"candidates": [{"content": {"parts": [{"text": "ok"}, {"inlineData": {"mimeType": mime_type, "data": data}}]}}]}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

STATS_CONTENT = {
    "title": "Customer At-A-Glance",
    "stats": [
        {"label": "Lead Score", "value": "82", "icon": "Target"},
        {"label": "Roof Age", "value": "19 yrs", "icon": "Home"},
    ],
}
TALKING_POINTS_CONTENT = {
    "title": "Talking Points",
    "points": [{"topic": "Opening", "script": "Hi there. We saw hail nearby. Can we inspect?", "priority": "high"}],
}
LIST_CONTENT = {
    "title": "Next Steps",
    "items": [{"primary": "Schedule inspection", "secondary": "This week"}],
    "numbered": True,
}


@pytest.fixture
def branding():
    return BrandingConfig(
        colors={"primary": "#1E3A5F", "secondary": "#D4A656", "background": "#0F1419", "text_muted": "#9CA3AF"},
        fonts={"heading": "Inter", "body": "Inter"},
        footer="Guardian Storm Repair | Confidential",
    )


@pytest.fixture
def template(branding):
    """Three sections: stats, ai-enhanced talking points, list."""
    return Template(
        id="test-template",
        name="Test Template",
        description="Three-section template",
        audience="rep",
        category="sales",
        sections=(
            Section(id="overview", title="Overview", type=SlideType.STATS, data_source="overviewStats"),
            Section(
                id="talking-points",
                title="Talking Points",
                type=SlideType.TALKING_POINTS,
                data_source="talkingPoints",
                ai_enhanced=True,
            ),
            Section(id="next-steps", title="Next Steps", type=SlideType.LIST, data_source="nextSteps"),
        ),
        branding=branding,
        required_context=(ContextRequirement(type="customer", required=True, label="Customer"),),
    )


@pytest.fixture
def registry():
    registry = DataSourceRegistry()
    registry.register("overviewStats", lambda ctx: dict(STATS_CONTENT))
    registry.register("talkingPoints", lambda ctx: dict(TALKING_POINTS_CONTENT))
    registry.register("nextSteps", lambda ctx: dict(LIST_CONTENT))
    return registry


@pytest.fixture
def subject():
    return SubjectContext(subject={"id": "cust-1", "firstName": "Dana", "city": "Austin"}, related_events=[])


@pytest.fixture
def provider():
    return FakeContentProvider()


@pytest.fixture
def image_client():
    return FakeImageClient()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def engine_factory(sleeper):
    def make(client, max_retries=3, base_delay=1.0):
        return ImageRetryEngine(client, RetryPolicy(max_retries=max_retries, base_delay_seconds=base_delay), sleep=sleeper)

    return make


@pytest.fixture
def orchestrator(registry, provider, image_client, subject, engine_factory):
    return DeckOrchestrator(
        ContentResolver(registry, provider),
        engine_factory(image_client),
        subject_store=FakeSubjectStore(subject),
    )


@pytest.fixture
def make_request():
    def make(enabled=("overview", "talking-points", "next-steps"), include_ai=True, context=None, template_id="test-template", branding=None):
        return GenerationRequest(
            template_id=template_id,
            context=context if context is not None else {"customer_id": "cust-1"},
            options=GenerationOptions(
                enabled_sections=None if enabled is None else tuple(enabled),
                include_ai_content=include_ai,
                custom_branding=branding,
            ),
        )

    return make


@pytest.fixture
def cancel_event():
    return threading.Event()
