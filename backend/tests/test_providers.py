from types import SimpleNamespace

import pytest
import requests

from conftest import FakeResponse, FakeSession
from deckgen.config import Settings
from deckgen.deck_types import Section, SlideType, SubjectContext
from deckgen.providers import anthropic_provider, openai_provider
from deckgen.providers.anthropic_provider import AnthropicProvider
from deckgen.providers.base import extract_json_object, preview_text
from deckgen.providers.factory import get_content_provider
from deckgen.providers.mock_provider import MockProvider
from deckgen.providers.openai_provider import OpenAIProvider
from deckgen.services.content_prompts import build_section_prompts
from deckgen.services.crm_client import CrmClient


TALKING_POINTS = Section(
    id="talking-points",
    title="Recommended Talking Points",
    type=SlideType.TALKING_POINTS,
    data_source="generateCustomerTalkingPoints",
    ai_enhanced=True,
)
SUBJECT = SubjectContext(
    subject={"id": "c-1", "firstName": "Dana", "lastName": "Reyes", "city": "Plano", "state": "TX", "propertyValue": 412000},
    related_events=[{"eventType": "hail", "eventDate": "2025-05-02", "hailSize": 1.75}],
)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(openai_provider.time, "sleep", lambda seconds: None)
    monkeypatch.setattr(anthropic_provider.time, "sleep", lambda seconds: None)


class ScriptedCalls:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_extract_json_object_strips_fences():
    assert extract_json_object('```json\n{"points": []}\n```') == {"points": []}
    assert extract_json_object('Sure! {"a": 1} hope that helps') == {"a": 1}


@pytest.mark.parametrize("text", ["no braces here", "", "} backwards {"])
def test_extract_json_object_rejects_non_objects(text):
    with pytest.raises(ValueError):
        extract_json_object(text)


def test_preview_text_flattens_and_truncates():
    assert preview_text("a\nb", 10) == "a b"
    assert preview_text("x" * 20, 5) == "xxxxx ..."


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def test_section_prompts_carry_subject_details():
    system, user = build_section_prompts(SUBJECT, TALKING_POINTS)

    assert "ONLY valid JSON" in system
    assert "Dana Reyes" in user
    assert "412,000" in user


def test_sections_without_prompt_have_none():
    section = Section(id="property-intel", title="Property", type=SlideType.IMAGE, data_source="getPropertyIntelData")

    assert build_section_prompts(SUBJECT, section) is None


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

def test_openai_provider_returns_parsed_object():
    responses = ScriptedCalls([SimpleNamespace(output_text='{"points": [{"topic": "t", "script": "s"}]}')])
    provider = OpenAIProvider("key", model="test-model", client=SimpleNamespace(responses=responses))

    payload = provider.generate_content(SUBJECT, TALKING_POINTS)

    assert payload["points"][0]["topic"] == "t"
    assert responses.calls[0]["text"] == {"format": {"type": "json_object"}}


def test_openai_provider_gives_up_with_empty_payload():
    responses = ScriptedCalls([RuntimeError("429"), RuntimeError("429"), SimpleNamespace(output_text="")])
    provider = OpenAIProvider("key", model="test-model", client=SimpleNamespace(responses=responses))

    assert provider.generate_content(SUBJECT, TALKING_POINTS) == {}
    assert len(responses.calls) == 3
    assert provider.last_warnings


def test_anthropic_provider_parses_fenced_reply():
    reply = SimpleNamespace(content=[SimpleNamespace(text='```json\n{"points": []}\n```')])
    messages = ScriptedCalls([reply])
    provider = AnthropicProvider("key", model="test-model", client=SimpleNamespace(messages=messages))

    assert provider.generate_content(SUBJECT, TALKING_POINTS) == {"points": []}
    assert messages.calls[0]["system"].startswith("You write slide content")


def test_anthropic_provider_invalid_json_falls_back():
    messages = ScriptedCalls([SimpleNamespace(content=[SimpleNamespace(text="I can't help with that.")])])
    provider = AnthropicProvider("key", model="test-model", client=SimpleNamespace(messages=messages))

    assert provider.generate_content(SUBJECT, TALKING_POINTS) == {}
    assert "invalid JSON" in provider.last_warnings[0]


def test_factory_falls_back_to_mock_without_keys():
    settings = Settings(default_content_provider="openai", openai_api_key=None)

    assert isinstance(get_content_provider(settings), MockProvider)
    assert isinstance(get_content_provider(settings, "anthropic"), MockProvider)
    assert MockProvider().generate_content(SUBJECT, TALKING_POINTS) == {}


# ---------------------------------------------------------------------------
# CRM client
# ---------------------------------------------------------------------------

def test_crm_subject_context_with_weather_events():
    session = FakeSession(
        get=[
            FakeResponse(200, {"customer": {"id": "c-1", "firstName": "Dana"}}),
            FakeResponse(200, {"weatherEvents": [{"eventType": "hail"}, "junk"]}),
        ]
    )
    client = CrmClient("http://crm.test/", api_token="tok", session=session)

    context = client.fetch_subject_context("c-1")

    assert context.subject_id == "c-1"
    assert context.related_events == [{"eventType": "hail"}]
    assert session.gets[0][0] == "http://crm.test/api/customers/c-1"
    assert session.gets[0][1]["headers"]["Authorization"] == "Bearer tok"


def test_crm_subject_failure_returns_none():
    client = CrmClient("http://crm.test", session=FakeSession(get=[requests.ConnectionError("down")]))

    assert client.fetch_subject_context("c-1") is None


def test_crm_section_data_unwraps_and_handles_404():
    session = FakeSession(post=[FakeResponse(200, {"data": {"title": "Stats"}}), FakeResponse(404)])
    client = CrmClient("http://crm.test", session=session)

    assert client.fetch_section_data("getCustomerOverviewStats", {"customer_id": "c-1"}) == {"title": "Stats"}
    assert client.fetch_section_data("getUnknown", {}) is None
    assert session.posts[0][1]["json"] == {"customer_id": "c-1"}


def test_crm_section_data_server_error_raises():
    client = CrmClient("http://crm.test", session=FakeSession(post=[FakeResponse(500)]))

    with pytest.raises(requests.HTTPError):
        client.fetch_section_data("getProjectStats", {})
