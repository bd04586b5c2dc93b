import json
import logging
import time
from time import perf_counter
from typing import Any

from openai import OpenAI

from deckgen.deck_types import Section, SubjectContext
from deckgen.providers.base import BaseContentProvider, preview_text
from deckgen.services.content_prompts import build_section_prompts


logger = logging.getLogger("deckgen.providers")


class OpenAIProvider(BaseContentProvider):
    name = "openai"

    def __init__(self, api_key: str, *, model: str, preview_chars: int = 180, client: Any = None):
        super().__init__()
        self.model = model
        self.preview_chars = preview_chars
        self.client = client or OpenAI(api_key=api_key)

    def _run_json_request(self, *, system: str, user: str, request_label: str, retries: int = 2) -> dict[str, Any]:
        last_error: Exception | None = None

        for attempt in range(retries + 1):
            started = perf_counter()
            logger.info(
                "openai_request_start label=%s model=%s attempt=%d/%d input_chars=%d user_preview=%s",
                request_label,
                self.model,
                attempt + 1,
                retries + 1,
                len(system) + len(user),
                preview_text(user, 220),
            )
            try:
                response = self.client.responses.create(
                    model=self.model,
                    input=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    text={"format": {"type": "json_object"}},
                )
                text = (response.output_text or "").strip()
                if not text:
                    raise ValueError("OpenAI returned empty output")
                logger.info(
                    "openai_request_done label=%s duration_sec=%.2f output_chars=%d output_preview=%s",
                    request_label,
                    perf_counter() - started,
                    len(text),
                    preview_text(text, self.preview_chars),
                )
                payload = json.loads(text)
                if not isinstance(payload, dict):
                    raise ValueError("OpenAI output is not a JSON object")
                return payload
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "openai_request_error label=%s attempt=%d/%d duration_sec=%.2f reason=%s",
                    request_label,
                    attempt + 1,
                    retries + 1,
                    perf_counter() - started,
                    exc,
                )
                if attempt < retries:
                    time.sleep(0.6 * (2**attempt))

        if last_error:
            raise last_error
        raise RuntimeError("OpenAI request failed with unknown error")

    def generate_content(self, subject_context: SubjectContext, section: Section) -> dict[str, Any]:
        self.reset_warnings()
        prompts = build_section_prompts(subject_context, section)
        if prompts is None:
            return {}
        system, user = prompts
        try:
            return self._run_json_request(system=system, user=user, request_label=f"section:{section.id}")
        except Exception as exc:
            self.last_warnings.append(f"OpenAI content generation failed for {section.id} ({exc}).")
            return {}
