import logging
import time
from time import perf_counter
from typing import Any

from anthropic import Anthropic

from deckgen.deck_types import Section, SubjectContext
from deckgen.providers.base import BaseContentProvider, extract_json_object, preview_text
from deckgen.services.content_prompts import build_section_prompts


logger = logging.getLogger("deckgen.providers")


class AnthropicProvider(BaseContentProvider):
    name = "anthropic"

    def __init__(self, api_key: str, *, model: str, max_tokens: int = 2000, preview_chars: int = 180, client: Any = None):
        super().__init__()
        self.model = model
        self.max_tokens = max_tokens
        self.preview_chars = preview_chars
        self.client = client or Anthropic(api_key=api_key)

    def _messages_create_with_retry(
        self,
        *,
        request_label: str,
        system: str,
        user: str,
        temperature: float,
        retries: int = 2,
    ) -> str:
        last_error: Exception | None = None
        for attempt in range(retries + 1):
            started = perf_counter()
            logger.info(
                "anthropic_request_start label=%s model=%s attempt=%d/%d input_chars=%d user_preview=%s",
                request_label,
                self.model,
                attempt + 1,
                retries + 1,
                len(system) + len(user),
                preview_text(user, 220),
            )
            try:
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    temperature=temperature,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                )
                text = "".join(block.text for block in response.content if hasattr(block, "text"))
                logger.info(
                    "anthropic_request_done label=%s duration_sec=%.2f output_chars=%d output_preview=%s",
                    request_label,
                    perf_counter() - started,
                    len(text),
                    preview_text(text, self.preview_chars),
                )
                return text
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "anthropic_request_error label=%s attempt=%d/%d duration_sec=%.2f reason=%s",
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
        raise RuntimeError("Anthropic request failed with unknown error")

    def generate_content(self, subject_context: SubjectContext, section: Section) -> dict[str, Any]:
        self.reset_warnings()
        prompts = build_section_prompts(subject_context, section)
        if prompts is None:
            return {}
        system, user = prompts
        try:
            text = self._messages_create_with_retry(
                request_label=f"section:{section.id}",
                system=system,
                user=user,
                temperature=0.7,
            )
        except Exception as exc:
            self.last_warnings.append(f"Anthropic content generation failed for {section.id} ({exc}).")
            return {}

        try:
            return extract_json_object(text)
        except ValueError as exc:
            logger.warning("anthropic_invalid_json section=%s reason=%s preview=%s", section.id, exc, preview_text(text, 140))
            self.last_warnings.append("Anthropic returned invalid JSON payload; data source content was used.")
            return {}
