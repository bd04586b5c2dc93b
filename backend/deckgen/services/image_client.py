from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable

import requests

from deckgen.deck_types import ImagePayload, SlideImageRequest
from deckgen.errors import ImageSynthesisError
from deckgen.services.slide_image_prompts import build_generation_payload


logger = logging.getLogger("deckgen.images")

RETRYABLE_STATUS_CODES = frozenset({408, 429})
BODY_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class ImageProviderConfig:
    api_key: str | None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-3-pro-image-preview"
    timeout_seconds: float = 60
    retry_on_not_found: bool = True

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key or ""}


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in RETRYABLE_STATUS_CODES


def extract_inline_image(payload: Any) -> ImagePayload | None:
    if not isinstance(payload, dict):
        return None
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return ImagePayload(data=str(inline["data"]), mime_type=str(mime_type))
    return None


class ImageSynthesisClient:
    """One call to the image model per ``synthesize``; failures come back classified.

    ``timeout_seconds`` bounds the whole call. requests only applies its timeout per
    socket operation, so the body is streamed and the deadline checked between chunks.
    """

    def __init__(
        self,
        config: ImageProviderConfig,
        session: requests.Session | None = None,
        *,
        clock: Callable[[], float] = perf_counter,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.clock = clock

    def _timed_out(self) -> ImageSynthesisError:
        return ImageSynthesisError(
            f"Image generation timed out after {self.config.timeout_seconds} seconds",
            code="TIMEOUT",
            retryable=True,
        )

    def _read_body(self, response: requests.Response, deadline: float) -> bytes:
        chunks: list[bytes] = []
        try:
            for chunk in response.iter_content(chunk_size=BODY_CHUNK_BYTES):
                if self.clock() > deadline:
                    raise self._timed_out()
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise ImageSynthesisError(f"Network error during image generation: {exc}", code="NETWORK_ERROR", retryable=True) from exc
        finally:
            response.close()
        return b"".join(chunks)

    def synthesize(self, request: SlideImageRequest) -> ImagePayload:
        if not self.config.configured:
            raise ImageSynthesisError("Google AI API key not configured", code="API_KEY_MISSING", retryable=False)

        url = f"{self.config.base_url}/models/{self.config.model}:generateContent"
        started = self.clock()
        deadline = started + self.config.timeout_seconds
        logger.info(
            "image_request_start slide=%d/%d section=%s type=%s model=%s",
            request.slide_number,
            request.total_slides,
            request.section_id,
            request.slide_type.value,
            self.config.model,
        )
        try:
            response = self.session.post(
                url,
                headers=self.config.headers(),
                json=build_generation_payload(request),
                timeout=self.config.timeout_seconds,
                stream=True,
            )
        except requests.Timeout as exc:
            raise self._timed_out() from exc
        except requests.RequestException as exc:
            raise ImageSynthesisError(f"Network error during image generation: {exc}", code="NETWORK_ERROR", retryable=True) from exc

        body = self._read_body(response, deadline)

        if response.status_code == 404:
            raise ImageSynthesisError(
                "Image endpoint not found (404)",
                code="ROUTE_NOT_FOUND",
                retryable=self.config.retry_on_not_found,
                status_code=404,
            )
        if not response.ok:
            details = body.decode("utf-8", errors="replace")[:200]
            raise ImageSynthesisError(
                f"Gemini API error: {response.status_code} {details}".strip(),
                code="GEMINI_API_ERROR",
                retryable=is_retryable_status(response.status_code),
                status_code=response.status_code,
            )

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise ImageSynthesisError("Invalid JSON response", code="PARSE_ERROR", retryable=True) from exc

        image = extract_inline_image(payload)
        if image is None:
            raise ImageSynthesisError("Gemini returned no image data", code="NO_IMAGE_GENERATED", retryable=True)

        logger.info(
            "image_request_done slide=%d/%d section=%s duration_sec=%.2f mime=%s",
            request.slide_number,
            request.total_slides,
            request.section_id,
            self.clock() - started,
            image.mime_type,
        )
        return image
