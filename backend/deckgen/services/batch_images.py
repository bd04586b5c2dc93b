from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import requests

from deckgen.deck_types import (
    BatchItem,
    BatchItemResult,
    BatchPollResult,
    BrandingConfig,
    GeneratedSlide,
    SlideImageRequest,
)
from deckgen.errors import (
    BatchConfigurationError,
    BatchSubmissionError,
    ImageSynthesisError,
    ImageSynthesisFailed,
)
from deckgen.services.image_client import ImageProviderConfig, extract_inline_image, is_retryable_status
from deckgen.services.image_retry import ImageRetryEngine
from deckgen.services.slide_image_prompts import build_generation_payload


logger = logging.getLogger("deckgen.batch")

FAILED_BATCH_STATES = frozenset({"BATCH_STATE_FAILED", "BATCH_STATE_CANCELLED", "BATCH_STATE_EXPIRED"})


@dataclass(frozen=True)
class BatchConfig:
    item_delay_seconds: float = 0.5
    display_name: str = "deckgen-overnight"


def build_batch_items(slides: list[GeneratedSlide], branding: BrandingConfig) -> list[BatchItem]:
    total = len(slides)
    return [
        BatchItem(
            slide_id=slide.id,
            request=SlideImageRequest.for_slide(slide, branding, slide_number=idx, total_slides=total),
        )
        for idx, slide in enumerate(slides, start=1)
    ]


def apply_batch_results(slides: list[GeneratedSlide], results: Iterable[BatchItemResult]) -> int:
    by_id = {row.slide_id: row for row in results}
    attached = 0
    for slide in slides:
        row = by_id.get(slide.id)
        if row is None:
            slide.record_image_error("No batch result returned for slide")
        elif row.success and row.image_data:
            slide.attach_image(row.image_data, row.mime_type or "image/png")
            attached += 1
        else:
            slide.record_image_error(row.error or "Image generation failed")
    return attached


def _response_rows(payload: dict[str, Any]) -> list[dict[str, Any]]:
    response = payload.get("response") or {}
    inlined = response.get("inlinedResponses") or response.get("inlined_responses")
    if isinstance(inlined, dict):
        inlined = inlined.get("inlinedResponses") or inlined.get("inlined_responses")
    rows = inlined if isinstance(inlined, list) else payload.get("responses")
    return [row for row in (rows or []) if isinstance(row, dict)]


def _row_key(row: dict[str, Any], fallback: str) -> str:
    metadata = row.get("metadata") or {}
    return str(row.get("id") or metadata.get("key") or row.get("key") or fallback)


def _map_result(row: dict[str, Any], slide_id: str) -> BatchItemResult:
    error = row.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return BatchItemResult(slide_id=slide_id, success=False, error=message or "Provider error")

    image = extract_inline_image(row.get("response"))
    if image is None:
        return BatchItemResult(slide_id=slide_id, success=False, error="No image in response")
    return BatchItemResult(slide_id=slide_id, success=True, image_data=image.data, mime_type=image.mime_type)


class BatchImageProcessor:
    """Provider-side batch jobs for overnight decks, plus a sequential fallback.

    Holds no job state between calls: the caller keeps the job id returned by
    ``submit_batch`` and hands it back to ``poll_batch``.
    """

    def __init__(
        self,
        provider: ImageProviderConfig,
        engine: ImageRetryEngine,
        *,
        config: BatchConfig | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.engine = engine
        self.config = config or BatchConfig()
        self.session = session or requests.Session()
        self.sleep = sleep

    def _require_credentials(self) -> None:
        if not self.provider.configured:
            raise BatchConfigurationError("Google AI API key not configured")

    def submit_batch(self, items: list[BatchItem]) -> str:
        self._require_credentials()
        if not items:
            raise BatchSubmissionError("Batch submission needs at least one item")

        body = {
            "batch": {
                "display_name": self.config.display_name,
                "input_config": {
                    "requests": {
                        "requests": [
                            {"request": build_generation_payload(item.request), "metadata": {"key": item.slide_id}}
                            for item in items
                        ]
                    }
                },
            }
        }
        url = f"{self.provider.base_url}/models/{self.provider.model}:batchGenerateContent"
        logger.info("batch_submit_start items=%d model=%s", len(items), self.provider.model)
        try:
            response = self.session.post(url, headers=self.provider.headers(), json=body, timeout=self.provider.timeout_seconds)
        except requests.RequestException as exc:
            raise BatchSubmissionError(f"Batch API unreachable: {exc}") from exc

        if not response.ok:
            logger.error("batch_submit_error status=%d body=%s", response.status_code, (response.text or "")[:200])
            raise BatchSubmissionError(f"Batch API error: {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise BatchSubmissionError("Batch API returned invalid JSON") from exc

        job_id = str(data.get("name") or data.get("jobId") or "").strip()
        if not job_id:
            raise BatchSubmissionError("Batch API returned no job identifier")
        logger.info("batch_submit_done job=%s items=%d", job_id, len(items))
        return job_id

    def _job_url(self, job_id: str) -> str:
        if job_id.startswith(("batches/", "operations/")):
            return f"{self.provider.base_url}/{job_id}"
        return f"{self.provider.base_url}/batches/{job_id}"

    def poll_batch(self, job_id: str, expected_ids: list[str] | None = None) -> BatchPollResult:
        self._require_credentials()
        try:
            response = self.session.get(self._job_url(job_id), headers=self.provider.headers(), timeout=self.provider.timeout_seconds)
        except requests.RequestException as exc:
            raise ImageSynthesisError(f"Batch status unreachable: {exc}", code="BATCH_STATUS_ERROR", retryable=True) from exc
        if not response.ok:
            raise ImageSynthesisError(
                f"Failed to get batch status: {response.status_code}",
                code="BATCH_STATUS_ERROR",
                retryable=is_retryable_status(response.status_code),
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ImageSynthesisError("Batch status returned invalid JSON", code="PARSE_ERROR", retryable=True) from exc

        if not data.get("done"):
            logger.info("batch_poll_pending job=%s state=%s", job_id, (data.get("metadata") or {}).get("state"))
            return BatchPollResult(job_id=job_id, done=False)

        job_error = data.get("error")
        state = str((data.get("metadata") or {}).get("state") or "")
        results: dict[str, BatchItemResult] = {}
        if not job_error and state not in FAILED_BATCH_STATES:
            for idx, row in enumerate(_response_rows(data)):
                fallback_id = expected_ids[idx] if expected_ids and idx < len(expected_ids) else f"item-{idx}"
                slide_id = _row_key(row, fallback_id)
                results[slide_id] = _map_result(row, slide_id)

        job_message = None
        if job_error:
            job_message = job_error.get("message") if isinstance(job_error, dict) else str(job_error)
        elif state in FAILED_BATCH_STATES:
            job_message = f"Batch job ended in state {state}"

        ordered: list[BatchItemResult] = []
        if expected_ids is not None:
            for slide_id in expected_ids:
                ordered.append(
                    results.get(slide_id)
                    or BatchItemResult(slide_id=slide_id, success=False, error=job_message or "No result returned for item")
                )
        else:
            ordered = list(results.values())

        logger.info(
            "batch_poll_done job=%s results=%d succeeded=%d",
            job_id,
            len(ordered),
            sum(1 for row in ordered if row.success),
        )
        return BatchPollResult(job_id=job_id, done=True, results=tuple(ordered))

    def process_synchronously(self, items: list[BatchItem]) -> list[BatchItemResult]:
        self._require_credentials()
        results: list[BatchItemResult] = []
        total = len(items)
        for idx, item in enumerate(items, start=1):
            logger.info(
                "batch_sync_item slide=%d/%d section=%s", idx, total, item.request.section_id
            )
            try:
                image = self.engine.synthesize_with_retry(item.request)
                results.append(
                    BatchItemResult(slide_id=item.slide_id, success=True, image_data=image.data, mime_type=image.mime_type)
                )
            except ImageSynthesisFailed as exc:
                results.append(BatchItemResult(slide_id=item.slide_id, success=False, error=str(exc)))

            if idx < total and self.config.item_delay_seconds > 0:
                self.sleep(self.config.item_delay_seconds)
        return results
