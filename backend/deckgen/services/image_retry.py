from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from deckgen.deck_types import CancelSignal, ImagePayload, SlideImageRequest
from deckgen.errors import GenerationCancelled, ImageSynthesisError, ImageSynthesisFailed


logger = logging.getLogger("deckgen.images")


class ImageSynthesizer(Protocol):
    def synthesize(self, request: SlideImageRequest) -> ImagePayload:
        ...


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_seconds: float = 1.0

    @property
    def max_attempts(self) -> int:
        return max(0, self.max_retries) + 1

    def delay_for(self, attempt: int) -> float:
        """Wait before 0-indexed ``attempt`` (first retry is attempt 1): 1s, 2s, 4s with defaults."""
        if attempt <= 0:
            return 0.0
        return self.base_delay_seconds * (2 ** (attempt - 1))


@dataclass(frozen=True)
class RetryEvent:
    retry: int
    max_attempts: int
    error: ImageSynthesisError
    delay_seconds: float

    @property
    def next_attempt(self) -> int:
        return self.retry + 1


RetryObserver = Callable[[RetryEvent], None]


class ImageRetryEngine:
    def __init__(
        self,
        client: ImageSynthesizer,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def synthesize_with_retry(
        self,
        request: SlideImageRequest,
        *,
        on_retry: RetryObserver | None = None,
        cancel: CancelSignal | None = None,
    ) -> ImagePayload:
        max_attempts = self.policy.max_attempts
        last_error: ImageSynthesisError | None = None

        for attempt in range(max_attempts):
            if attempt > 0 and last_error is not None:
                delay = self.policy.delay_for(attempt)
                self._notify(on_retry, RetryEvent(retry=attempt, max_attempts=max_attempts, error=last_error, delay_seconds=delay))
                logger.warning(
                    "image_retry_scheduled section=%s attempt=%d/%d delay_sec=%.2f code=%s reason=%s",
                    request.section_id,
                    attempt + 1,
                    max_attempts,
                    delay,
                    last_error.code,
                    last_error,
                )
                self._wait(delay, cancel)

            try:
                image = self.client.synthesize(request)
            except ImageSynthesisError as exc:
                last_error = exc
            except Exception as exc:
                last_error = ImageSynthesisError(str(exc) or type(exc).__name__, code="UNKNOWN", retryable=True)
            else:
                if attempt > 0:
                    logger.info(
                        "image_retry_succeeded section=%s attempt=%d/%d", request.section_id, attempt + 1, max_attempts
                    )
                return image

            if not last_error.retryable:
                logger.error(
                    "image_non_retryable section=%s attempt=%d/%d code=%s reason=%s",
                    request.section_id,
                    attempt + 1,
                    max_attempts,
                    last_error.code,
                    last_error,
                )
                raise ImageSynthesisFailed(attempts=attempt + 1, last_error=last_error) from last_error

        if last_error is None:
            raise RuntimeError("Image synthesis failed with unknown error")
        logger.error(
            "image_retries_exhausted section=%s attempts=%d code=%s reason=%s",
            request.section_id,
            max_attempts,
            last_error.code,
            last_error,
        )
        raise ImageSynthesisFailed(attempts=max_attempts, last_error=last_error) from last_error

    def _wait(self, delay: float, cancel: CancelSignal | None) -> None:
        if cancel is None:
            self.sleep(delay)
            return
        if cancel.is_set() or cancel.wait(delay):
            raise GenerationCancelled("Generation cancelled during retry backoff")

    @staticmethod
    def _notify(observer: RetryObserver | None, event: RetryEvent) -> None:
        if observer is None:
            return
        try:
            observer(event)
        except Exception:
            logger.warning("image_retry_observer_error retry=%d", event.retry, exc_info=True)
