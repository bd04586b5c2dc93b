from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from deckgen.deck_types import GenerationProgress, GenerationStatus


logger = logging.getLogger("deckgen.pipeline")

ProgressObserver = Callable[[GenerationProgress], None]


def total_steps_for(section_count: int) -> int:
    # init + finalize, then one content step and one image step per section
    return 2 + 2 * max(0, section_count)


def percent_for_step(step: int, total_steps: int) -> int:
    if total_steps <= 0:
        return 0
    return max(0, min(99, int(step * 100 / total_steps)))


class ProgressTracker:
    """Single-writer progress record.

    Every update publishes a new frozen ``GenerationProgress`` snapshot, so
    observers reading ``snapshot`` from another thread never see a partial
    update. Percent never decreases and only ``complete`` reports 100.
    """

    def __init__(self, total_steps: int, observers: list[ProgressObserver] | None = None):
        self.total_steps = total_steps
        self._observers: list[ProgressObserver] = list(observers or [])
        self._snapshot: GenerationProgress | None = None

    @property
    def snapshot(self) -> GenerationProgress | None:
        return self._snapshot

    def subscribe(self, observer: ProgressObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def start_step(
        self,
        status: GenerationStatus,
        step: int,
        message: str,
        *,
        current_slide: str | None = None,
    ) -> GenerationProgress:
        floor = self._snapshot.progress if self._snapshot else 0
        snapshot = GenerationProgress(
            status=status,
            current_step=step,
            total_steps=self.total_steps,
            message=message,
            progress=max(floor, percent_for_step(step, self.total_steps)),
            current_slide=current_slide,
        )
        return self._publish(snapshot)

    def update_message(self, message: str) -> GenerationProgress | None:
        if self._snapshot is None:
            return None
        return self._publish(replace(self._snapshot, message=message))

    def complete(self, message: str) -> GenerationProgress:
        snapshot = GenerationProgress(
            status=GenerationStatus.COMPLETE,
            current_step=self.total_steps,
            total_steps=self.total_steps,
            message=message,
            progress=100,
        )
        return self._publish(snapshot)

    def fail(self, message: str) -> GenerationProgress:
        previous = self._snapshot
        snapshot = GenerationProgress(
            status=GenerationStatus.ERROR,
            current_step=previous.current_step if previous else 0,
            total_steps=self.total_steps,
            message=message,
            progress=previous.progress if previous else 0,
            current_slide=previous.current_slide if previous else None,
        )
        return self._publish(snapshot)

    def _publish(self, snapshot: GenerationProgress) -> GenerationProgress:
        self._snapshot = snapshot
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                # Observers must never break the job.
                logger.warning("progress_observer_error status=%s", snapshot.status.value, exc_info=True)
        return snapshot
