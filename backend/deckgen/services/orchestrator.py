from __future__ import annotations

import logging
from collections import Counter
from time import perf_counter
from typing import Iterable, Protocol
from uuid import uuid4

from deckgen.deck_types import (
    BrandingConfig,
    CancelSignal,
    DeckMetadata,
    GeneratedDeck,
    GeneratedSlide,
    GenerationRequest,
    GenerationStatus,
    Section,
    SlideImageRequest,
    SubjectContext,
    Template,
    utc_now_iso,
)
from deckgen.errors import (
    GenerationCancelled,
    ImageSynthesisFailed,
    InvalidSectionSelectionError,
    MissingContextError,
    TemplateNotFoundError,
)
from deckgen.services.content_enhancer import enhance_content
from deckgen.services.content_resolver import ContentResolver
from deckgen.services.image_retry import ImageRetryEngine, RetryEvent
from deckgen.services.progress import ProgressObserver, ProgressTracker, total_steps_for


logger = logging.getLogger("deckgen.pipeline")

CANCELLED_IMAGE_ERROR = "Image generation cancelled"
MISSING_IMAGE_ERROR = "Image was not generated"


class SubjectStore(Protocol):
    def fetch_subject_context(self, subject_id: str) -> SubjectContext | None:
        ...


def _is_cancelled(cancel: CancelSignal | None) -> bool:
    return cancel is not None and cancel.is_set()


class DeckOrchestrator:
    """Runs one deck job: content per enabled section, then one image per slide."""

    def __init__(
        self,
        resolver: ContentResolver,
        engine: ImageRetryEngine,
        *,
        subject_store: SubjectStore | None = None,
        version: str = "1.0.0",
    ):
        self.resolver = resolver
        self.engine = engine
        self.subject_store = subject_store
        self.version = version

    def select_sections(self, template: Template | None, request: GenerationRequest) -> list[Section]:
        if template is None or template.id != request.template_id:
            raise TemplateNotFoundError(request.template_id)

        missing = template.missing_context(request.context)
        if missing:
            raise MissingContextError(missing)

        selection = request.options.enabled_sections
        requested = template.default_section_ids() if selection is None else list(dict.fromkeys(selection))
        known = set(template.section_ids())
        unknown = [section_id for section_id in requested if section_id not in known]
        if unknown:
            raise InvalidSectionSelectionError(unknown)

        enabled = set(requested)
        return [section for section in template.sections if section.id in enabled]

    def load_subject(self, request: GenerationRequest, sections: Iterable[Section]) -> SubjectContext | None:
        if self.subject_store is None or not request.options.include_ai_content:
            return None
        if not any(section.ai_enhanced for section in sections):
            return None
        subject_id = request.context.get("customer_id")
        if not subject_id:
            return None
        try:
            return self.subject_store.fetch_subject_context(str(subject_id))
        except Exception as exc:
            logger.warning("subject_context_error subject=%s reason=%s", subject_id, exc)
            return None

    def resolve_section(
        self,
        section: Section,
        request: GenerationRequest,
        subject: SubjectContext | None,
    ) -> GeneratedSlide | None:
        try:
            resolved = self.resolver.resolve(section, request.context, subject, request.options.include_ai_content)
        except Exception as exc:
            logger.warning("section_resolve_error section=%s reason=%s", section.id, exc)
            return None
        if resolved is None:
            logger.info("section_skipped section=%s reason=no_content", section.id)
            return None

        try:
            hints = enhance_content(section.type, resolved.content)
        except Exception as exc:
            logger.warning("section_enhance_error section=%s reason=%s", section.id, exc)
            hints = {}

        return GeneratedSlide(
            id=f"{section.id}-{uuid4().hex[:8]}",
            type=section.type,
            section_id=section.id,
            content=resolved.content,
            ai_generated=resolved.generative,
            generated_at=utc_now_iso(),
            hints=hints,
        )

    def resolve_slides(
        self,
        template: Template | None,
        request: GenerationRequest,
        *,
        cancel: CancelSignal | None = None,
    ) -> list[GeneratedSlide]:
        """Content phase only, for callers that synthesize images elsewhere."""
        sections = self.select_sections(template, request)
        subject = self.load_subject(request, sections)
        slides: list[GeneratedSlide] = []
        for section in sections:
            if _is_cancelled(cancel):
                raise GenerationCancelled("Generation cancelled while resolving content")
            slide = self.resolve_section(section, request, subject)
            if slide is not None:
                slides.append(slide)
        return slides

    def finalize_deck(
        self,
        template: Template,
        request: GenerationRequest,
        slides: list[GeneratedSlide],
        *,
        started: float,
        batch_processed: bool = False,
        cancelled: bool = False,
    ) -> GeneratedDeck:
        for slide in slides:
            if not slide.has_image and not slide.image_error:
                slide.record_image_error(CANCELLED_IMAGE_ERROR if cancelled else MISSING_IMAGE_ERROR)

        type_counts = Counter(slide.type.value for slide in slides)
        metadata = DeckMetadata(
            total_slides=len(slides),
            ai_slides_count=sum(1 for slide in slides if slide.ai_generated),
            image_slides_count=sum(1 for slide in slides if slide.has_image),
            failed_image_count=sum(1 for slide in slides if slide.image_error),
            slide_type_counts=dict(type_counts),
            generation_time_ms=int((perf_counter() - started) * 1000),
            version=self.version,
            batch_processed=batch_processed,
            cancelled=cancelled,
        )
        return GeneratedDeck(
            id=uuid4().hex,
            template_id=template.id,
            template_name=template.name,
            generated_at=utc_now_iso(),
            generated_by=str(request.context.get("requested_by") or "system"),
            context=dict(request.context),
            slides=tuple(slides),
            branding=self.branding_for(template, request),
            metadata=metadata,
        )

    @staticmethod
    def branding_for(template: Template, request: GenerationRequest) -> BrandingConfig:
        return template.branding.merged(request.options.custom_branding)

    def generate(
        self,
        template: Template | None,
        request: GenerationRequest,
        *,
        observer: ProgressObserver | None = None,
        cancel: CancelSignal | None = None,
    ) -> GeneratedDeck:
        started = perf_counter()
        observers = [observer] if observer else []

        try:
            sections = self.select_sections(template, request)
        except Exception as exc:
            tracker = ProgressTracker(total_steps_for(0), observers)
            tracker.start_step(GenerationStatus.INITIALIZING, 0, "Initializing deck generation")
            tracker.fail(str(exc))
            logger.error("deck_generation_rejected template=%s reason=%s", request.template_id, exc)
            raise

        section_count = len(sections)
        tracker = ProgressTracker(total_steps_for(section_count), observers)
        tracker.start_step(GenerationStatus.INITIALIZING, 0, f"Preparing {template.name} ({section_count} sections)")
        logger.info("deck_generation_start template=%s sections=%d", template.id, section_count)

        try:
            return self._run(template, request, sections, tracker, started, cancel)
        except Exception as exc:
            tracker.fail(f"Deck generation failed: {exc}")
            logger.exception("deck_generation_failed template=%s", template.id)
            raise

    def _run(
        self,
        template: Template,
        request: GenerationRequest,
        sections: list[Section],
        tracker: ProgressTracker,
        started: float,
        cancel: CancelSignal | None,
    ) -> GeneratedDeck:
        section_count = len(sections)
        allow_generative = request.options.include_ai_content
        cancelled = _is_cancelled(cancel)
        subject = None if cancelled else self.load_subject(request, sections)

        # slide -> position of its section, which fixes its image step
        resolved: list[tuple[int, Section, GeneratedSlide]] = []
        for position, section in enumerate(sections, start=1):
            if cancelled or _is_cancelled(cancel):
                cancelled = True
                break
            status = (
                GenerationStatus.AI_ENHANCEMENT
                if section.ai_enhanced and allow_generative
                else GenerationStatus.FETCHING_DATA
            )
            tracker.start_step(status, position, f"Building {section.title}", current_slide=section.id)
            slide = self.resolve_section(section, request, subject)
            if slide is not None:
                resolved.append((position, section, slide))

        branding = self.branding_for(template, request)
        total_slides = len(resolved)
        for number, (position, section, slide) in enumerate(resolved, start=1):
            if cancelled or _is_cancelled(cancel):
                cancelled = True
                break
            tracker.start_step(
                GenerationStatus.GENERATING_SLIDES,
                section_count + position,
                f"Generating slide {number}/{total_slides}: {section.title}",
                current_slide=section.id,
            )
            try:
                self._synthesize(slide, section, branding, number, total_slides, tracker, cancel)
            except GenerationCancelled:
                cancelled = True
                slide.record_image_error(CANCELLED_IMAGE_ERROR)
                break

        slides = [slide for _, _, slide in resolved]
        tracker.start_step(GenerationStatus.RENDERING, 2 * section_count + 1, "Assembling deck")
        deck = self.finalize_deck(template, request, slides, started=started, cancelled=cancelled)

        if cancelled:
            logger.warning("deck_generation_cancelled template=%s slides=%d", template.id, deck.metadata.total_slides)
            tracker.complete(f"Generation cancelled: partial deck with {deck.metadata.total_slides} slides")
        else:
            logger.info(
                "deck_generation_done template=%s slides=%d images=%d failed_images=%d duration_ms=%d",
                template.id,
                deck.metadata.total_slides,
                deck.metadata.image_slides_count,
                deck.metadata.failed_image_count,
                deck.metadata.generation_time_ms,
            )
            tracker.complete(f"Deck ready: {deck.metadata.total_slides} slides")
        return deck

    def _synthesize(
        self,
        slide: GeneratedSlide,
        section: Section,
        branding: BrandingConfig,
        number: int,
        total: int,
        tracker: ProgressTracker,
        cancel: CancelSignal | None,
    ) -> None:
        def on_retry(event: RetryEvent) -> None:
            tracker.update_message(f"Retrying {section.title} (attempt {event.next_attempt}/{event.max_attempts})")

        request = SlideImageRequest.for_slide(slide, branding, slide_number=number, total_slides=total)
        try:
            image = self.engine.synthesize_with_retry(request, on_retry=on_retry, cancel=cancel)
        except ImageSynthesisFailed as exc:
            slide.record_image_error(str(exc))
            return
        except GenerationCancelled:
            raise
        except Exception as exc:
            logger.warning("slide_image_error section=%s reason=%s", section.id, exc)
            slide.record_image_error(str(exc) or "Image generation failed")
            return
        slide.attach_image(image.data, image.mime_type)
