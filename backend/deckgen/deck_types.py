from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Protocol


class CancelSignal(Protocol):
    """Cooperative cancellation flag; ``threading.Event`` satisfies it."""

    def is_set(self) -> bool:
        ...

    def wait(self, timeout: float | None = None) -> bool:
        ...


class SlideType(str, Enum):
    TITLE = "title"
    STATS = "stats"
    LIST = "list"
    TIMELINE = "timeline"
    MAP = "map"
    CHART = "chart"
    IMAGE = "image"
    TALKING_POINTS = "talking-points"
    COMPARISON = "comparison"
    QUOTE = "quote"


class GenerationStatus(str, Enum):
    INITIALIZING = "initializing"
    FETCHING_DATA = "fetching-data"
    AI_ENHANCEMENT = "ai-enhancement"
    GENERATING_SLIDES = "generating-slides"
    RENDERING = "rendering"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({GenerationStatus.COMPLETE, GenerationStatus.ERROR})

# Context requirement type -> key in the request context bag.
CONTEXT_KEYS: dict[str, str] = {
    "customer": "customer_id",
    "project": "project_id",
    "region": "region_id",
    "team": "team_id",
    "date-range": "date_range",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class BrandingConfig:
    colors: dict[str, str]
    fonts: dict[str, str]
    logo: str = ""
    logo_alt: str | None = None
    footer: str = ""
    border_radius: str = "8px"

    def merged(self, overrides: Mapping[str, Any] | None) -> BrandingConfig:
        if not overrides:
            return self
        return replace(
            self,
            colors={**self.colors, **dict(overrides.get("colors") or {})},
            fonts={**self.fonts, **dict(overrides.get("fonts") or {})},
            logo=str(overrides.get("logo") or self.logo),
            logo_alt=overrides.get("logo_alt", self.logo_alt),
            footer=str(overrides.get("footer") or self.footer),
            border_radius=str(overrides.get("border_radius") or self.border_radius),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "colors": dict(self.colors),
            "fonts": dict(self.fonts),
            "logo": self.logo,
            "logo_alt": self.logo_alt,
            "footer": self.footer,
            "border_radius": self.border_radius,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> BrandingConfig:
        return cls(
            colors=dict(payload.get("colors") or {}),
            fonts=dict(payload.get("fonts") or {}),
            logo=str(payload.get("logo") or ""),
            logo_alt=payload.get("logo_alt"),
            footer=str(payload.get("footer") or ""),
            border_radius=str(payload.get("border_radius") or "8px"),
        )


@dataclass(frozen=True)
class Section:
    id: str
    title: str
    type: SlideType
    data_source: str
    optional: bool = True
    ai_enhanced: bool = False
    default_enabled: bool = True
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "data_source": self.data_source,
            "optional": self.optional,
            "ai_enhanced": self.ai_enhanced,
            "default_enabled": self.default_enabled,
            "description": self.description,
        }


@dataclass(frozen=True)
class ContextRequirement:
    type: str
    required: bool
    label: str


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    description: str
    audience: str
    category: str
    sections: tuple[Section, ...]
    branding: BrandingConfig
    required_context: tuple[ContextRequirement, ...] = ()
    tags: tuple[str, ...] = ()
    estimated_slides: int = 0

    def section_ids(self) -> list[str]:
        return [section.id for section in self.sections]

    def default_section_ids(self) -> list[str]:
        return [section.id for section in self.sections if section.default_enabled]

    def missing_context(self, context: Mapping[str, Any]) -> list[str]:
        missing: list[str] = []
        for requirement in self.required_context:
            if not requirement.required:
                continue
            key = CONTEXT_KEYS.get(requirement.type, requirement.type)
            if not context.get(key):
                missing.append(requirement.label)
        return missing

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "audience": self.audience,
            "category": self.category,
            "sections": [section.to_dict() for section in self.sections],
            "required_context": [
                {"type": row.type, "required": row.required, "label": row.label} for row in self.required_context
            ],
            "tags": list(self.tags),
            "estimated_slides": self.estimated_slides,
        }


def _section_ids(value: Any) -> tuple[str, ...] | None:
    if value is None:
        return None
    return tuple(str(section_id) for section_id in value)


@dataclass(frozen=True)
class GenerationOptions:
    # None means "not given" (template defaults); an empty tuple selects nothing.
    enabled_sections: tuple[str, ...] | None = None
    include_ai_content: bool = True
    export_format: str = "pdf"
    custom_branding: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class GenerationRequest:
    template_id: str
    context: Mapping[str, Any]
    options: GenerationOptions

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> GenerationRequest:
        options = payload.get("options") or {}
        return cls(
            template_id=str(payload["template_id"]),
            context=dict(payload.get("context") or {}),
            options=GenerationOptions(
                enabled_sections=_section_ids(options.get("enabled_sections")),
                include_ai_content=bool(options.get("include_ai_content", True)),
                export_format=str(options.get("export_format") or "pdf"),
                custom_branding=options.get("custom_branding"),
            ),
        )


@dataclass
class SubjectContext:
    subject: dict[str, Any]
    related_events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def subject_id(self) -> str | None:
        value = self.subject.get("id")
        return str(value) if value else None


@dataclass(frozen=True)
class GenerationProgress:
    status: GenerationStatus
    current_step: int
    total_steps: int
    message: str
    progress: int
    current_slide: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "message": self.message,
            "progress": self.progress,
            "current_slide": self.current_slide,
        }


@dataclass
class GeneratedSlide:
    id: str
    type: SlideType
    section_id: str
    content: dict[str, Any]
    ai_generated: bool
    generated_at: str
    image_data: str | None = None
    image_mime_type: str | None = None
    image_error: str | None = None
    hints: dict[str, Any] = field(default_factory=dict)

    @property
    def has_image(self) -> bool:
        return bool(self.image_data)

    def attach_image(self, data: str, mime_type: str = "image/png") -> None:
        self.image_data = data
        self.image_mime_type = mime_type
        self.image_error = None

    def record_image_error(self, message: str) -> None:
        self.image_data = None
        self.image_mime_type = None
        self.image_error = message or "Image generation failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "section_id": self.section_id,
            "content": self.content,
            "ai_generated": self.ai_generated,
            "generated_at": self.generated_at,
            "image_data": self.image_data,
            "image_mime_type": self.image_mime_type,
            "image_error": self.image_error,
            "hints": self.hints,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> GeneratedSlide:
        return cls(
            id=str(payload["id"]),
            type=SlideType(payload["type"]),
            section_id=str(payload["section_id"]),
            content=dict(payload.get("content") or {}),
            ai_generated=bool(payload.get("ai_generated")),
            generated_at=str(payload.get("generated_at") or utc_now_iso()),
            image_data=payload.get("image_data"),
            image_mime_type=payload.get("image_mime_type"),
            image_error=payload.get("image_error"),
            hints=dict(payload.get("hints") or {}),
        )


@dataclass(frozen=True)
class DeckMetadata:
    total_slides: int
    ai_slides_count: int
    image_slides_count: int
    failed_image_count: int
    slide_type_counts: dict[str, int]
    generation_time_ms: int
    version: str
    batch_processed: bool = False
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_slides": self.total_slides,
            "ai_slides_count": self.ai_slides_count,
            "image_slides_count": self.image_slides_count,
            "failed_image_count": self.failed_image_count,
            "slide_type_counts": dict(self.slide_type_counts),
            "generation_time_ms": self.generation_time_ms,
            "version": self.version,
            "batch_processed": self.batch_processed,
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class GeneratedDeck:
    id: str
    template_id: str
    template_name: str
    generated_at: str
    generated_by: str
    context: Mapping[str, Any]
    slides: tuple[GeneratedSlide, ...]
    branding: BrandingConfig
    metadata: DeckMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "generated_at": self.generated_at,
            "generated_by": self.generated_by,
            "context": dict(self.context),
            "slides": [slide.to_dict() for slide in self.slides],
            "branding": self.branding.to_dict(),
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class SlideImageRequest:
    slide_type: SlideType
    section_id: str
    content: Mapping[str, Any]
    branding: BrandingConfig
    slide_number: int
    total_slides: int

    @classmethod
    def for_slide(
        cls,
        slide: GeneratedSlide,
        branding: BrandingConfig,
        *,
        slide_number: int,
        total_slides: int,
    ) -> SlideImageRequest:
        return cls(
            slide_type=slide.type,
            section_id=slide.section_id,
            content=slide.content,
            branding=branding,
            slide_number=slide_number,
            total_slides=total_slides,
        )


@dataclass(frozen=True)
class ImagePayload:
    data: str
    mime_type: str = "image/png"


@dataclass(frozen=True)
class BatchItem:
    slide_id: str
    request: SlideImageRequest


@dataclass(frozen=True)
class BatchItemResult:
    slide_id: str
    success: bool
    image_data: str | None = None
    mime_type: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "slide_id": self.slide_id,
            "success": self.success,
            "image_data": self.image_data,
            "mime_type": self.mime_type,
            "error": self.error,
        }


@dataclass(frozen=True)
class BatchPollResult:
    job_id: str
    done: bool
    results: tuple[BatchItemResult, ...] = ()
