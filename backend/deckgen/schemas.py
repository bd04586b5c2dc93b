from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class SectionOut(BaseModel):
    id: str
    title: str
    type: str
    data_source: str
    optional: bool
    ai_enhanced: bool
    default_enabled: bool
    description: str = ""


class ContextRequirementOut(BaseModel):
    type: str
    required: bool
    label: str


class TemplateOut(BaseModel):
    id: str
    name: str
    description: str
    audience: str
    category: str
    sections: list[SectionOut]
    required_context: list[ContextRequirementOut] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    estimated_slides: int = 0


class TemplateCategoryOut(BaseModel):
    id: str
    name: str
    icon: str
    template_ids: list[str] = Field(default_factory=list)


class GenerateDeckRequest(BaseModel):
    template_id: str = Field(min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)
    enabled_sections: list[str] | None = None
    include_ai_content: bool = True
    export_format: Literal["pdf", "pptx", "images"] = "pdf"
    custom_branding: dict[str, Any] | None = None
    provider: str | None = None

    def to_job_payload(self, default_sections: list[str]) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "context": self.context,
            "provider": self.provider,
            "options": {
                "enabled_sections": default_sections if self.enabled_sections is None else self.enabled_sections,
                "include_ai_content": self.include_ai_content,
                "export_format": self.export_format,
                "custom_branding": self.custom_branding,
            },
        }


class JobOut(BaseModel):
    id: str
    template_id: str
    status: str
    phase: str
    progress_pct: int
    current_step: int
    total_steps: int
    message: str | None
    cancel_requested: bool
    error_code: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None


class JobEventOut(BaseModel):
    id: int
    job_id: str
    ts: datetime
    stage: str
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    severity: str = "info"


class ScheduleDeckRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    customer_name: str | None = None
    template_id: str = "customer-cheat-sheet"
    assigned_to: str | None = None
    scheduled_for: datetime | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    enabled_sections: list[str] | None = None
    include_ai_content: bool = True
    use_batch: bool = False

    def to_request_payload(self, default_sections: list[str]) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "context": {**self.context, "customer_id": self.customer_id},
            "use_batch": self.use_batch,
            "options": {
                "enabled_sections": default_sections if self.enabled_sections is None else self.enabled_sections,
                "include_ai_content": self.include_ai_content,
            },
        }


class BulkScheduleRequest(BaseModel):
    items: list[ScheduleDeckRequest] = Field(min_length=1, max_length=50)


class ScheduledDeckOut(BaseModel):
    id: str
    customer_id: str
    customer_name: str | None
    template_id: str
    assigned_to: str | None
    status: str
    scheduled_for: datetime
    batch_job_id: str | None
    actual_slides: int | None
    processing_time_ms: int | None
    retry_count: int
    error_message: str | None
    viewed_at: datetime | None
    created_at: datetime
    completed_at: datetime | None


class BulkScheduleOut(BaseModel):
    scheduled: list[ScheduledDeckOut] = Field(default_factory=list)
    skipped: list[dict[str, str]] = Field(default_factory=list)


class CronRunOut(BaseModel):
    queued: bool
    task_id: str | None = None
