from __future__ import annotations


class DeckGenerationError(Exception):
    """Base class for pipeline failures."""

    code = "DECK_GENERATION_FAILED"


class TemplateNotFoundError(DeckGenerationError):
    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class MissingContextError(DeckGenerationError):
    code = "CONTEXT_REQUIRED"

    def __init__(self, missing: list[str]):
        super().__init__(f"Required context missing: {', '.join(missing)}")
        self.missing = missing


class InvalidSectionSelectionError(DeckGenerationError, ValueError):
    code = "INVALID_SECTIONS"

    def __init__(self, unknown: list[str]):
        super().__init__(f"Sections not defined by template: {', '.join(unknown)}")
        self.unknown = unknown


class GenerationCancelled(DeckGenerationError):
    code = "CANCELLED"


class ImageSynthesisError(DeckGenerationError):
    """One failed call to the image provider, classified for the retry engine."""

    def __init__(self, message: str, *, code: str, retryable: bool, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.status_code = status_code


class ImageSynthesisFailed(DeckGenerationError):
    code = "IMAGE_SYNTHESIS_FAILED"

    def __init__(self, *, attempts: int, last_error: ImageSynthesisError):
        classification = "retryable" if last_error.retryable else "non-retryable"
        if last_error.retryable:
            message = (
                f"Image generation failed after {attempts} attempts. "
                f"Last error ({last_error.code}, {classification}): {last_error}"
            )
        else:
            message = f"Image generation failed ({last_error.code}, {classification}): {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error

    @property
    def retryable(self) -> bool:
        return self.last_error.retryable


class BatchConfigurationError(DeckGenerationError):
    code = "BATCH_NOT_CONFIGURED"


class BatchSubmissionError(DeckGenerationError):
    code = "BATCH_SUBMISSION_FAILED"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
