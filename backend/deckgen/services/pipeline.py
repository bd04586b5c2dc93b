from __future__ import annotations

from deckgen.config import Settings
from deckgen.providers.factory import get_content_provider
from deckgen.services.batch_images import BatchConfig, BatchImageProcessor
from deckgen.services.content_resolver import ContentResolver
from deckgen.services.crm_client import CrmClient
from deckgen.services.data_sources import build_default_registry
from deckgen.services.image_client import ImageProviderConfig, ImageSynthesisClient
from deckgen.services.image_retry import ImageRetryEngine, RetryPolicy
from deckgen.services.orchestrator import DeckOrchestrator


def image_provider_config(settings: Settings) -> ImageProviderConfig:
    return ImageProviderConfig(
        api_key=settings.google_ai_api_key,
        base_url=settings.gemini_base_url.rstrip("/"),
        model=settings.gemini_image_model,
        timeout_seconds=settings.image_request_timeout_seconds,
        retry_on_not_found=settings.retry_on_not_found,
    )


def retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.image_max_retries,
        base_delay_seconds=settings.image_retry_base_delay_seconds,
    )


def build_retry_engine(settings: Settings) -> ImageRetryEngine:
    return ImageRetryEngine(ImageSynthesisClient(image_provider_config(settings)), retry_policy(settings))


def build_crm_client(settings: Settings) -> CrmClient:
    return CrmClient(
        settings.crm_base_url,
        api_token=settings.crm_api_token,
        timeout_seconds=settings.crm_timeout_seconds,
    )


def build_orchestrator(settings: Settings, *, provider_name: str | None = None) -> DeckOrchestrator:
    crm = build_crm_client(settings)
    resolver = ContentResolver(build_default_registry(crm), get_content_provider(settings, provider_name))
    return DeckOrchestrator(
        resolver,
        build_retry_engine(settings),
        subject_store=crm,
        version=settings.deck_format_version,
    )


def build_batch_processor(settings: Settings) -> BatchImageProcessor:
    return BatchImageProcessor(
        image_provider_config(settings),
        build_retry_engine(settings),
        config=BatchConfig(item_delay_seconds=settings.batch_item_delay_seconds),
    )
