from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from deckgen.deck_types import Section, SubjectContext
from deckgen.providers.base import BaseContentProvider
from deckgen.services.data_sources import DataSourceRegistry
from deckgen.services.slide_normalizers import normalize_content


logger = logging.getLogger("deckgen.pipeline")


@dataclass(frozen=True)
class ResolvedContent:
    content: dict[str, Any]
    generative: bool


class ContentResolver:
    """Pick the content for one section: generated when allowed and usable, else the data source."""

    def __init__(self, data_sources: DataSourceRegistry, content_provider: BaseContentProvider | None = None):
        self.data_sources = data_sources
        self.content_provider = content_provider

    def resolve(
        self,
        section: Section,
        request_context: Mapping[str, Any],
        subject_context: SubjectContext | None,
        allow_generative: bool,
    ) -> ResolvedContent | None:
        if section.ai_enhanced and allow_generative and subject_context is not None and self.content_provider is not None:
            generated = self._generate(section, subject_context)
            if generated is not None:
                return ResolvedContent(content=generated, generative=True)
            logger.info("content_fallback section=%s data_source=%s", section.id, section.data_source)

        return self._fetch(section, request_context)

    def _generate(self, section: Section, subject_context: SubjectContext) -> dict[str, Any] | None:
        try:
            payload = self.content_provider.generate_content(subject_context, section)
        except Exception as exc:
            logger.warning("content_generate_error section=%s reason=%s", section.id, exc)
            return None
        if not payload:
            return None
        content = normalize_content(section.type, payload, section)
        if content is None:
            logger.info("content_generated_unusable section=%s type=%s keys=%s", section.id, section.type.value, sorted(payload)[:8])
        return content

    def _fetch(self, section: Section, request_context: Mapping[str, Any]) -> ResolvedContent | None:
        if section.data_source not in self.data_sources:
            logger.warning("data_source_missing section=%s data_source=%s", section.id, section.data_source)
            return None
        try:
            content = self.data_sources.fetch(section.data_source, request_context)
        except Exception as exc:
            logger.warning("data_source_error section=%s data_source=%s reason=%s", section.id, section.data_source, exc)
            return None
        if not content:
            logger.info("data_source_empty section=%s data_source=%s", section.id, section.data_source)
            return None
        return ResolvedContent(content=dict(content), generative=False)
