from __future__ import annotations

import logging
from typing import Any, Mapping

import requests

from deckgen.deck_types import SubjectContext


logger = logging.getLogger("deckgen.pipeline")


class CrmClient:
    """Thin HTTP client for the CRM data store that owns customers and section data."""

    def __init__(self, base_url: str, *, api_token: str | None = None, timeout_seconds: float = 15, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def fetch_subject_context(self, subject_id: str) -> SubjectContext | None:
        try:
            response = self.session.get(
                f"{self.base_url}/api/customers/{subject_id}",
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            customer = (response.json() or {}).get("customer")
        except (requests.RequestException, ValueError) as exc:
            logger.warning("crm_subject_fetch_failed subject=%s reason=%s", subject_id, exc)
            return None
        if not isinstance(customer, dict):
            return None

        events: list[dict[str, Any]] = []
        try:
            weather = self.session.get(
                f"{self.base_url}/api/customers/{subject_id}/weather-events",
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
            if weather.ok:
                rows = (weather.json() or {}).get("weatherEvents") or []
                events = [row for row in rows if isinstance(row, dict)]
        except (requests.RequestException, ValueError) as exc:
            logger.info("crm_events_fetch_failed subject=%s reason=%s", subject_id, exc)

        return SubjectContext(subject=customer, related_events=events)

    def fetch_section_data(self, name: str, context: Mapping[str, Any]) -> dict[str, Any] | None:
        response = self.session.post(
            f"{self.base_url}/api/deck-data/{name}",
            headers=self._headers(),
            json=dict(context),
            timeout=self.timeout_seconds,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            return None
        data = payload.get("data", payload)
        return data if isinstance(data, dict) and data else None
