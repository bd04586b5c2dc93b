from __future__ import annotations

from deckgen.deck_types import BrandingConfig


GUARDIAN_DARK = BrandingConfig(
    colors={
        "primary": "#1E3A5F",
        "secondary": "#D4A656",
        "accent": "#4A90A4",
        "background": "#0F1419",
        "background_alt": "#1A2332",
        "text": "#FFFFFF",
        "text_muted": "#9CA3AF",
        "success": "#10B981",
        "warning": "#F59E0B",
        "danger": "#EF4444",
    },
    fonts={
        "heading": "'Inter', -apple-system, BlinkMacSystemFont, sans-serif",
        "body": "'Inter', -apple-system, BlinkMacSystemFont, sans-serif",
        "mono": "'JetBrains Mono', 'Fira Code', monospace",
    },
    logo="/guardian-logo.svg",
    logo_alt="/guardian-logo-light.svg",
    footer="Guardian Storm Repair | Confidential",
    border_radius="8px",
)

# Customer-facing decks.
GUARDIAN_LIGHT = GUARDIAN_DARK.merged(
    {
        "colors": {
            "background": "#FFFFFF",
            "background_alt": "#F8FAFC",
            "text": "#1E3A5F",
            "text_muted": "#64748B",
        }
    }
)


def branding_for_audience(audience: str) -> BrandingConfig:
    if audience == "customer":
        return GUARDIAN_LIGHT
    return GUARDIAN_DARK
