from deckgen.deck_types import SlideType
from deckgen.services.content_enhancer import (
    DANGER_COLOR,
    SUCCESS_COLOR,
    WARNING_COLOR,
    enhance_content,
    enhance_list_items,
    enhance_stats,
    enhance_timeline_events,
    format_large_number,
    parse_script_segments,
    progress_color,
)


def test_stats_sizes_and_emphasis():
    hints = enhance_stats(
        [
            {"label": "Lead Score", "value": "85"},
            {"label": "Storm Risk", "value": "72%"},
            {"label": "Home Value", "value": "$410K"},
            {"label": "Roof Material", "value": "Asphalt"},
        ]
    )

    assert [row["size"] for row in hints] == ["hero", "large", "standard", "standard"]
    assert [row["emphasis"] for row in hints] == ["success", "danger", "accent", "primary"]
    assert [row["visual_type"] for row in hints] == ["number", "percentage", "currency", "text"]
    assert hints[0]["show_progress_bar"] is True
    assert hints[0]["progress_color"] == SUCCESS_COLOR
    assert hints[1]["progress_value"] == 72
    assert hints[3]["progress_color"] is None


def test_score_above_hundred_has_no_progress_bar():
    assert enhance_stats([{"label": "Credit Score", "value": "720"}])[0]["show_progress_bar"] is False


def test_script_segments_by_sentence_count():
    assert parse_script_segments("Just one line.") == {"hook": "Just one line."}
    assert parse_script_segments("Hi there. Can we book?") == {"hook": "Hi there.", "cta": "Can we book?"}
    assert parse_script_segments("Hi. Hail hit. Roofs aged. Book now!") == {
        "hook": "Hi.",
        "evidence": "Hail hit. Roofs aged.",
        "cta": "Book now!",
    }
    assert parse_script_segments("") == {"hook": ""}


def test_timeline_hints_follow_damage_risk():
    hints = enhance_timeline_events(
        [
            {"title": "Hail storm", "damage_risk": "high"},
            {"title": "Wind event", "damage_risk": "medium"},
            {"title": "Claim window opens"},
        ]
    )

    assert [row["icon_type"] for row in hints] == ["hail", "wind", "opportunity"]
    assert [row["visual_weight"] for row in hints] == ["critical", "important", "standard"]
    assert [row["connector_style"] for row in hints] == ["danger", "warning", "normal"]
    assert hints[0]["colors"]["border"] == DANGER_COLOR


def test_list_hero_is_first_flagged_item():
    hints = enhance_list_items([{"primary": "a"}, {"primary": "b", "highlight": True}, {"primary": "c", "priority": "high"}])

    assert [row["visual_weight"] for row in hints] == ["standard", "hero", "important"]
    assert hints[0]["badge"] is None
    assert hints[1]["badge"] == {"text": "PRIORITY", "color": "warning"}


def test_list_without_flags_promotes_first_item():
    hints = enhance_list_items([{"primary": "a"}, {"primary": "b"}])

    assert [row["visual_weight"] for row in hints] == ["hero", "standard"]


def test_number_formatting_and_progress_thresholds():
    assert format_large_number(2_500_000) == "2.5M"
    assert format_large_number(12_300) == "12.3K"
    assert format_large_number(42) == "42"
    assert progress_color(80) == SUCCESS_COLOR
    assert progress_color(50) == WARNING_COLOR
    assert progress_color(49) == DANGER_COLOR


def test_enhance_content_dispatch():
    assert enhance_content(SlideType.QUOTE, {"quote": "x"}) == {}
    hints = enhance_content(SlideType.TALKING_POINTS, {"points": [{"script": "One. Two."}]})
    assert hints == {"points": [{"segments": {"hook": "One.", "cta": "Two."}}]}
