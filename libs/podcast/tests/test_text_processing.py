from podify_podcast.domain.models import estimate_duration_ms
from podify_podcast.infrastructure.text.normalize import (
    clean_text_for_tts,
    excerpt,
    prepare_for_tts,
    slugify,
    strip_code_fences,
    title_from_slug,
    word_count,
)


def test_clean_text_for_tts_handles_stage_directions():
    raw = "So [laughs] that's it. [pause] Really [emphasis] true [whispers] okay."
    assert clean_text_for_tts(raw) == "So that's it. ... Really true okay."


def test_prepare_for_tts_is_case_insensitive_and_word_bounded():
    assert prepare_for_tts("Beltane and BELTANE") == "bell-tayn and bell-tayn"
    assert prepare_for_tts("Mabonville stays") == "Mabonville stays"


def test_strip_code_fences():
    assert strip_code_fences('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
    assert strip_code_fences("```\n[]\n```") == "[]"
    assert strip_code_fences("  []  ") == "[]"


def test_slugify_and_title_round_trip():
    assert slugify("Kitchen Witchcraft 101: Herbs & Spells!") == "kitchen-witchcraft-101-herbs-spells"
    assert len(slugify("a" * 80)) == 50
    assert title_from_slug("kitchen-witchcraft-101") == "Kitchen Witchcraft 101"


def test_word_count_and_excerpt():
    assert word_count(["one two", "  three  ", ""]) == 3
    assert excerpt("short") == "short"
    assert excerpt("x" * 250) == "x" * 200 + "..."


def test_duration_estimate_is_about_a_minute_per_thousand_chars():
    assert estimate_duration_ms("a" * 1000) == 60_000
