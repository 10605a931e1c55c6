from __future__ import annotations

import re
from typing import Iterable

# Words the Kokoro voices mispronounce. Applied only to text sent to TTS;
# transcripts keep the correct spelling.
PRONUNCIATIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bgrimoire\b", re.I), "grim-wahr"),
    (re.compile(r"\bgibbous\b", re.I), "gib-us"),
    (re.compile(r"\bsamhain\b", re.I), "sow-in"),
    (re.compile(r"\bmabon\b", re.I), "may-bon"),
    (re.compile(r"\bimbolc\b", re.I), "im-olk"),
    (re.compile(r"\blitha\b", re.I), "lee-thah"),
    (re.compile(r"\bostara\b", re.I), "oh-star-ah"),
    (re.compile(r"\bbeltane\b", re.I), "bell-tayn"),
    (re.compile(r"\bathame\b", re.I), "ah-thah-may"),
    (re.compile(r"\bdeosil\b", re.I), "jess-ul"),
    (re.compile(r"\bwiddershins\b", re.I), "wid-er-shinz"),
]


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clean_text_for_tts(text: str) -> str:
    # TTS reads stage directions literally; pauses become ellipses.
    text = re.sub(r"\[laughs?\]", "", text, flags=re.I)
    text = re.sub(r"\[pause\]", "...", text, flags=re.I)
    text = re.sub(r"\[emphasis\]", "", text, flags=re.I)
    text = re.sub(r"\[.*?\]", "", text)
    return normalize_whitespace(text)


def prepare_for_tts(text: str) -> str:
    for pattern, replacement in PRONUNCIATIONS:
        text = pattern.sub(replacement, text)
    return text


def strip_code_fences(raw: str) -> str:
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
    return cleaned


def slugify(title: str, *, max_len: int = 50) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:max_len]


def title_from_slug(slug: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), slug.replace("-", " "))


def word_count(texts: Iterable[str]) -> int:
    """Whitespace-split token count summed over all texts."""
    return sum(len(text.split()) for text in texts)


def excerpt(text: str, limit: int = 200) -> str:
    snippet = text[:limit]
    if len(snippet) == limit:
        snippet += "..."
    return snippet
