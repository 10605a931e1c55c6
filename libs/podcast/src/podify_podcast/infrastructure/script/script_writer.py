from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List

from podify_contracts.errors import ProviderError
from podify_contracts.podcast_job import (
    DURATION_WORDS,
    PodcastConfig,
    PodcastFormat,
    ScriptLine,
    Speaker,
    Tone,
)
from podify_podcast.application.ports import ScriptWriter, StepProgress, TextGenerator
from podify_podcast.infrastructure.logging import get_logger
from podify_podcast.infrastructure.text.normalize import clean_text_for_tts, strip_code_fences, word_count

log = get_logger(__name__)

DESCRIPTION_SYSTEM = (
    "You write concise podcast episode descriptions. Return ONLY the description text, no quotes or labels."
)

TONE_INSTRUCTIONS: dict[Tone, str] = {
    Tone.EDUCATIONAL: "Tone: Clear, informative, accessible. Explain jargon when used. Use relatable analogies.",
    Tone.CASUAL: "Tone: Relaxed, like two friends chatting over coffee. Light humour welcome. Keep it breezy.",
    Tone.DEEP_DIVE: "Tone: Thorough and detailed. Go deeper into nuance. It's okay to spend time on complex ideas.",
    Tone.MYSTICAL: (
        "Tone: Reverent but not pretentious. Honour the spiritual dimension while staying grounded and practical."
    ),
}

BASE_RULES = """RULES:
- Write for SPOKEN word: use contractions, casual phrasing, natural rhythm
- Use fillers like "right", "exactly", "oh interesting" SPARINGLY (max 3-4 per episode)
- Never say "great question"; react naturally instead
- Each speaker turn: 1-4 sentences MAX. Keep it punchy.
- Use [laughs] or [pause] VERY sparingly (max 2-3 per episode)
- Target: {words} words total
- Source content is your ONLY reference; don't make up facts

OUTPUT: Return ONLY a JSON array, no markdown, no explanation:
[{{"speaker":"HOST_A","text":"..."}},{{"speaker":"HOST_B","text":"..."}},...]"""

FORMAT_PROMPTS: dict[PodcastFormat, str] = {
    PodcastFormat.CONVERSATION: """You are a script writer for a two-host podcast.

{host_a} (HOST_A) is the knowledgeable guide. Warm, clear, explains concepts accessibly with metaphors and real-world connections. Never condescending.

{host_b} (HOST_B) is the curious explorer. Asks the questions listeners are thinking, gets excited about discoveries, pushes for practical takeaways.

The hosts address each other BY NAME every 3-5 exchanges, e.g. "{host_b}, have you ever noticed..." so listeners can tell the voices apart.

STRUCTURE:
1. Hook (30s): intriguing opening
2. Context (1min): why this matters
3. Deep exploration: core content, back and forth
4. Practical takeaway (1min): what listeners can actually DO
5. Outro (30s)""",
    PodcastFormat.INTERVIEW: """You are a podcast script writer. {host_a} (HOST_A) is the interviewer, {host_b} (HOST_B) is the expert guest.

The interviewer asks probing questions. The expert gives detailed, engaging answers with examples and stories. The interviewer occasionally summarises or reacts.

STRUCTURE:
1. Introduction of guest and topic (30s)
2. Origin story (1min)
3. Core Q&A: 3-5 questions going progressively deeper
4. "One thing listeners should know" (1min)
5. Where to learn more + outro (30s)""",
    PodcastFormat.SOLO_NARRATION: """You are a script writer for a single-narrator show. {host_a} (HOST_A) narrates everything.

Write a flowing narrative, like a documentary voiceover. Use rhetorical questions to engage the listener and vary sentence length for rhythm. Every entry uses speaker HOST_A.

STRUCTURE:
1. Hook: compelling opening line or question
2. Background: set the scene
3. Core content: walk through the material
4. Reflection: why this matters
5. Closing thought""",
    PodcastFormat.STUDY_NOTES: """You are a script writer that turns study notes into an engaging two-person discussion.

{host_a} (HOST_A) is the teacher: explains concepts clearly, uses examples, checks understanding.
{host_b} (HOST_B) is the student: asks clarifying questions, makes connections, occasionally has a misconception that {host_a} gently corrects.

STRUCTURE:
1. "Today we're covering..." overview (30s)
2. Concept-by-concept walkthrough with Q&A
3. Quick recap / "test yourself" moment
4. Key takeaways to remember""",
}


def _load_prompt_override(fmt: PodcastFormat) -> str | None:
    env_dir = os.getenv("PROMPTS_DIR")
    if not env_dir:
        return None
    candidate = Path(env_dir) / f"{fmt.value}.md"
    if candidate.is_file():
        return candidate.read_text(encoding="utf-8")
    return None


class DialogueScriptWriter(ScriptWriter):
    """Builds format/tone specific prompts and parses the model's JSON dialogue."""

    def __init__(self, *, generator: TextGenerator) -> None:
        self.generator = generator

    def system_prompt(self, config: PodcastConfig) -> str:
        words = DURATION_WORDS.get(config.duration, 750)
        template = _load_prompt_override(config.format) or FORMAT_PROMPTS[config.format]
        prompt = template.format(host_a=config.host_name(Speaker.HOST_A), host_b=config.host_name(Speaker.HOST_B))
        parts = [prompt, TONE_INSTRUCTIONS[config.tone], BASE_RULES.format(words=words)]
        if config.custom_instructions:
            parts.append(f"ADDITIONAL INSTRUCTIONS: {config.custom_instructions}")
        return "\n\n".join(parts)

    def user_prompt(self, config: PodcastConfig) -> str:
        words = DURATION_WORDS.get(config.duration, 750)
        return (
            f'Create a {config.duration.value} podcast episode titled "{config.title}" based on the following content.\n\n'
            f"Target approximately {words} words of dialogue.\n\n"
            f"<source_content>\n{config.content}\n</source_content>"
        )

    async def write_script(self, config: PodcastConfig, on_progress: StepProgress | None = None) -> List[ScriptLine]:
        msg = f"Generating script ({config.format.value}, {config.duration.value}, {config.tone.value})..."
        log.info("script.generate provider=%s format=%s", config.llm_provider.value, config.format.value)
        if on_progress:
            on_progress(msg, 5)

        raw = await self.generator.generate(system=self.system_prompt(config), prompt=self.user_prompt(config))
        if on_progress:
            on_progress("Parsing script...", 25)

        script = parse_script(raw)
        words = word_count(line.text for line in script)
        log.info("script.generated lines=%s words=%s", len(script), words)
        if on_progress:
            on_progress(f"Script generated: {len(script)} lines, {words} words", 30)
        return script

    async def describe(self, *, title: str, transcript: List[ScriptLine]) -> str:
        condensed = " ".join(line.text for line in transcript)[:2000]
        prompt = (
            f'Write a 2-3 sentence podcast episode description for an episode titled "{title}".\n'
            "This is for an RSS feed listing; make it compelling and informative, not clickbait.\n"
            f"Based on this transcript excerpt:\n\n{condensed}"
        )
        raw = await self.generator.generate(system=DESCRIPTION_SYSTEM, prompt=prompt)
        return raw.strip()


def parse_script(raw: str) -> List[ScriptLine]:
    cleaned = strip_code_fences(raw)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        log.error("script.parse_failed raw=%s", cleaned[:500])
        raise ProviderError(f"Script parsing failed: {exc}") from exc
    if not isinstance(parsed, list):
        raise ProviderError("Script parsing failed: expected JSON array")

    lines: list[ScriptLine] = []
    for idx, item in enumerate(parsed):
        if not isinstance(item, dict) or not item.get("speaker") or not item.get("text"):
            raise ProviderError(f"Script parsing failed: line {idx} missing speaker or text")
        try:
            speaker = Speaker(str(item["speaker"]).strip().upper())
        except ValueError as exc:
            raise ProviderError(f"Script parsing failed: line {idx} has unknown speaker {item['speaker']!r}") from exc
        text = clean_text_for_tts(str(item["text"]))
        if not text:
            log.warning("script.empty_line_dropped index=%s", idx)
            continue
        lines.append(ScriptLine(speaker=speaker, text=text))
    return lines
