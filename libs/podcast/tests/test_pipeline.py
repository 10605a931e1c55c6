from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from podify_contracts.errors import ConfigurationError, ProviderError
from podify_contracts.podcast_job import ScriptLine, Speaker, Stage, TtsProvider
from podify_podcast.application.use_cases import episode_slug, estimate_cost, readable_transcript


def _run(pipeline, config, output_dir, events=None):
    def on_progress(event):
        if events is not None:
            events.append(event)

    return asyncio.run(pipeline.generate_episode(config, output_dir, on_progress))


def _episode_dirs(output_dir: Path) -> list[Path]:
    return [p for p in output_dir.iterdir() if p.is_dir()]


def test_two_line_episode_end_to_end(tmp_path, config, two_line_script, fakes, make_pipeline):
    manifest = fakes.ManifestStore()
    pipeline = make_pipeline(
        writer=fakes.ScriptWriter(two_line_script),
        synthesizer=fakes.Synthesizer(),
        manifest_store=manifest,
    )

    result = _run(pipeline, config, tmp_path)

    assert len(result.transcript) == 2
    assert result.word_count == 6
    assert result.duration_seconds == 42.0
    assert result.slug.startswith("moon-phases-101-")
    assert Path(result.audio_path).exists()
    assert result.cost_usd == pytest.approx(estimate_cost(two_line_script, TtsProvider.DEEPINFRA))

    (episode_dir,) = _episode_dirs(tmp_path)
    assert not (episode_dir / ".work").exists()
    transcript = json.loads((episode_dir / "transcript.json").read_text(encoding="utf-8"))
    assert transcript[1] == {"speaker": "HOST_B", "text": "Hi Luna, welcome"}
    assert (episode_dir / "transcript.txt").read_text(encoding="utf-8").startswith("Luna: Hello there listeners")

    (stored,) = manifest.manifest.episodes
    assert stored.slug == result.slug
    assert stored.title == "Moon Phases 101"
    assert stored.description == "A short episode."
    assert stored.word_count == 6


def test_script_boundary_is_reported_before_any_tts(tmp_path, config, two_line_script, fakes, make_pipeline):
    order: list[str] = []
    pipeline = make_pipeline(writer=fakes.ScriptWriter(two_line_script), synthesizer=fakes.Synthesizer(events=order))

    async def on_progress(event):
        if event.stage == Stage.SCRIPTING and event.percent == 0:
            order.append("scripting")
        if event.stage == Stage.AUDIO and event.percent == 30:
            order.append("audio")

    asyncio.run(pipeline.generate_episode(config, tmp_path, on_progress))

    assert order[:3] == ["scripting", "audio", "tts"]


def test_progress_is_monotonic_and_ends_at_100(tmp_path, config, fakes, make_pipeline):
    lines = [ScriptLine(speaker=Speaker.HOST_A, text=f"line {i}") for i in range(5)]
    events = []
    pipeline = make_pipeline(writer=fakes.ScriptWriter(lines), synthesizer=fakes.Synthesizer(), concurrency=2)

    _run(pipeline, config, tmp_path, events)

    percents = [e.percent for e in events]
    assert percents == sorted(percents)
    assert [(e.stage, e.percent) for e in events if e.message.endswith("...") and e.percent in (0, 30, 80)] == [
        (Stage.SCRIPTING, 0),
        (Stage.AUDIO, 30),
        (Stage.ASSEMBLY, 80),
    ]
    assert (events[-1].stage, events[-1].percent, events[-1].message) == (Stage.COMPLETE, 100, "Episode complete!")


def test_one_failed_line_still_produces_episode(tmp_path, config, fakes, make_pipeline):
    lines = [ScriptLine(speaker=Speaker.HOST_A, text=f"line {i}") for i in range(5)]
    assembler = fakes.Assembler()
    pipeline = make_pipeline(
        writer=fakes.ScriptWriter(lines), synthesizer=fakes.Synthesizer(fail_on={"line 3"}), assembler=assembler
    )

    result = _run(pipeline, config, tmp_path)

    assert len(assembler.clips) == 4
    assert len(result.transcript) == 5


def test_no_clips_is_provider_error_and_cleans_work_dir(tmp_path, config, two_line_script, fakes, make_pipeline):
    manifest = fakes.ManifestStore()
    synth = fakes.Synthesizer(fail_on={line.text for line in two_line_script})
    pipeline = make_pipeline(writer=fakes.ScriptWriter(two_line_script), synthesizer=synth, manifest_store=manifest)

    with pytest.raises(ProviderError, match="No audio clips generated"):
        _run(pipeline, config, tmp_path)

    (episode_dir,) = _episode_dirs(tmp_path)
    assert not (episode_dir / ".work").exists()
    assert manifest.manifest.episodes == []


def test_script_failure_propagates(tmp_path, config, fakes, make_pipeline):
    events = []
    synth = fakes.Synthesizer()
    pipeline = make_pipeline(writer=fakes.ScriptWriter([], fail=True), synthesizer=synth)

    with pytest.raises(ProviderError, match="LLM failed"):
        _run(pipeline, config, tmp_path, events)

    assert synth.calls == []
    assert all(e.stage == Stage.SCRIPTING for e in events)


def test_failed_run_delivers_pending_steps_before_raising(tmp_path, config, fakes, make_pipeline):
    delivered = []
    pipeline = make_pipeline(writer=fakes.ScriptWriter([], fail=True), synthesizer=fakes.Synthesizer())

    async def slow_observer(event):
        await asyncio.sleep(0.01)
        delivered.append(event.percent)

    async def scenario():
        with pytest.raises(ProviderError):
            await pipeline.generate_episode(config, tmp_path, slow_observer)
        return list(delivered)

    assert asyncio.run(scenario()) == [0, 5]


def test_registration_failure_is_not_fatal(tmp_path, config, two_line_script, fakes, make_pipeline):
    pipeline = make_pipeline(
        writer=fakes.ScriptWriter(two_line_script),
        synthesizer=fakes.Synthesizer(),
        manifest_store=fakes.ManifestStore(fail_write=True),
    )

    result = _run(pipeline, config, tmp_path)

    assert Path(result.audio_path).exists()
    assert result.asset_url is None


def test_asset_url_comes_from_upload(tmp_path, config, two_line_script, fakes, make_pipeline):
    assets = fakes.AssetStore()
    pipeline = make_pipeline(
        writer=fakes.ScriptWriter(two_line_script), synthesizer=fakes.Synthesizer(), asset_store=assets
    )

    result = _run(pipeline, config, tmp_path)

    (episode_dir,) = _episode_dirs(tmp_path)
    assert assets.uploaded == [f"{episode_dir.name}.mp3"]
    assert result.asset_url == f"https://assets.test/episodes/{episode_dir.name}.mp3"


def test_missing_credentials_fail_before_any_stage(tmp_path, config, two_line_script, fakes, make_pipeline):
    events = []
    pipeline = make_pipeline(
        writer=fakes.ScriptWriter(two_line_script), synthesizer=fakes.Synthesizer(), missing_key=True
    )

    with pytest.raises(ConfigurationError):
        _run(pipeline, config, tmp_path, events)

    assert events == []
    assert list(tmp_path.iterdir()) == []


def test_blank_content_is_rejected(tmp_path, config, two_line_script, fakes, make_pipeline):
    pipeline = make_pipeline(writer=fakes.ScriptWriter(two_line_script), synthesizer=fakes.Synthesizer())

    with pytest.raises(ConfigurationError, match="Content is required"):
        _run(pipeline, config.model_copy(update={"content": "   "}), tmp_path)


def test_description_falls_back_to_transcript_excerpt(tmp_path, config, two_line_script, fakes, make_pipeline):
    manifest = fakes.ManifestStore()
    pipeline = make_pipeline(
        writer=fakes.ScriptWriter(two_line_script, description=None),
        synthesizer=fakes.Synthesizer(),
        manifest_store=manifest,
    )

    _run(pipeline, config, tmp_path)

    assert manifest.manifest.episodes[0].description == "Hello there listeners Hi Luna, welcome"


def test_helpers(config, two_line_script):
    slug = episode_slug("Moon Phases: 101!")
    assert slug.startswith("moon-phases-101-")
    assert "--" not in slug
    assert len(slug.rsplit("-", 1)[1]) == 6

    assert readable_transcript(two_line_script, config) == "Luna: Hello there listeners\n\nSol: Hi Luna, welcome"
    assert estimate_cost([], TtsProvider.OPENAI) == pytest.approx(0.03)
