from __future__ import annotations

from pydantic import BaseModel, Field


class ShowConfig(BaseModel):
    title: str = "Podify Podcast"
    description: str = "AI-generated podcast episodes"
    link: str = "https://example.com"
    language: str = "en"
    author: str = "Podify"
    email: str = "podcast@example.com"
    image_url: str = ""
    category: str = "Education"
    explicit: bool = False


class EpisodeMeta(BaseModel):
    guid: str = Field(..., description="Stable identifier, never changes")
    slug: str = Field(..., description="Unique within the manifest, e.g. kitchen-witchcraft-101")
    dir_name: str = Field(..., description="e.g. 2026-02-14_kitchen-witchcraft-101")
    title: str
    description: str = ""
    pub_date: str = Field(..., description="ISO 8601")
    duration_seconds: float = 0.0
    file_size_bytes: int = 0
    audio_file_name: str
    word_count: int = 0
    cost_usd: float = 0.0
    asset_url: str | None = Field(default=None, description="Remote copy of the audio, if uploaded")
    source: str | None = None


class FeedManifest(BaseModel):
    show: ShowConfig = Field(default_factory=ShowConfig)
    episodes: list[EpisodeMeta] = Field(default_factory=list)
