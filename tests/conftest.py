"""Shared test fixtures for the crosspost test suite."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from crosspost.config import CrosspostConfig, PlatformConfig
from crosspost.jobs import JobStore
from crosspost.models import Block, RichTextSpan, SourcePage


def text_block(block_type: str, text: str = "", children: list[Block] | None = None, **span) -> Block:
    """Build a block holding a single rich-text span."""
    rich_text = [RichTextSpan(text=text, **span)] if text else []
    return Block(type=block_type, rich_text=rich_text, children=children or [])


def image_block(url: str, caption: str = "") -> Block:
    caption_spans = [RichTextSpan(text=caption)] if caption else []
    return Block(type="image", image_url=url, caption=caption_spans)


def make_page(**overrides) -> SourcePage:
    defaults = dict(
        notion_id="page-1",
        title="Hello World",
        en_title="Hello World",
        summary="A short summary",
        tags=["python"],
        status="Done",
        post_date=datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc),
        platforms=["Blog"],
        blocks=[text_block("paragraph", "Body text")],
    )
    defaults.update(overrides)
    return SourcePage(**defaults)


def make_config(**overrides) -> CrosspostConfig:
    """Return a CrosspostConfig tuned for fast, deterministic tests."""
    defaults = dict(
        notion_token="test-token-1234",
        notion_database_id="db-1",
        database_url="sqlite://",
        retry_max_attempts=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=False,
        # High RPS so the token bucket never blocks during tests.
        rate_limit_rps=10_000.0,
        attempt_timeout_seconds=5.0,
    )
    defaults.update(overrides)
    return CrosspostConfig(**defaults)


@pytest.fixture
def config(tmp_path) -> CrosspostConfig:
    """Default engine configuration writing into a temporary directory."""
    return make_config(work_dir=str(tmp_path / "images"))


@pytest.fixture
def store() -> JobStore:
    """In-memory job store with tables created."""
    job_store = JobStore("sqlite://")
    job_store.create_tables()
    yield job_store
    job_store.close()


@pytest.fixture
def page() -> SourcePage:
    return make_page()


@pytest.fixture
def blog_settings(tmp_path) -> PlatformConfig:
    return PlatformConfig(
        platform_name="al-folio",
        settings={
            "repo_url": "git@example.com:me/site.git",
            "branch": "main",
            "workspace_dir": str(tmp_path / "repos"),
            "base_url": "https://me.example.com",
        },
    )
