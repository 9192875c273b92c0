"""Tests for the static-site blog adapter."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from conftest import image_block, text_block

from crosspost.adapters import BlogAdapter
from crosspost.adapters.blog import front_matter, needs_toc, post_slug
from crosspost.adapters.git import Repository
from crosspost.config import PlatformConfig
from crosspost.errors import ConfigError, PublishError
from crosspost.models import PublishContent
from crosspost.utils import stable_filename

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeRepository(Repository):
    """Repository whose git calls are recorded instead of run."""

    def __init__(self, workspace_dir, *, push_error: Exception | None = None):
        super().__init__("git@example.com:me/site.git", "main", workspace_dir)
        self.log: list[tuple] = []
        self.push_error = push_error

    def initialize(self):
        self.local_path.mkdir(parents=True, exist_ok=True)
        self.log.append(("initialize",))

    def has_changes(self, *paths):
        return True

    def add(self, *paths):
        self.log.append(("add", *paths))

    def commit(self, message):
        self.log.append(("commit", message))
        return True

    def push(self):
        if self.push_error is not None:
            raise self.push_error
        self.log.append(("push",))

    def last_commit_hash(self):
        return "abc123"


class FakeDownloader:
    def fetch(self, url, dest_dir):
        path = Path(dest_dir) / stable_filename(url)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"img")
        return path


def make_content(**overrides) -> PublishContent:
    defaults = dict(
        id="page-1",
        title="Hello World",
        tags=["python"],
        publish_date=datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc),
        blocks=[text_block("paragraph", "Body text")],
        metadata={"en_title": "Hello World"},
    )
    defaults.update(overrides)
    return PublishContent(**defaults)


@pytest.fixture
def repo(tmp_path):
    return FakeRepository(tmp_path / "repos")


@pytest.fixture
def adapter(config, repo, blog_settings):
    blog = BlogAdapter(config, repository=repo, downloader=FakeDownloader())
    blog.initialize(blog_settings)
    return blog


def local_day(content: PublishContent) -> str:
    return f"{content.publish_date.astimezone():%Y-%m-%d}"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestFrontMatter:
    def test_required_keys(self):
        content = make_content(title='Say "hi"')
        fm = front_matter(content)
        lines = fm.splitlines()
        assert lines[0] == lines[-1] == "---"
        assert "layout: post" in lines
        assert 'title: "Say \\"hi\\""' in lines
        assert "giscus_comments: true" in lines
        assert "tabs: true" in lines
        assert "pretty_table: true" in lines

    def test_date_has_offset(self):
        fm = front_matter(make_content())
        date_line = next(line for line in fm.splitlines() if line.startswith("date: "))
        parsed = datetime.fromisoformat(date_line.removeprefix("date: "))
        assert parsed.utcoffset() is not None
        assert parsed == datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)

    def test_single_tag_inline_and_category_fallback(self):
        fm = front_matter(make_content(tags=["python"]))
        assert "tags: python" in fm
        assert "categories: python" in fm

    def test_multiple_tags_as_list(self):
        fm = front_matter(make_content(tags=["a", "b"]))
        assert "tags:\n  - a\n  - b" in fm

    def test_explicit_categories(self):
        fm = front_matter(make_content(metadata={"categories": "[notes, misc]"}))
        assert "categories:\n  - notes\n  - misc" in fm

    def test_toc_only_when_needed(self):
        assert "toc:" not in front_matter(make_content(body="short"))
        assert "toc:\n  sidebar: left" in front_matter(make_content(body="# a\n## b\n### c"))


class TestHelpers:
    def test_needs_toc(self):
        assert needs_toc("x" * 2001)
        assert needs_toc("#a #b #c")
        assert not needs_toc("## one heading")
        assert needs_toc("", "true")

    def test_slug_prefers_english_title(self):
        content = make_content(title="你好", metadata={"en_title": "Hello There"})
        assert post_slug(content) == "hello-there"

    def test_slug_falls_back_to_title(self):
        assert post_slug(make_content(title="My Post!", metadata={})) == "my-post"


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

class TestInitialize:
    def test_requires_repo_settings(self, config):
        with pytest.raises(ConfigError, match="repo_url"):
            BlogAdapter(config).initialize(PlatformConfig(platform_name="al-folio"))

    def test_repository_initialized(self, adapter, repo):
        assert repo.log == [("initialize",)]
        assert adapter.initialized


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

class TestStages:
    def test_transform_sets_filename(self, adapter):
        content = make_content()
        adapter.transform_content(content)
        day = local_day(content)
        assert content.body == "Body text\n"
        assert content.metadata["filename"] == f"{day}-hello-world.md"
        assert content.metadata["image_dir"] == f"{day}-hello-world"

    def test_images_stored_in_repository(self, adapter, repo):
        content = make_content(blocks=[image_block("https://h/a.png", "cap")])
        adapter.transform_content(content)
        adapter.process_resources(content)
        name = stable_filename("https://h/a.png")
        image_dir = content.metadata["image_dir"]
        assert (repo.local_path / "assets/img" / image_dir / name).exists()
        assert f'path="/assets/img/{image_dir}/{name}"' in content.body
        assert "figure.liquid" in content.body

    def test_draft_written_with_prefix(self, adapter, repo):
        content = make_content()
        adapter.transform_content(content)
        result = adapter.save_to_draft(content)
        assert result.publish_id.startswith("draft_")
        draft = repo.local_path / "_posts" / result.publish_id
        text = draft.read_text(encoding="utf-8")
        assert text.startswith("---\nlayout: post\n")
        assert text.endswith("---\n\nBody text\n")

    def test_draft_without_transform_rejected(self, adapter):
        with pytest.raises(PublishError, match="filename"):
            adapter.save_to_draft(make_content())

    def test_publish_renames_commits_and_pushes(self, adapter, repo):
        content = make_content()
        adapter.transform_content(content)
        draft = adapter.save_to_draft(content)
        result = adapter.publish(draft.publish_id, content)
        filename = content.metadata["filename"]
        assert (repo.local_path / "_posts" / filename).exists()
        assert not (repo.local_path / "_posts" / draft.publish_id).exists()
        assert ("commit", "Add new post: page-1") in repo.log
        assert repo.log[-1] == ("push",)
        assert result.url == "https://me.example.com/blog/2024/hello-world/"
        assert result.metadata["commit_hash"] == "abc123"
        assert result.metadata["publish_status"] == "published"

    def test_publish_missing_draft(self, adapter):
        with pytest.raises(PublishError, match="not found"):
            adapter.publish("draft_2024-01-01-none.md", make_content())

    def test_status_reports_draft_then_published(self, adapter):
        content = make_content()
        adapter.transform_content(content)
        draft = adapter.save_to_draft(content)
        assert adapter.get_publish_status(draft.publish_id).metadata["publish_status"] == "draft"
        adapter.publish(draft.publish_id, content)
        assert adapter.get_publish_status(draft.publish_id).metadata["publish_status"] == "published"

    def test_status_unknown_post(self, adapter):
        assert not adapter.get_publish_status("2024-01-01-none.md").success


# ---------------------------------------------------------------------------
# publish_direct
# ---------------------------------------------------------------------------

class TestPublishDirect:
    def test_auto_publish_by_default(self, adapter, repo):
        result = adapter.publish_direct(make_content())
        assert result.success
        assert repo.log[-1] == ("push",)
        assert result.metadata["publish_status"] == "published"

    def test_auto_publish_disabled_leaves_draft(self, adapter, repo, blog_settings):
        blog_settings.settings["auto_publish"] = "false"
        result = adapter.publish_direct(make_content(), blog_settings)
        assert result.publish_id.startswith("draft_")
        assert result.metadata["publish_status"] == "draft"
        assert ("push",) not in repo.log

    def test_push_failure_reported_on_draft(self, config, tmp_path, blog_settings):
        repo = FakeRepository(tmp_path / "repos", push_error=PublishError(message="rejected"))
        blog = BlogAdapter(config, repository=repo, downloader=FakeDownloader())
        blog.initialize(blog_settings)
        result = blog.publish_direct(make_content())
        assert result.success
        assert result.metadata["publish_error"] == "[al-folio:publish] rejected"
