"""Static-site blog adapter (Jekyll / al-folio theme, published via git).

A post is a Markdown file with YAML front matter under ``_posts/``.
Images are stored inside the repository under ``assets/img/<post dir>/``
and embedded with the theme's figure include.  The draft is the post file
written under a ``draft_`` prefix, which the site generator ignores;
publishing renames it, commits and pushes.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from crosspost.config import CrosspostConfig, PlatformConfig
from crosspost.converter import MarkdownConverter
from crosspost.errors import PublishError
from crosspost.models import PublishContent, PublishResult, Resource
from crosspost.observability import get_logger
from crosspost.resources import FigureLayoutRenderer, ImageDownloader, ResourceProcessor
from crosspost.rest import HttpTransport
from crosspost.utils.text import escape_yaml, parse_tags, slugify

from .base import Platform, PublisherAdapter
from .git import Repository

log = get_logger("crosspost.adapters.blog")

POSTS_DIR = "_posts"
ASSETS_DIR = "assets/img"
DRAFT_PREFIX = "draft_"

_TOC_HEADING_THRESHOLD = 3
_TOC_LENGTH_THRESHOLD = 2000


def post_date(content: PublishContent) -> datetime:
    """Return the post date as an aware local datetime."""
    date = content.publish_date or datetime.now()
    return date.astimezone()


def post_slug(content: PublishContent) -> str:
    """Slug from the English title when present, else the title."""
    title = content.metadata.get("en_title") or content.title
    return slugify(title) or slugify(content.id) or "post"


def _yaml_list(key: str, values: list[str]) -> list[str]:
    if not values:
        return []
    if len(values) == 1:
        return [f"{key}: {values[0]}"]
    return [f"{key}:", *(f"  - {value}" for value in values)]


def needs_toc(body: str, requested: str = "") -> bool:
    """Decide whether the post gets a sidebar table of contents."""
    if requested.lower() in ("true", "yes"):
        return True
    return body.count("#") >= _TOC_HEADING_THRESHOLD or len(body) > _TOC_LENGTH_THRESHOLD


def front_matter(content: PublishContent) -> str:
    """Render the YAML front matter block for *content*."""
    lines = ["---", "layout: post", f'title: "{escape_yaml(content.title)}"']
    lines.append(f"date: {post_date(content).isoformat(timespec='seconds')}")
    tags = parse_tags(content.tags)
    lines.extend(_yaml_list("tags", tags))
    categories = parse_tags(content.metadata.get("categories")) or tags[:1]
    lines.extend(_yaml_list("categories", categories))
    lines.extend(["giscus_comments: true", "tabs: true", "pretty_table: true"])
    if needs_toc(content.body, content.metadata.get("toc", "")):
        lines.extend(["toc:", "  sidebar: left"])
    lines.append("---")
    return "\n".join(lines)


class BlogAdapter(PublisherAdapter):
    """Publishes posts to a git-hosted static site.

    Parameters
    ----------
    engine_config:
        Engine-wide settings.
    repository:
        Pre-built repository; by default one is created from the platform
        config on :meth:`initialize`.
    downloader:
        Image downloader; by default one backed by a fresh
        :class:`HttpTransport`.
    """

    platform = Platform.AL_FOLIO
    required_keys = ("repo_url", "branch", "workspace_dir")
    auto_publish_default = True

    def __init__(
        self,
        engine_config: CrosspostConfig | None = None,
        *,
        repository: Repository | None = None,
        downloader: ImageDownloader | None = None,
    ) -> None:
        super().__init__(engine_config)
        self.repository = repository
        self._downloader = downloader
        self._transport: HttpTransport | None = None
        self._converter = MarkdownConverter()

    def _initialize(self, config: PlatformConfig) -> None:
        if self.repository is None:
            self.repository = Repository(
                config.get("repo_url"),
                config.get("branch"),
                config.get("workspace_dir"),
                username=config.get("git_username"),
                email=config.get("git_email"),
                timeout_seconds=self.engine_config.git_timeout_seconds,
            )
        self.repository.initialize()
        if self._downloader is None:
            self._transport = HttpTransport(self.engine_config, name="blog-images")
            self._downloader = ImageDownloader(
                self._transport, self.engine_config.download_timeout_seconds,
            )

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def transform_content(self, content: PublishContent) -> None:
        result = self._converter.convert(content.blocks)
        date = post_date(content)
        slug = post_slug(content)
        content.body = result.content
        content.metadata["slug"] = slug
        content.metadata["filename"] = f"{date:%Y-%m-%d}-{slug}.md"
        content.metadata["image_dir"] = f"{date:%Y-%m-%d}-{slug}"

    def process_resources(self, content: PublishContent) -> None:
        repository = self._require_repository()
        image_dir = content.metadata["image_dir"]

        def upload(resource: Resource) -> str:
            return f"/{ASSETS_DIR}/{image_dir}/{Path(resource.local_path).name}"

        processor = ResourceProcessor(
            self._downloader,
            upload,
            ("markdown", "liquid", "html"),
            layout=FigureLayoutRenderer(),
            metrics=self.engine_config.metrics,
        )
        processor.process(content, repository.local_path / ASSETS_DIR / image_dir)

    def save_to_draft(self, content: PublishContent) -> PublishResult:
        filename = content.metadata.get("filename")
        if not filename:
            raise PublishError(
                message="filename not found in metadata; transform has not run",
                context={"platform": self.name},
            )
        draft_name = DRAFT_PREFIX + filename
        relative = f"{POSTS_DIR}/{draft_name}"
        self._require_repository().create_file(
            relative, f"{front_matter(content)}\n\n{content.body}",
        )
        log.info(
            "Draft post written",
            extra={"extra_fields": {"content_id": content.id, "path": relative}},
        )
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=draft_name,
            metadata={"file_path": relative, "filename": filename},
        )

    def publish(self, draft_id: str, content: PublishContent) -> PublishResult:
        """Promote the draft file to a post, commit and push."""
        repository = self._require_repository()
        config = self._require_config()
        filename = draft_id.removeprefix(DRAFT_PREFIX)
        post_path = f"{POSTS_DIR}/{filename}"

        draft_file = repository.local_path / POSTS_DIR / draft_id
        if draft_file.exists():
            draft_file.replace(repository.local_path / post_path)
        elif not repository.file_exists(post_path):
            raise PublishError(
                message=f"Draft {draft_id} not found in repository",
                context={"platform": self.name, "draft_id": draft_id},
            )

        paths = [post_path]
        image_dir = content.metadata.get("image_dir")
        if image_dir and repository.file_exists(f"{ASSETS_DIR}/{image_dir}"):
            paths.append(f"{ASSETS_DIR}/{image_dir}")

        if repository.has_changes(*paths):
            repository.add(*paths)
            message = config.get("commit_message") or f"Add new post: {content.id}"
            repository.commit(message)
            repository.push()
        else:
            log.info(
                "No changes to publish",
                extra={"extra_fields": {"content_id": content.id, "path": post_path}},
            )

        slug = content.metadata.get("slug") or filename[len("YYYY-MM-DD-"):].removesuffix(".md")
        year = post_date(content).year
        base_url = config.get("base_url").rstrip("/")
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=filename,
            url=f"{base_url}/blog/{year}/{slug}/",
            published_at=self._now(),
            metadata={
                "commit_hash": repository.last_commit_hash(),
                "branch": repository.branch,
                "repo_path": str(repository.local_path),
                "file_path": post_path,
                "publish_status": "published",
            },
        )

    def get_publish_status(self, publish_id: str) -> PublishResult:
        repository = self._require_repository()
        filename = publish_id.removeprefix(DRAFT_PREFIX)
        if repository.file_exists(f"{POSTS_DIR}/{filename}"):
            status = "published"
        elif repository.file_exists(f"{POSTS_DIR}/{DRAFT_PREFIX}{filename}"):
            status = "draft"
        else:
            return PublishResult.failure(self.name, f"Post {filename} not found", publish_id=publish_id)
        return PublishResult(
            success=True,
            platform=self.name,
            publish_id=filename,
            metadata={"publish_status": status},
        )

    def _require_repository(self) -> Repository:
        if self.repository is None:
            raise PublishError(
                message=f"{self.name}: repository is not initialized",
                context={"platform": self.name},
            )
        return self.repository
