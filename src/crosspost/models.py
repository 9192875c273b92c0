"""Public data models for crosspost.

Every value that crosses a module boundary lives here: the block tree
received from the content provider, the per-attempt publish content and
its resources, adapter results, and the durable job record view.  All
types are plain dataclasses or ``str`` enums.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ResourceKind(str, Enum):
    """Kind of embedded media asset."""

    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class JobStatus(str, Enum):
    """Status of a :class:`DistributionJob`."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    DRAFT = "draft"
    """Recorded by an on-demand draft-only publish; never counts as done."""

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.DRAFT)


class AdapterStage(str, Enum):
    """Lifecycle stages of one publish attempt on one adapter."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    TRANSFORMED = "transformed"
    RESOURCES_PROCESSED = "resources_processed"
    DRAFTED = "drafted"
    PUBLISHED = "published"
    CLEANED_UP = "cleaned_up"
    FAILED = "failed"


class ImageLayout(str, Enum):
    """Column layout used for a group of adjacent images."""

    SINGLE = "single"
    TWO_COLUMN = "two_column"
    THREE_COLUMN = "three_column"
    FOUR_COLUMN = "four_column"

    @property
    def columns(self) -> int:
        return {
            ImageLayout.SINGLE: 1,
            ImageLayout.TWO_COLUMN: 2,
            ImageLayout.THREE_COLUMN: 3,
            ImageLayout.FOUR_COLUMN: 4,
        }[self]


# ---------------------------------------------------------------------------
# Block tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RichTextSpan:
    """A text run with inline annotations and an optional link."""

    text: str
    bold: bool = False
    italic: bool = False
    code: bool = False
    strikethrough: bool = False
    underline: bool = False
    href: str | None = None


@dataclass
class Block:
    """One node of a document's content tree.

    ``type`` keeps the provider's block type name (``"paragraph"``,
    ``"heading_1"``, ``"numbered_list_item"``...).  ``recognized`` is
    ``False`` when the raw block had no type or no type-specific payload;
    converters skip such blocks.
    """

    type: str
    id: str = ""
    rich_text: list[RichTextSpan] = field(default_factory=list)
    language: str = ""
    image_url: str = ""
    caption: list[RichTextSpan] = field(default_factory=list)
    children: list[Block] = field(default_factory=list)
    recognized: bool = True

    @property
    def plain_text(self) -> str:
        return "".join(span.text for span in self.rich_text)

    @property
    def caption_text(self) -> str:
        return "".join(span.text for span in self.caption)


@dataclass
class ConversionResult:
    """Output of a format converter: the rendered body and its image URLs."""

    content: str
    image_urls: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Source documents
# ---------------------------------------------------------------------------

@dataclass
class SourcePage:
    """A document as delivered by the content provider."""

    notion_id: str
    title: str = "Untitled"
    en_title: str = ""
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    status: str = "draft"
    post_date: datetime | None = None
    owner: str = ""
    platforms: list[str] = field(default_factory=list)
    content_type: str = ""
    last_edited_time: datetime | None = None
    blocks: list[Block] = field(default_factory=list)

    def to_publish_content(self) -> PublishContent:
        """Snapshot this page into a fresh :class:`PublishContent`."""
        return PublishContent(
            id=self.notion_id,
            title=self.title,
            summary=self.summary,
            tags=list(self.tags),
            author=self.owner,
            publish_date=self.post_date,
            blocks=self.blocks,
            metadata={
                "notion_id": self.notion_id,
                "status": self.status,
                "platforms": ",".join(self.platforms),
                "content_type": self.content_type,
                "en_title": self.en_title,
            },
        )


# ---------------------------------------------------------------------------
# Publish attempt
# ---------------------------------------------------------------------------

@dataclass
class Resource:
    """An embedded media asset discovered during conversion."""

    id: str
    kind: ResourceKind
    url: str
    local_path: str = ""
    destination_url: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class PublishContent:
    """Content of one publish attempt.

    Created once per attempt from a source snapshot and mutated in place
    by the transform and resource-processing stages.
    """

    id: str
    title: str
    body: str = ""
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    author: str = ""
    publish_date: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    resources: list[Resource] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)


@dataclass
class PublishResult:
    """Outcome of an adapter call or of one (page, platform) dispatch."""

    success: bool
    platform: str = ""
    publish_id: str = ""
    url: str = ""
    error: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    published_at: datetime | None = None
    skipped: bool = False
    job_id: int | None = None

    @classmethod
    def failure(cls, platform: str, error: str, **kwargs: object) -> PublishResult:
        return cls(success=False, platform=platform, error=error, **kwargs)  # type: ignore[arg-type]


@dataclass
class DistributionJob:
    """Durable record of one publish attempt for one (page, platform) pair."""

    id: int
    page_id: str
    platform_id: int
    platform_name: str
    status: JobStatus
    content: str = ""
    publish_id: str = ""
    url: str = ""
    error: str = ""
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
