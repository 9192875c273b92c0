"""crosspost: publish one source document to a blog, WeChat and Substack.

Public re-exports
-----------------

* **Orchestration:** :class:`PublishManager`, :class:`PlatformRegistry`,
  :class:`PublishService`, :class:`Scheduler`
* **Adapters:** :class:`PublisherAdapter`, :class:`Platform`,
  :func:`create_adapter`
* **Configuration:** :class:`CrosspostConfig`, :class:`PlatformConfig`
* **Errors:** Every :class:`CrosspostError` subclass and :class:`ErrorCode`
* **Models:** Block tree, publish content and job dataclasses

Usage::

    from crosspost import (
        CrosspostConfig, JobStore, NotionSource, PlatformRegistry,
        PublishManager, PublishService, create_notion_transport,
    )

    config = CrosspostConfig.from_mapping(settings)
    store = JobStore(config.database_url)
    store.create_tables()
    manager = PublishManager(PlatformRegistry.from_config(config), store, config)
    source = NotionSource(create_notion_transport(config))
    report = PublishService(source, manager, config).run_cycle()
"""

from __future__ import annotations

# ── Adapters ────────────────────────────────────────────────────────────
from crosspost.adapters import (
    BlogAdapter,
    Platform,
    PublisherAdapter,
    SubstackAdapter,
    WechatAdapter,
    create_adapter,
)

# ── Configuration ───────────────────────────────────────────────────────
from crosspost.config import CrosspostConfig, PlatformConfig

# ── Errors ──────────────────────────────────────────────────────────────
from crosspost.errors import (
    AdapterBusyError,
    AdapterTimeoutError,
    AuthError,
    ConfigError,
    CrosspostError,
    ErrorCode,
    JobStoreError,
    NetworkError,
    NotFoundError,
    PlatformRegistryError,
    PrerequisiteMissingError,
    PublishError,
    RequestError,
    ResourceError,
    RetryExhaustedError,
    SourceError,
    TransformError,
)

# ── Jobs ────────────────────────────────────────────────────────────────
from crosspost.jobs import JobStore

# ── Orchestration ───────────────────────────────────────────────────────
from crosspost.manager import PlatformRegistry, PublishManager, map_platform_labels

# ── Models ──────────────────────────────────────────────────────────────
from crosspost.models import (
    AdapterStage,
    Block,
    ConversionResult,
    DistributionJob,
    ImageLayout,
    JobStatus,
    PublishContent,
    PublishResult,
    Resource,
    ResourceKind,
    RichTextSpan,
    SourcePage,
)
from crosspost.service import CycleReport, PublishService, Scheduler

# ── Source ──────────────────────────────────────────────────────────────
from crosspost.source import NotionSource, create_notion_transport

__version__ = "0.1.0"

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Orchestration
    "PublishManager",
    "PlatformRegistry",
    "PublishService",
    "Scheduler",
    "CycleReport",
    "map_platform_labels",
    "JobStore",
    # Adapters
    "PublisherAdapter",
    "Platform",
    "BlogAdapter",
    "WechatAdapter",
    "SubstackAdapter",
    "create_adapter",
    # Source
    "NotionSource",
    "create_notion_transport",
    # Configuration
    "CrosspostConfig",
    "PlatformConfig",
    # Error base + code enum
    "CrosspostError",
    "ErrorCode",
    # Errors
    "ConfigError",
    "AuthError",
    "TransformError",
    "ResourceError",
    "PublishError",
    "PrerequisiteMissingError",
    "AdapterTimeoutError",
    "AdapterBusyError",
    "NetworkError",
    "RetryExhaustedError",
    "RequestError",
    "NotFoundError",
    "SourceError",
    "JobStoreError",
    "PlatformRegistryError",
    # Models
    "Block",
    "RichTextSpan",
    "ConversionResult",
    "SourcePage",
    "PublishContent",
    "PublishResult",
    "Resource",
    "DistributionJob",
    # Models - enums
    "AdapterStage",
    "ImageLayout",
    "JobStatus",
    "ResourceKind",
    "__version__",
]
