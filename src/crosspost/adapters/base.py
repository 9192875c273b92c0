"""Abstract base class shared by every platform adapter.

An adapter owns everything platform-specific about one destination: the
output format it converts to, how embedded images are re-hosted, and the
draft and publish calls.  :meth:`PublisherAdapter.publish_direct` composes
the stages in a fixed order and tracks them with an
:class:`~crosspost.adapters.lifecycle.AdapterLifecycle`.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from crosspost.config import CrosspostConfig, PlatformConfig
from crosspost.errors import ConfigError, CrosspostError, PublishError, wrap_stage_error
from crosspost.models import AdapterStage, PublishContent, PublishResult
from crosspost.observability import get_logger

from .lifecycle import AdapterLifecycle

log = get_logger("crosspost.adapters")


class Platform(str, Enum):
    """Canonical keys of the supported destination platforms."""

    AL_FOLIO = "al-folio"
    WECHAT = "wechat-official"
    SUBSTACK = "substack"


class PublisherAdapter(ABC):
    """Lifecycle contract for one destination platform.

    Subclasses set :attr:`platform` and :attr:`required_keys` and implement
    the five stage methods.  Adapters are created once per process and
    reused across attempts; per-attempt state lives on the
    :class:`PublishContent` passed through the stages.

    Parameters
    ----------
    engine_config:
        Engine-wide settings (timeouts, retry policy, work directory).
    """

    platform: Platform
    required_keys: tuple[str, ...] = ()
    draft_before_resources: bool = False
    """Image upload needs the draft id, so the draft is created first."""
    auto_publish_default: bool = False

    def __init__(self, engine_config: CrosspostConfig | None = None) -> None:
        self.engine_config = engine_config or CrosspostConfig()
        self.config: PlatformConfig | None = None
        self.initialized = False
        self.last_lifecycle: AdapterLifecycle | None = None

    @property
    def name(self) -> str:
        return self.platform.value

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def validate_config(self, config: PlatformConfig) -> None:
        """Check that every required key is present and non-empty.

        Raises
        ------
        ConfigError
            Listing the missing keys.
        """
        missing = config.missing(self.required_keys)
        if missing:
            raise ConfigError(
                message=f"{self.name}: missing required config keys: {', '.join(missing)}",
                context={"platform": self.name, "missing_keys": missing},
            )

    def initialize(self, config: PlatformConfig) -> None:
        """Validate *config*, then set up credentials and sessions."""
        self.validate_config(config)
        self.config = config
        self._initialize(config)
        self.initialized = True
        log.info(
            "Adapter initialized",
            extra={"extra_fields": {"platform": self.name}},
        )

    def _initialize(self, config: PlatformConfig) -> None:
        """Platform hook run by :meth:`initialize` after validation."""

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    @abstractmethod
    def transform_content(self, content: PublishContent) -> None:
        """Convert ``content.blocks`` into ``content.body``."""

    @abstractmethod
    def process_resources(self, content: PublishContent) -> None:
        """Re-host embedded images and rewrite ``content.body``."""

    @abstractmethod
    def save_to_draft(self, content: PublishContent) -> PublishResult:
        """Create a non-public artifact and return its publish id."""

    @abstractmethod
    def publish(self, draft_id: str, content: PublishContent) -> PublishResult:
        """Promote the draft identified by *draft_id* to public."""

    @abstractmethod
    def get_publish_status(self, publish_id: str) -> PublishResult:
        """Look up the current state of a draft or publication."""

    def attempt_dir(self, content: PublishContent) -> Path:
        """Directory that holds the images downloaded for one attempt."""
        return Path(self.engine_config.work_dir) / self.name / content.id

    def cleanup(self, content: PublishContent) -> None:
        """Remove the attempt's download directory, if one was created."""
        path = self.attempt_dir(content)
        if path.exists():
            shutil.rmtree(path)
            log.debug("Removed attempt directory", extra={"extra_fields": {"path": str(path)}})

    def close(self) -> None:
        """Release process-lifetime resources such as HTTP clients."""

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def auto_publish(self, config: PlatformConfig | None = None) -> bool:
        cfg = config or self.config
        if cfg is None:
            return self.auto_publish_default
        return cfg.get_bool("auto_publish", self.auto_publish_default)

    def publish_direct(
        self,
        content: PublishContent,
        config: PlatformConfig | None = None,
    ) -> PublishResult:
        """Run transform, resources and draft, then publish if enabled.

        A failure in any mandatory stage is raised with platform and stage
        context attached.  A failure of the optional publish step after a
        successful draft is reported in the draft result's metadata under
        ``publish_error``; the result stays successful.

        Parameters
        ----------
        content:
            Fresh per-attempt content holding the source blocks.
        config:
            Overrides the config given to :meth:`initialize`.
        """
        if not self.initialized:
            raise PublishError(
                message=f"{self.name}: adapter is not initialized",
                context={"platform": self.name},
            )
        cfg = config or self.config
        lifecycle = AdapterLifecycle(self.name, content.id)
        self.last_lifecycle = lifecycle

        self._run_stage(lifecycle, "transform", AdapterStage.TRANSFORMED,
                        self.transform_content, content)
        if self.draft_before_resources:
            draft = self._run_stage(lifecycle, "draft", AdapterStage.DRAFTED,
                                    self.save_to_draft, content)
            self._run_stage(lifecycle, "resources", AdapterStage.RESOURCES_PROCESSED,
                            self.process_resources, content)
            lifecycle.transition(AdapterStage.DRAFTED)
        else:
            self._run_stage(lifecycle, "resources", AdapterStage.RESOURCES_PROCESSED,
                            self.process_resources, content)
            draft = self._run_stage(lifecycle, "draft", AdapterStage.DRAFTED,
                                    self.save_to_draft, content)

        draft.platform = self.name
        if not self.auto_publish(cfg):
            draft.metadata.setdefault("publish_status", "draft")
            return draft

        try:
            result = self._run_stage(lifecycle, "publish", AdapterStage.PUBLISHED,
                                     self.publish, draft.publish_id, content)
        except CrosspostError as exc:
            log.warning(
                "Auto-publish failed after draft was saved",
                extra={
                    "extra_fields": {
                        "platform": self.name,
                        "content_id": content.id,
                        "draft_id": draft.publish_id,
                        "error": exc.message,
                    }
                },
            )
            draft.metadata["publish_error"] = exc.message
            return draft

        result.platform = self.name
        result.metadata = {**draft.metadata, **result.metadata}
        result.publish_id = result.publish_id or draft.publish_id
        result.url = result.url or draft.url
        return result

    def _run_stage(
        self,
        lifecycle: AdapterLifecycle,
        stage: str,
        target: AdapterStage,
        func: Callable[..., Any],
        *args: Any,
    ) -> Any:
        try:
            value = func(*args)
        except Exception as exc:
            lifecycle.fail()
            error = wrap_stage_error(self.name, stage, exc)
            log.error(
                "Adapter stage failed",
                extra={
                    "extra_fields": {
                        "platform": self.name,
                        "stage": stage,
                        "content_id": lifecycle.content_id,
                        "error_code": error.code,
                        "error": error.message,
                    }
                },
            )
            if error is exc:
                raise
            raise error from exc
        lifecycle.transition(target)
        return value

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _require_config(self) -> PlatformConfig:
        if self.config is None:
            raise PublishError(
                message=f"{self.name}: adapter is not initialized",
                context={"platform": self.name},
            )
        return self.config

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)
