"""Engine and platform configuration for crosspost.

:class:`CrosspostConfig` captures every tuneable knob of the engine:
source-provider credentials, the job-store URL, timeouts, retry policy and
the per-platform :class:`PlatformConfig` sections.  Reading configuration
files is left to the caller; :meth:`CrosspostConfig.from_mapping` accepts
an already-parsed mapping.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

# Setting keys whose values never appear in reprs or logs.
_SECRET_KEY_MARKERS: frozenset[str] = frozenset({
    "secret",
    "token",
    "cookie",
    "password",
})

_TRUE_VALUES: frozenset[str] = frozenset({"true", "1", "yes", "on"})


def _mask(value: str) -> str:
    return f"...{value[-4:]}" if len(value) >= 8 else "****"


# ---------------------------------------------------------------------------
# Per-platform configuration
# ---------------------------------------------------------------------------

@dataclass
class PlatformConfig:
    """String-keyed settings for one destination platform.

    Parameters
    ----------
    platform_name:
        Canonical platform key (``"al-folio"``, ``"wechat-official"``,
        ``"substack"``).
    enabled:
        Disabled platforms are skipped by the publish manager without
        creating a job row.
    settings:
        Platform-specific keys such as ``repo_url`` or ``app_secret``.
        Values are kept as strings, matching how operators write them.
    """

    platform_name: str
    enabled: bool = True
    settings: dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: str = "") -> str:
        value = self.settings.get(key)
        return default if value is None or value == "" else str(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.settings.get(key)
        if value is None or value == "":
            return default
        return str(value).strip().lower() in _TRUE_VALUES

    def get_int(self, key: str, default: int = 0) -> int:
        try:
            return int(self.settings.get(key, default))
        except (TypeError, ValueError):
            return default

    def missing(self, keys: Iterable[str]) -> list[str]:
        """Return the subset of *keys* that are absent or empty."""
        return [key for key in keys if not self.settings.get(key)]

    def __repr__(self) -> str:
        shown = {
            key: _mask(str(value))
            if any(marker in key.lower() for marker in _SECRET_KEY_MARKERS)
            else value
            for key, value in self.settings.items()
        }
        return (
            f"PlatformConfig(platform_name={self.platform_name!r}, "
            f"enabled={self.enabled!r}, settings={shown!r})"
        )


# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------

@dataclass
class CrosspostConfig:
    """Complete configuration for a crosspost engine instance.

    Parameters
    ----------
    notion_token:
        Source-provider integration token.  Never logged.
    notion_version:
        Value of the ``Notion-Version`` header.
    notion_base_url:
        Source-provider API root URL.
    notion_database_id:
        Database queried for pages awaiting publication.
    database_url:
        SQLAlchemy URL of the durable job/platform store.
    timeout_seconds:
        Per-request HTTP timeout.
    download_timeout_seconds:
        Timeout for downloading a single image.
    attempt_timeout_seconds:
        Upper bound on one (page, platform) publish attempt.
    git_timeout_seconds:
        Timeout for a single git subprocess call.
    retry_max_attempts:
        Maximum attempts per request for retryable HTTP errors.
    retry_base_delay:
        Base delay (seconds) for exponential backoff.
    retry_max_delay:
        Upper cap (seconds) on computed backoff delay.
    retry_jitter:
        Randomise backoff intervals between 50 % and 100 %.
    rate_limit_rps:
        Client-side request pacing (token bucket).
    sync_interval_seconds:
        Interval between scheduled publish cycles.
    pending_page_limit:
        Maximum number of pages picked up per cycle.
    stale_job_seconds:
        ``in_progress`` jobs older than this are marked failed at the start
        of a cycle so they can be retried.
    publish_status:
        Source-page status value that marks a page as ready to publish.
    work_dir:
        Directory used for image downloads by REST platforms.
    platforms:
        Canonical platform key to :class:`PlatformConfig`.
    """

    # ── Source provider ────────────────────────────────────────────────
    notion_token: str = ""

    notion_version: str = "2022-06-28"

    notion_base_url: str = "https://api.notion.com/v1"

    notion_database_id: str = ""

    # ── Job store ──────────────────────────────────────────────────────
    database_url: str = "sqlite:///crosspost.db"

    # ── Timeouts ───────────────────────────────────────────────────────
    timeout_seconds: float = 60.0

    download_timeout_seconds: float = 30.0

    attempt_timeout_seconds: float = 600.0

    git_timeout_seconds: float = 120.0

    # ── Retry & rate ───────────────────────────────────────────────────
    retry_max_attempts: int = 3

    retry_base_delay: float = 1.0

    retry_max_delay: float = 30.0

    retry_jitter: bool = True

    rate_limit_rps: float = 3.0

    # ── Scheduling ─────────────────────────────────────────────────────
    sync_interval_seconds: float = 1800.0

    pending_page_limit: int = 10

    stale_job_seconds: float = 3600.0

    publish_status: str = "Done"

    # ── Resources ──────────────────────────────────────────────────────
    work_dir: str = "./workspace/images"

    # ── Platforms ──────────────────────────────────────────────────────
    platforms: dict[str, PlatformConfig] = field(default_factory=dict)

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        parsed = urlparse(self.notion_base_url)
        if parsed.scheme == "http" and parsed.hostname not in (
            "localhost",
            "127.0.0.1",
            "::1",
        ):
            raise ValueError(
                f"notion_base_url uses insecure HTTP for non-local host "
                f"'{parsed.hostname}'. Use HTTPS to protect the token."
            )

        for name in (
            "timeout_seconds",
            "download_timeout_seconds",
            "attempt_timeout_seconds",
            "git_timeout_seconds",
            "rate_limit_rps",
            "sync_interval_seconds",
            "stale_job_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")
        if self.retry_max_attempts < 1:
            raise ValueError(f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}")
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.retry_max_delay < 0:
            raise ValueError(f"retry_max_delay must be >= 0, got {self.retry_max_delay}")
        if self.pending_page_limit < 1:
            raise ValueError(f"pending_page_limit must be >= 1, got {self.pending_page_limit}")

    def platform(self, name: str) -> PlatformConfig | None:
        return self.platforms.get(name)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CrosspostConfig:
        """Build a config from an already-parsed mapping.

        Platform sections live under ``"platforms"``; each section may carry
        an ``enabled`` flag and either a nested ``settings`` mapping or
        flat string keys.

        Raises
        ------
        ValueError
            On unknown top-level keys or invalid values.
        """
        known = {f.name for f in dataclasses.fields(cls)} - {"platforms", "metrics"}
        unknown = set(data) - known - {"platforms"}
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        platforms: dict[str, PlatformConfig] = {}
        for name, section in (data.get("platforms") or {}).items():
            section = dict(section or {})
            enabled = section.pop("enabled", True)
            settings = section.pop("settings", None) or section
            platforms[name] = PlatformConfig(
                platform_name=name,
                enabled=str(enabled).lower() in _TRUE_VALUES
                if isinstance(enabled, str) else bool(enabled),
                settings={k: "" if v is None else str(v) for k, v in settings.items()},
            )

        kwargs = {key: value for key, value in data.items() if key in known}
        return cls(platforms=platforms, **kwargs)

    def __repr__(self) -> str:
        """Mask the token to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "notion_token":
                parts.append(f"notion_token='{_mask(val) if val else ''}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"CrosspostConfig({', '.join(parts)})"
