"""Destination platform adapters and their factory."""

from __future__ import annotations

from crosspost.config import CrosspostConfig
from crosspost.errors import PlatformRegistryError

from .base import Platform, PublisherAdapter
from .blog import BlogAdapter
from .git import Repository
from .lifecycle import AdapterLifecycle
from .substack import SubstackAdapter
from .wechat import WechatAdapter

_ADAPTERS: dict[Platform, type[PublisherAdapter]] = {
    Platform.AL_FOLIO: BlogAdapter,
    Platform.WECHAT: WechatAdapter,
    Platform.SUBSTACK: SubstackAdapter,
}


def create_adapter(
    platform: Platform | str,
    engine_config: CrosspostConfig | None = None,
    **kwargs: object,
) -> PublisherAdapter:
    """Create the adapter for *platform*.

    Parameters
    ----------
    platform:
        A :class:`Platform` or its canonical key.
    engine_config:
        Engine-wide settings handed to the adapter.
    **kwargs:
        Adapter-specific collaborators, e.g. ``http_transport`` or
        ``repository``.

    Raises
    ------
    PlatformRegistryError
        If *platform* is not a supported platform key.
    """
    try:
        platform = Platform(platform)
    except ValueError as exc:
        raise PlatformRegistryError(
            message=f"Unknown platform: {platform!r}",
            context={"platform": str(platform)},
            cause=exc,
        ) from exc
    return _ADAPTERS[platform](engine_config, **kwargs)


__all__ = [
    "AdapterLifecycle",
    "BlogAdapter",
    "Platform",
    "PublisherAdapter",
    "Repository",
    "SubstackAdapter",
    "WechatAdapter",
    "create_adapter",
]
