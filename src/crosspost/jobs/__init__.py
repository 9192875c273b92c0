"""Durable job and platform store."""

from __future__ import annotations

from .store import Claim, JobStore, PlatformRecord
from .tables import Base, JobRow, PlatformRow

__all__ = [
    "Base",
    "Claim",
    "JobRow",
    "JobStore",
    "PlatformRecord",
    "PlatformRow",
]
