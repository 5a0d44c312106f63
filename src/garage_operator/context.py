"""
Per-reconciliation context shared by the state machines.

A ``Context`` is built once at startup and handed, unchanged, to every
reconciliation pass. The bucket and access-key machines receive a narrower
context carrying the instance they belong to and its admin client.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .constants import OPERATOR_NAME
from .observability.metrics import Metrics

if TYPE_CHECKING:
    from .models import Bucket, Garage
    from .utils.garage_admin import GarageAdminClient
    from .utils.kubernetes import KubeClient


@dataclass
class Diagnostics:
    """Last-event clock exposed on the diagnostics endpoint."""

    last_event: datetime = field(default_factory=lambda: datetime.now(UTC))
    reporter: str = OPERATOR_NAME
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def touch(self) -> None:
        async with self._lock:
            self.last_event = datetime.now(UTC)

    async def snapshot(self) -> dict[str, Any]:
        async with self._lock:
            return {
                "lastEvent": self.last_event.isoformat(),
                "reporter": self.reporter,
            }


@dataclass(frozen=True)
class Context:
    """Collaborators available to every reconciliation."""

    kube: "KubeClient"
    metrics: Metrics
    diagnostics: Diagnostics
    garage_version: str


@dataclass(frozen=True)
class BucketContext:
    """Context of the bucket machine: the owning instance and its admin API."""

    context: Context
    garage: "Garage"
    admin: "GarageAdminClient"


@dataclass(frozen=True)
class AccessKeyContext:
    """Context of the access-key machine, including the referenced bucket."""

    context: Context
    garage: "Garage"
    admin: "GarageAdminClient"
    bucket: "Bucket | None"
