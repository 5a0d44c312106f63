"""
Shared reconciliation building blocks.

Every reconcilable kind implements the small ``Reconciler`` protocol:
``reconcile`` performs one idempotent step and returns an ``Action`` telling
the work queue when to look again, ``deploy_resources`` brings the cluster
objects owned by the resource in line with its spec. ``BaseReconciler``
only bundles the helpers the three implementations share.
"""

from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, TypeVar

from ..errors import NetworkError
from ..models import is_valid_transition
from ..observability.logging import OperatorLogger
from ..utils.garage_admin import GarageAdminError
from ..utils.kubernetes import KubeClient

ResourceT = TypeVar("ResourceT", contravariant=True)
ContextT = TypeVar("ContextT", contravariant=True)
T = TypeVar("T")


@dataclass(frozen=True)
class Action:
    """When the work queue should reconcile the instance again."""

    requeue_after: float | None

    @classmethod
    def requeue(cls, seconds: float) -> "Action":
        return cls(requeue_after=seconds)

    @classmethod
    def await_change(cls) -> "Action":
        """Only reconcile again when a watch event arrives."""
        return cls(requeue_after=None)

    def merge(self, other: "Action") -> "Action":
        """Keep the earliest requeue of two actions."""
        if self.requeue_after is None:
            return other
        if other.requeue_after is None:
            return self
        return Action(min(self.requeue_after, other.requeue_after))


class Reconciler(Protocol[ResourceT, ContextT]):
    """Capabilities of a reconcilable kind, parameterized by its context."""

    async def reconcile(self, resource: ResourceT, context: ContextT) -> Action: ...

    async def deploy_resources(self, resource: ResourceT, context: ContextT) -> None: ...


class BaseReconciler:
    """Helpers shared by the Garage, Bucket and AccessKey reconcilers."""

    resource_type = "resource"

    def __init__(self) -> None:
        self.logger = OperatorLogger(self.__class__.__name__)

    async def admin_call(self, call: Awaitable[T]) -> T:
        """Await an admin API call, reporting failures as NetworkError."""
        try:
            return await call
        except GarageAdminError as e:
            raise NetworkError(str(e), status_code=e.status_code, cause=e) from e

    async def write_status(
        self,
        kube: KubeClient,
        kind: str,
        plural: str,
        namespace: str,
        name: str,
        status: dict[str, Any],
    ) -> None:
        await kube.apply_status(kind, plural, namespace, name, status)

    def log_transition(
        self, name: str, namespace: str, old_state: StrEnum, new_state: StrEnum
    ) -> None:
        if not is_valid_transition(old_state, new_state):
            self.logger.logger.warning(
                f"Unexpected {self.resource_type} transition of {namespace}/{name}: "
                f"{old_state} -> {new_state}"
            )
        self.logger.log_state_transition(
            self.resource_type, name, namespace, str(old_state), str(new_state)
        )
