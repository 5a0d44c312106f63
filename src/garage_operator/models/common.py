"""
Common models shared across the Garage custom resources.

This module defines object metadata, cross-resource references and the
reconciliation state enums with their valid transitions.
"""

from enum import StrEnum

import pydantic
from pydantic import BaseModel, Field


class ResourceMetadata(BaseModel):
    """The subset of Kubernetes object metadata the operator relies on."""

    model_config = {"populate_by_name": True}

    name: str = Field(..., description="Name of the resource")
    namespace: str = Field("", description="Namespace of the resource")
    uid: str = Field("", description="Unique id assigned by the API server")
    generation: int | None = Field(None, description="Spec generation")
    resource_version: str | None = Field(None, alias="resourceVersion")
    deletion_timestamp: str | None = Field(None, alias="deletionTimestamp")
    finalizers: list[str] = Field(default_factory=list)


class NamespacedReference(BaseModel):
    """Reference to another custom resource by namespace and name."""

    model_config = {"populate_by_name": True}

    namespace: str = Field(..., min_length=1, description="Namespace of the target")
    name: str = Field(..., min_length=1, description="Name of the target")

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class SecretReference(BaseModel):
    """
    Reference to a Kubernetes secret.

    When the namespace is omitted the secret lives next to the resource
    referencing it.
    """

    model_config = {"populate_by_name": True}

    name: str = Field("", description="Name of the secret")
    namespace: str | None = Field(None, description="Namespace of the secret")


class GarageState(StrEnum):
    """Lifecycle states of a Garage instance."""

    CREATING = "Creating"
    LAYING_OUT = "LayingOut"
    READY = "Ready"
    ERRORED = "Errored"


class ResourceState(StrEnum):
    """Lifecycle states shared by buckets and access keys."""

    CREATING = "Creating"
    CONFIGURING = "Configuring"
    READY = "Ready"
    ERRORED = "Errored"


# Valid successors of each state. Staying in the same state is always allowed
# and any state may fall into Errored.
GARAGE_TRANSITIONS: dict[GarageState, frozenset[GarageState]] = {
    GarageState.CREATING: frozenset({GarageState.LAYING_OUT, GarageState.READY}),
    GarageState.LAYING_OUT: frozenset({GarageState.READY}),
    GarageState.READY: frozenset(),
    GarageState.ERRORED: frozenset({GarageState.CREATING}),
}

RESOURCE_TRANSITIONS: dict[ResourceState, frozenset[ResourceState]] = {
    ResourceState.CREATING: frozenset({ResourceState.CONFIGURING}),
    ResourceState.CONFIGURING: frozenset({ResourceState.READY, ResourceState.CREATING}),
    ResourceState.READY: frozenset({ResourceState.CONFIGURING, ResourceState.CREATING}),
    ResourceState.ERRORED: frozenset({ResourceState.CREATING}),
}


def is_valid_transition(current: StrEnum, target: StrEnum) -> bool:
    """Check whether moving from ``current`` to ``target`` is allowed."""
    if current == target or target.value == "Errored":
        return True
    if isinstance(current, GarageState):
        return target in GARAGE_TRANSITIONS[current]
    return target in RESOURCE_TRANSITIONS[current]  # type: ignore[index]


def describe_validation_error(error: pydantic.ValidationError) -> str:
    """Flatten a pydantic error into a single human readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)
