"""
Pydantic models for AccessKey resources.

An AccessKey grants permissions on one bucket and asks the operator to
persist the issued credentials in a Kubernetes secret.
"""

from collections.abc import Mapping
from typing import Any

import pydantic
from pydantic import BaseModel, Field

from ..errors import IllegalAccessKey
from .common import (
    NamespacedReference,
    ResourceMetadata,
    ResourceState,
    SecretReference,
    describe_validation_error,
)


class KeyPermissions(BaseModel):
    """Permissions granted to a key on its bucket."""

    model_config = {"populate_by_name": True}

    read: bool = False
    write: bool = False
    owner: bool = False

    def friendly(self) -> str:
        """Render as "RWO" with "-" for every missing permission."""
        return "".join(
            flag if granted else "-"
            for flag, granted in (
                ("R", self.read),
                ("W", self.write),
                ("O", self.owner),
            )
        )


class AccessKeySpec(BaseModel):
    """Specification of an access key."""

    model_config = {"populate_by_name": True}

    garage_ref: NamespacedReference = Field(..., alias="garageRef")
    bucket_ref: NamespacedReference = Field(..., alias="bucketRef")
    permissions: KeyPermissions = Field(default_factory=KeyPermissions)
    secret_ref: SecretReference = Field(
        default_factory=SecretReference,
        alias="secretRef",
        description="Secret receiving the issued credentials",
    )


class AccessKeyStatus(BaseModel):
    """Observed status of an access key."""

    model_config = {"populate_by_name": True}

    id: str = Field("", description="Garage access key id, empty until created")
    state: ResourceState = Field(ResourceState.CREATING)
    permissions_friendly: str = Field("", alias="permissionsFriendly")
    observed_generation: int | None = Field(None, alias="observedGeneration")


class AccessKey(BaseModel):
    """An AccessKey custom resource."""

    model_config = {"populate_by_name": True}

    metadata: ResourceMetadata
    spec: AccessKeySpec
    status: AccessKeyStatus = Field(default_factory=AccessKeyStatus)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "AccessKey":
        """Parse a raw Kubernetes object, raising IllegalAccessKey if invalid."""
        name = (body.get("metadata") or {}).get("name", "<unknown>")
        try:
            return cls.model_validate(
                {
                    "metadata": body.get("metadata") or {},
                    "spec": body.get("spec") or {},
                    "status": body.get("status") or {},
                }
            )
        except pydantic.ValidationError as e:
            raise IllegalAccessKey(name, describe_validation_error(e)) from e

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def secret_location(self) -> tuple[str, str]:
        """Namespace and name of the credential secret."""
        ref = self.spec.secret_ref
        name = ref.name or f"{self.name}.{self.spec.bucket_ref.name}.key"
        return (ref.namespace or self.namespace, name)
