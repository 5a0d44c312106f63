"""
Pydantic models for Bucket resources.

A Bucket names its Garage instance through ``garageRef`` and optionally
carries quotas which the operator enforces unconditionally.
"""

from collections.abc import Mapping
from typing import Any

import pydantic
from pydantic import BaseModel, Field, field_validator

from ..errors import IllegalBucket
from .common import (
    NamespacedReference,
    ResourceMetadata,
    ResourceState,
    describe_validation_error,
)


class BucketQuotas(BaseModel):
    """Quotas applied to a bucket."""

    model_config = {"populate_by_name": True}

    max_size: str | None = Field(
        None,
        alias="maxSize",
        description="Maximum bucket size as a quantity, e.g. 5Gi or 100M",
    )
    max_object_count: int | None = Field(
        None, alias="maxObjectCount", ge=0, description="Maximum number of objects"
    )

    @field_validator("max_size", mode="before")
    @classmethod
    def coerce_max_size(cls, v):
        # Quantities may arrive as bare integers from int-or-string fields
        if isinstance(v, int | float) and not isinstance(v, bool):
            return str(v)
        return v


class BucketSpec(BaseModel):
    """Specification of a bucket."""

    model_config = {"populate_by_name": True}

    garage_ref: NamespacedReference = Field(..., alias="garageRef")
    quotas: BucketQuotas = Field(default_factory=BucketQuotas)


class BucketStatus(BaseModel):
    """Observed status of a bucket."""

    model_config = {"populate_by_name": True}

    id: str = Field("", description="Garage bucket id, empty until created")
    state: ResourceState = Field(ResourceState.CREATING)
    observed_generation: int | None = Field(None, alias="observedGeneration")


class Bucket(BaseModel):
    """A Bucket custom resource."""

    model_config = {"populate_by_name": True}

    metadata: ResourceMetadata
    spec: BucketSpec
    status: BucketStatus = Field(default_factory=BucketStatus)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "Bucket":
        """Parse a raw Kubernetes object, raising IllegalBucket if invalid."""
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
            raise IllegalBucket(name, describe_validation_error(e)) from e

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace
