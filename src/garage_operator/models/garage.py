"""
Pydantic models for Garage instance resources.

This module defines type-safe data models for Garage instance specifications
and status, including the defaults applied to ports, region and replication
mode.
"""

from collections.abc import Mapping
from typing import Any

import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator

from ..constants import (
    ADMIN_SECRET_KIND,
    DEFAULT_ADMIN_PORT,
    DEFAULT_REGION,
    DEFAULT_REPLICATION_MODE,
    DEFAULT_RPC_PORT,
    DEFAULT_S3_API_PORT,
    DEFAULT_S3_WEB_PORT,
    RPC_SECRET_KIND,
)
from ..errors import IllegalGarage
from .common import (
    GarageState,
    ResourceMetadata,
    SecretReference,
    describe_validation_error,
)


class GaragePorts(BaseModel):
    """Ports exposed by a Garage instance."""

    model_config = {"populate_by_name": True}

    admin: int = Field(DEFAULT_ADMIN_PORT, ge=1, le=65535)
    rpc: int = Field(DEFAULT_RPC_PORT, ge=1, le=65535)
    s3_api: int = Field(DEFAULT_S3_API_PORT, alias="s3Api", ge=1, le=65535)
    s3_web: int = Field(DEFAULT_S3_WEB_PORT, alias="s3Web", ge=1, le=65535)


class GarageConfig(BaseModel):
    """Service level configuration rendered into garage.toml."""

    model_config = {"populate_by_name": True}

    ports: GaragePorts = Field(default_factory=GaragePorts)
    region: str = Field(DEFAULT_REGION, description="S3 region and layout zone")
    replication_mode: str = Field(
        DEFAULT_REPLICATION_MODE,
        alias="replicationMode",
        description="Garage replication mode",
    )


class GarageSecrets(BaseModel):
    """Optional references to user supplied admin and RPC secrets."""

    model_config = {"populate_by_name": True}

    admin: SecretReference | None = Field(
        None, description="Secret holding the admin API token"
    )
    rpc: SecretReference | None = Field(
        None, description="Secret holding the RPC secret"
    )


class GarageStorage(BaseModel):
    """Persistent volume claims backing a Garage instance."""

    model_config = {"populate_by_name": True}

    meta: str = Field(..., min_length=1, description="Claim holding metadata")
    data: list[str] = Field(
        ...,
        min_length=1,
        description="Ordered claims holding data, index selects the mount path",
    )

    @field_validator("data")
    @classmethod
    def validate_data_claims(cls, v: list[str]) -> list[str]:
        if any(not claim for claim in v):
            raise ValueError("data claim names must not be empty")
        return v


class GarageSpec(BaseModel):
    """Specification of a Garage instance."""

    model_config = {"populate_by_name": True}

    auto_layout: bool = Field(
        False,
        alias="autoLayout",
        description="Register the node into the Garage layout automatically",
    )
    config: GarageConfig = Field(default_factory=GarageConfig)
    secrets: GarageSecrets = Field(default_factory=GarageSecrets)
    storage: GarageStorage


class GarageStatus(BaseModel):
    """Observed status of a Garage instance."""

    model_config = {"populate_by_name": True}

    state: GarageState = Field(GarageState.CREATING)
    capacity: int = Field(0, description="Sum of data claim capacities in bytes")
    observed_generation: int | None = Field(None, alias="observedGeneration")


class Garage(BaseModel):
    """A Garage custom resource."""

    model_config = {"populate_by_name": True}

    metadata: ResourceMetadata
    spec: GarageSpec
    status: GarageStatus = Field(default_factory=GarageStatus)

    @model_validator(mode="after")
    def validate_secret_namespaces(self) -> "Garage":
        # The pod mounts both secrets from its own namespace
        refs = {
            ADMIN_SECRET_KIND: self.spec.secrets.admin,
            RPC_SECRET_KIND: self.spec.secrets.rpc,
        }
        for kind, ref in refs.items():
            if ref is not None and ref.namespace not in (None, self.metadata.namespace):
                raise ValueError(
                    f"secrets.{kind} must be in namespace {self.metadata.namespace}, "
                    f"not {ref.namespace}"
                )
        return self

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "Garage":
        """Parse a raw Kubernetes object, raising IllegalGarage if invalid."""
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
            raise IllegalGarage(name, describe_validation_error(e)) from e

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    def prefixed_name(self, suffix: str) -> str:
        """Name of a sub-object derived from this instance."""
        return f"{self.name}-{suffix}"

    def secret_name(self, kind: str) -> str:
        """Name of the admin or rpc secret, honouring spec references."""
        ref = {
            ADMIN_SECRET_KIND: self.spec.secrets.admin,
            RPC_SECRET_KIND: self.spec.secrets.rpc,
        }[kind]
        if ref is not None and ref.name:
            return ref.name
        return self.prefixed_name(f"{kind}.key")

    def service_host(self) -> str:
        """Cluster DNS name of the instance's API service."""
        return f"{self.prefixed_name('api')}.{self.namespace}.svc.cluster.local"

    def admin_url(self) -> str:
        return f"http://{self.service_host()}:{self.spec.config.ports.admin}"

    def s3_endpoint(self) -> str:
        return f"http://{self.service_host()}:{self.spec.config.ports.s3_api}"

