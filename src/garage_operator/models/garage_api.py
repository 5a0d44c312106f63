"""
Pydantic models for Garage admin API payloads.

Only the fields the operator reads are declared; everything else in the
responses is ignored.
"""

from typing import Any

from pydantic import BaseModel, Field


class NodeRoleChange(BaseModel):
    """A staged layout change. Removals carry ``remove`` instead of a role."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    id: str
    remove: bool = False
    zone: str | None = None
    capacity: int | None = None
    tags: list[str] = Field(default_factory=list)


class ClusterLayout(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    version: int = 0
    roles: list[dict[str, Any]] = Field(default_factory=list)
    staged_role_changes: list[NodeRoleChange] = Field(
        default_factory=list, alias="stagedRoleChanges"
    )


class NodesInfo(BaseModel):
    """Answer of ``GET /status``."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    node: str
    garage_version: str | None = Field(None, alias="garageVersion")
    layout: ClusterLayout = Field(default_factory=ClusterLayout)

    def is_staged(self) -> bool:
        """Whether a role update for the local node is already staged."""
        return any(
            change.id == self.node and not change.remove
            for change in self.layout.staged_role_changes
        )


class BucketQuotasInfo(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    max_size: int | None = Field(None, alias="maxSize")
    max_objects: int | None = Field(None, alias="maxObjects")


class BucketInfo(BaseModel):
    """Answer of the bucket endpoints."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    id: str | None = None
    global_aliases: list[str] = Field(default_factory=list, alias="globalAliases")
    quotas: BucketQuotasInfo | None = None


class KeyInfo(BaseModel):
    """Answer of the key endpoints."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    name: str = ""
    access_key_id: str = Field("", alias="accessKeyId")
    secret_access_key: str | None = Field(None, alias="secretAccessKey")


class KeyListEntry(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    id: str
    name: str = ""
