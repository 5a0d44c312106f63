"""Data models for Garage operator resources."""

from .access_key import AccessKey, AccessKeySpec, AccessKeyStatus, KeyPermissions
from .bucket import Bucket, BucketQuotas, BucketSpec, BucketStatus
from .common import (
    GarageState,
    NamespacedReference,
    ResourceMetadata,
    ResourceState,
    SecretReference,
    is_valid_transition,
)
from .garage import Garage, GarageSpec, GarageStatus

__all__ = [
    "AccessKey",
    "AccessKeySpec",
    "AccessKeyStatus",
    "Bucket",
    "BucketQuotas",
    "BucketSpec",
    "BucketStatus",
    "Garage",
    "GarageSpec",
    "GarageState",
    "GarageStatus",
    "KeyPermissions",
    "NamespacedReference",
    "ResourceMetadata",
    "ResourceState",
    "SecretReference",
    "is_valid_transition",
]
