"""
Garage admin API client utilities.

This module provides a typed async interface to the Garage admin REST API
(v1) and the idempotent helpers the state machines build on. A client is
created per reconciliation pass from the owning Garage instance and its
admin token.

The client handles:
- Bearer token authentication
- Translating "not found" quirks of the API into ``None``
- Parsing Kubernetes quantities into byte counts for quotas
- Reporting answers that do not decode into the expected model as
  ``SerializationError``
"""

import base64
import binascii
import logging
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
import pydantic
from kubernetes.utils import parse_quantity

from ..constants import (
    ADMIN_API_PREFIX,
    ADMIN_CONNECT_TIMEOUT,
    ADMIN_REQUEST_TIMEOUT,
    ADMIN_SECRET_KIND,
    FIRST_LAYOUT_VERSION,
    LAYOUT_INSTANCE_TAG_PREFIX,
    LAYOUT_OWNER_TAG,
    SECRET_DATA_KEY,
)
from ..errors import IllegalBucket, MissingSecret, MissingSecretData, SerializationError
from ..models.garage_api import BucketInfo, KeyInfo, KeyListEntry, NodesInfo

if TYPE_CHECKING:
    from ..models import BucketQuotas, Garage, KeyPermissions
    from .kubernetes import KubeClient

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


class GarageAdminError(Exception):
    """Error answered by, or raised while reaching, the Garage admin API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class LayoutOutcome(StrEnum):
    """Result of one layout step for an instance node."""

    COMMITTED = "committed"
    REQUESTED = "requested"
    PENDING = "pending"


def quantity_to_bytes(quantity: str) -> int:
    """
    Convert a Kubernetes quantity such as ``5Gi`` or ``100M`` to bytes.

    Raises:
        ValueError: If the quantity is malformed, negative or fractional
    """
    try:
        value = parse_quantity(quantity)
    except (ValueError, InvalidOperation) as e:
        raise ValueError(f"invalid quantity {quantity!r}") from e

    if value < 0 or value != value.to_integral_value():
        raise ValueError(f"quantity {quantity!r} is not a whole number of bytes")
    return int(value)


def sum_quantities(quantities: list[str]) -> int:
    """Sum quantities into a byte count, rounding fractions down."""
    total = Decimal(0)
    for quantity in quantities:
        total += parse_quantity(quantity)
    return int(total)


class GarageAdminClient:
    """Client for one Garage instance's admin API."""

    def __init__(
        self,
        base_url: str,
        token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Admin endpoint including the ``/v1`` prefix
            token: Admin bearer token
            transport: Optional transport, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(ADMIN_REQUEST_TIMEOUT, connect=ADMIN_CONNECT_TIMEOUT),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GarageAdminClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Make an authenticated request to the admin API.

        Raises:
            GarageAdminError: On non-2xx answers and transport failures
        """
        try:
            response = await self._client.request(
                method, endpoint, json=json, params=params
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            response_body = e.response.text or "<no content>"
            logger.debug(
                f"Request failed: {method} {endpoint} - HTTP {status_code}",
                extra={"http_status": status_code},
            )
            raise GarageAdminError(
                f"{method} {endpoint} failed: {response_body[:512]}",
                status_code=status_code,
                response_body=response_body,
            ) from e
        except httpx.HTTPError as e:
            raise GarageAdminError(f"{method} {endpoint} failed: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            request = response.request
            raise SerializationError(
                f"{request.method} {request.url.path} answered invalid JSON: {e}",
                cause=e,
            ) from e

    def _parse(self, response: httpx.Response, model: type[ModelT]) -> ModelT:
        """
        Decode a response body into ``model``.

        Raises:
            SerializationError: If the body is not JSON or does not fit the model
        """
        data = self._decode(response)
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise SerializationError(
                f"unexpected {model.__name__} from {response.request.url.path}: {e}",
                cause=e,
            ) from e

    def _parse_list(
        self, response: httpx.Response, model: type[ModelT]
    ) -> list[ModelT]:
        data = self._decode(response)
        if not isinstance(data, list):
            raise SerializationError(
                f"expected a list of {model.__name__} from {response.request.url.path}"
            )
        try:
            return [model.model_validate(item) for item in data]
        except pydantic.ValidationError as e:
            raise SerializationError(
                f"unexpected {model.__name__} from {response.request.url.path}: {e}",
                cause=e,
            ) from e

    # Cluster layout

    async def get_nodes(self) -> NodesInfo:
        response = await self._make_request("GET", "/status")
        return self._parse(response, NodesInfo)

    async def add_layout(self, changes: list[dict[str, Any]]) -> None:
        """Stage role changes. Re-staging an identical role is a no-op."""
        await self._make_request("POST", "/layout", json=changes)

    async def apply_layout(self, version: int) -> None:
        await self._make_request("POST", "/layout/apply", json={"version": version})

    async def layout_instance(
        self, garage: "Garage", capacity: int
    ) -> LayoutOutcome:
        """
        Register the instance's node into the cluster layout.

        Returns:
            COMMITTED if a layout is already committed, REQUESTED if the role
            was staged by this call, PENDING if it was staged earlier
        """
        nodes = await self.get_nodes()
        if nodes.layout.version != 0:
            return LayoutOutcome.COMMITTED

        outcome = LayoutOutcome.PENDING
        if not nodes.is_staged():
            outcome = LayoutOutcome.REQUESTED
            await self.add_layout(
                [
                    {
                        "id": nodes.node,
                        "zone": garage.spec.config.region,
                        "capacity": capacity,
                        "tags": [
                            LAYOUT_OWNER_TAG,
                            f"{LAYOUT_INSTANCE_TAG_PREFIX}{garage.name}",
                        ],
                    }
                ]
            )

        await self.apply_layout(FIRST_LAYOUT_VERSION)
        return outcome

    # Buckets

    async def get_bucket_info(self, name: str) -> BucketInfo | None:
        """Look a bucket up by global alias, returning None if it is missing."""
        try:
            response = await self._make_request(
                "GET", "/bucket", params={"globalAlias": name}
            )
        except GarageAdminError as e:
            if e.status_code == 404:
                return None
            raise

        # Misses may be answered with 200 and an empty bucket
        if not response.content:
            return None
        bucket = self._parse(response, BucketInfo)
        if not bucket.id:
            return None
        return bucket

    async def create_bucket(self, global_alias: str) -> BucketInfo:
        response = await self._make_request(
            "POST", "/bucket", json={"globalAlias": global_alias}
        )
        return self._parse(response, BucketInfo)

    async def update_bucket(
        self,
        bucket_id: str,
        quotas: dict[str, int | None],
        website_access: dict[str, Any] | None = None,
    ) -> BucketInfo:
        body: dict[str, Any] = {"quotas": quotas}
        if website_access is not None:
            body["websiteAccess"] = website_access
        response = await self._make_request(
            "PUT", "/bucket", params={"id": bucket_id}, json=body
        )
        return self._parse(response, BucketInfo)

    async def list_buckets(self) -> list[BucketInfo]:
        response = await self._make_request("GET", "/bucket")
        return self._parse_list(response, BucketInfo)

    async def delete_bucket(self, bucket_id: str) -> None:
        await self._make_request("DELETE", "/bucket", params={"id": bucket_id})

    async def ensure_bucket(self, name: str) -> str:
        """Return the id of the bucket aliased ``name``, creating it if needed."""
        existing = await self.get_bucket_info(name)
        if existing is not None:
            return existing.id or ""
        logger.info(f"Creating Garage bucket {name}")
        created = await self.create_bucket(name)
        return created.id or ""

    async def set_bucket_quotas(
        self, bucket_name: str, bucket_id: str, quotas: "BucketQuotas"
    ) -> None:
        """
        Apply quotas unconditionally; missing values lift the limit.

        Raises:
            IllegalBucket: If ``maxSize`` is not a valid quantity
        """
        max_size = None
        if quotas.max_size is not None:
            try:
                max_size = quantity_to_bytes(quotas.max_size)
            except ValueError as e:
                raise IllegalBucket(bucket_name, f"quotas.maxSize: {e}") from e

        await self.update_bucket(
            bucket_id,
            {"maxSize": max_size, "maxObjects": quotas.max_object_count},
        )

    # Keys

    async def get_key(self, name: str, show_secret: bool = False) -> KeyInfo | None:
        """Look a key up by name, returning None if no key has exactly that name."""
        params: dict[str, Any] = {"search": name}
        if show_secret:
            params["showSecretKey"] = "true"
        try:
            response = await self._make_request("GET", "/key", params=params)
        except GarageAdminError as e:
            if e.status_code in (400, 404):
                return None
            raise

        key = self._parse(response, KeyInfo)
        # Search also matches on prefixes of ids and names
        if key.name != name or not key.access_key_id:
            return None
        return key

    async def add_key(self, name: str) -> KeyInfo:
        response = await self._make_request("POST", "/key", json={"name": name})
        return self._parse(response, KeyInfo)

    async def list_keys(self) -> list[KeyListEntry]:
        response = await self._make_request("GET", "/key", params={"list": ""})
        return self._parse_list(response, KeyListEntry)

    async def delete_key(self, key_id: str) -> None:
        await self._make_request("DELETE", "/key", params={"id": key_id})

    async def allow_bucket_key(
        self, bucket_id: str, access_key_id: str, permissions: "KeyPermissions"
    ) -> None:
        await self._make_request(
            "POST",
            "/bucket/allow",
            json={
                "bucketId": bucket_id,
                "accessKeyId": access_key_id,
                "permissions": {
                    "read": permissions.read,
                    "write": permissions.write,
                    "owner": permissions.owner,
                },
            },
        )

    async def ensure_key(self, name: str) -> str:
        """Return the access key id of the key named ``name``, creating it if needed."""
        existing = await self.get_key(name, show_secret=False)
        if existing is not None:
            return existing.access_key_id
        logger.info(f"Creating Garage access key {name}")
        created = await self.add_key(name)
        return created.access_key_id


async def read_admin_token(garage: "Garage", kube: "KubeClient") -> str:
    """
    Read the admin token of a Garage instance from its secret.

    Raises:
        MissingSecret: If the secret does not exist
        MissingSecretData: If the secret has no usable ``key`` entry
    """
    secret_name = garage.secret_name(ADMIN_SECRET_KIND)
    secret = await kube.get_secret(garage.namespace, secret_name)
    if secret is None:
        raise MissingSecret(secret_name)

    encoded = (secret.data or {}).get(SECRET_DATA_KEY)
    if not encoded:
        raise MissingSecretData(SECRET_DATA_KEY)
    try:
        token = base64.b64decode(encoded).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MissingSecretData(SECRET_DATA_KEY) from e
    if not token:
        raise MissingSecretData(SECRET_DATA_KEY)
    return token


async def get_garage_admin_client(
    garage: "Garage",
    kube: "KubeClient",
    transport: httpx.AsyncBaseTransport | None = None,
) -> GarageAdminClient:
    """
    Factory creating the admin client of a Garage instance.

    The endpoint is derived from the instance's API service and admin port.
    """
    token = await read_admin_token(garage, kube)
    base_url = f"{garage.admin_url()}/{ADMIN_API_PREFIX}"
    return GarageAdminClient(base_url, token, transport=transport)
