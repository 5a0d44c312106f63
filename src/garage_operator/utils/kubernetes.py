"""
Kubernetes utilities for the Garage operator.

This module wraps the synchronous official client behind ``KubeClient``,
whose coroutine methods run each API call in a worker thread so that a
reconciliation never blocks the event loop. API failures are converted to
``KubeError`` at this seam.
"""

import asyncio
import logging
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ..constants import (
    API_GROUP,
    API_GROUP_VERSION,
    API_VERSION,
    FIELD_MANAGER,
    GARAGE_KIND,
    OPERATOR_NAME,
)
from ..errors import KubeError

if TYPE_CHECKING:
    from ..models import Garage, ResourceMetadata

logger = logging.getLogger(__name__)

APPLY_PATCH = "application/apply-patch+yaml"
JSON_PATCH = "application/json-patch+json"

# Page size used when listing custom resources
LIST_PAGE_SIZE = 50


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries in-cluster configuration first, then the local kubeconfig.
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def owner_reference(garage: "Garage") -> client.V1OwnerReference:
    """Controller owner reference pointing at a Garage instance."""
    return client.V1OwnerReference(
        api_version=API_GROUP_VERSION,
        kind=GARAGE_KIND,
        name=garage.name,
        uid=garage.metadata.uid,
        controller=True,
        block_owner_deletion=True,
    )


class KubeClient:
    """Async facade over the Kubernetes API used by the reconcilers."""

    def __init__(self, api_client: client.ApiClient | None = None):
        self._api_client = api_client

    @property
    def api_client(self) -> client.ApiClient:
        if self._api_client is None:
            self._api_client = get_kubernetes_client()
        return self._api_client

    @property
    def core(self) -> client.CoreV1Api:
        return client.CoreV1Api(self.api_client)

    @property
    def apps(self) -> client.AppsV1Api:
        return client.AppsV1Api(self.api_client)

    @property
    def custom(self) -> client.CustomObjectsApi:
        return client.CustomObjectsApi(self.api_client)

    async def _call(self, description: str, func, *args, **kwargs) -> Any:
        """Run a blocking API call in a thread, translating failures."""
        try:
            return await asyncio.to_thread(partial(func, *args, **kwargs))
        except ApiException as e:
            raise KubeError(f"Failed to {description}", status=e.status, cause=e) from e

    async def _read_optional(self, description: str, func, *args, **kwargs) -> Any:
        """Like ``_call`` but returns None when the object does not exist."""
        try:
            return await asyncio.to_thread(partial(func, *args, **kwargs))
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubeError(f"Failed to {description}", status=e.status, cause=e) from e

    # Custom resources

    async def get_custom_object(
        self, plural: str, namespace: str, name: str
    ) -> dict[str, Any] | None:
        return await self._read_optional(
            f"read {plural} {namespace}/{name}",
            self.custom.get_namespaced_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=plural,
            name=name,
        )

    async def list_custom_objects(self, plural: str) -> list[dict[str, Any]]:
        """List all objects of a kind across namespaces, page by page."""
        items: list[dict[str, Any]] = []
        continue_token: str | None = None
        while True:
            kwargs: dict[str, Any] = {"limit": LIST_PAGE_SIZE}
            if continue_token:
                kwargs["_continue"] = continue_token
            page = await self._call(
                f"list {plural}",
                self.custom.list_cluster_custom_object,
                group=API_GROUP,
                version=API_VERSION,
                plural=plural,
                **kwargs,
            )
            items.extend(page.get("items", []))
            continue_token = (page.get("metadata") or {}).get("continue")
            if not continue_token:
                return items

    async def apply_status(
        self,
        kind: str,
        plural: str,
        namespace: str,
        name: str,
        status: dict[str, Any],
    ) -> None:
        """Server-side apply the status subresource, forcing ownership."""
        body = {"apiVersion": API_GROUP_VERSION, "kind": kind, "status": status}
        await self._call(
            f"apply status of {kind} {namespace}/{name}",
            self.custom.patch_namespaced_custom_object_status,
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=plural,
            name=name,
            body=body,
            field_manager=FIELD_MANAGER,
            force=True,
            _content_type=APPLY_PATCH,
        )

    async def patch_custom_object(
        self, plural: str, namespace: str, name: str, patch: list[dict[str, Any]]
    ) -> None:
        """Apply a JSON patch to a custom resource."""
        await self._call(
            f"patch {plural} {namespace}/{name}",
            self.custom.patch_namespaced_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=plural,
            name=name,
            body=patch,
            _content_type=JSON_PATCH,
        )

    async def crd_installed(self, plural: str) -> bool:
        """Whether a custom resource kind of the operator is served by the API."""
        try:
            await asyncio.to_thread(
                partial(
                    self.custom.list_cluster_custom_object,
                    group=API_GROUP,
                    version=API_VERSION,
                    plural=plural,
                    limit=1,
                )
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise KubeError(f"Failed to query {plural}", status=e.status, cause=e) from e
        return True

    # Core resources

    async def get_secret(self, namespace: str, name: str) -> client.V1Secret | None:
        return await self._read_optional(
            f"read secret {namespace}/{name}",
            self.core.read_namespaced_secret,
            name=name,
            namespace=namespace,
        )

    async def secret_exists(self, namespace: str, name: str) -> bool:
        return await self.get_secret(namespace, name) is not None

    async def get_pvc(
        self, namespace: str, name: str
    ) -> client.V1PersistentVolumeClaim | None:
        return await self._read_optional(
            f"read persistent volume claim {namespace}/{name}",
            self.core.read_namespaced_persistent_volume_claim,
            name=name,
            namespace=namespace,
        )

    async def apply(self, obj: Any) -> None:
        """Server-side apply a ConfigMap, Secret, Service or Deployment."""
        patchers = {
            "ConfigMap": self.core.patch_namespaced_config_map,
            "Secret": self.core.patch_namespaced_secret,
            "Service": self.core.patch_namespaced_service,
            "Deployment": self.apps.patch_namespaced_deployment,
        }
        patch = patchers[obj.kind]
        name, namespace = obj.metadata.name, obj.metadata.namespace
        await self._call(
            f"apply {obj.kind} {namespace}/{name}",
            patch,
            name=name,
            namespace=namespace,
            body=obj,
            field_manager=FIELD_MANAGER,
            force=True,
            _content_type=APPLY_PATCH,
        )

    async def publish_event(
        self,
        metadata: "ResourceMetadata",
        reason: str,
        message: str,
        kind: str = GARAGE_KIND,
    ) -> None:
        """Record a Normal event on the object described by ``metadata``."""
        now = datetime.now(UTC).isoformat()
        body = {
            "metadata": {"generateName": f"{metadata.name}."},
            "type": "Normal",
            "reason": reason,
            "message": message,
            "involvedObject": {
                "apiVersion": API_GROUP_VERSION,
                "kind": kind,
                "name": metadata.name,
                "namespace": metadata.namespace,
                "uid": metadata.uid,
            },
            "source": {"component": OPERATOR_NAME},
            "reportingComponent": OPERATOR_NAME,
            "reportingInstance": OPERATOR_NAME,
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        await self._call(
            f"publish {reason} event for {metadata.namespace}/{metadata.name}",
            self.core.create_namespaced_event,
            namespace=metadata.namespace,
            body=body,
        )
