"""
AccessKey reconciliation.

Creating -> Configuring -> Ready, with Errored falling back to Creating.
Configuring waits until the referenced bucket has a Garage id. Once Ready,
the issued credentials are written to a Secret on every pass so that a
deleted or edited Secret is restored.
"""

import base64

from kubernetes import client

from ..constants import (
    ACCESS_KEY_KIND,
    ACCESS_KEY_PLURAL,
    API_GROUP_VERSION,
    AWS_ACCESS_KEY_ID,
    AWS_DEFAULT_REGION,
    AWS_ENDPOINT_URL,
    AWS_SECRET_ACCESS_KEY,
    GARAGE_REF_ANNOTATION,
    MANAGED_BY_LABEL_KEY,
    MANAGED_BY_LABEL_VALUE,
    REQUEUE_ERRORED,
    REQUEUE_IDLE,
    REQUEUE_SHORT,
)
from ..context import AccessKeyContext
from ..errors import NetworkError
from ..models import AccessKey, AccessKeyStatus, Bucket, Garage, ResourceState
from ..models.garage_api import KeyInfo
from .base_reconciler import Action, BaseReconciler


def build_credentials_secret(
    key: AccessKey, garage: Garage, info: KeyInfo
) -> client.V1Secret:
    """Secret holding the AWS style credentials of an access key."""
    namespace, name = key.secret_location()
    values = {
        AWS_ACCESS_KEY_ID: info.access_key_id,
        AWS_SECRET_ACCESS_KEY: info.secret_access_key or "",
        AWS_DEFAULT_REGION: garage.spec.config.region,
        AWS_ENDPOINT_URL: garage.s3_endpoint(),
    }

    owner_references = None
    if namespace == key.namespace and key.metadata.uid:
        owner_references = [
            client.V1OwnerReference(
                api_version=API_GROUP_VERSION,
                kind=ACCESS_KEY_KIND,
                name=key.name,
                uid=key.metadata.uid,
            )
        ]

    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={MANAGED_BY_LABEL_KEY: MANAGED_BY_LABEL_VALUE},
            annotations={GARAGE_REF_ANNOTATION: f"{garage.namespace}/{garage.name}"},
            owner_references=owner_references,
        ),
        type="Opaque",
        data={k: base64.b64encode(v.encode()).decode() for k, v in values.items()},
    )


class AccessKeyReconciler(BaseReconciler):
    """State machine of a single AccessKey."""

    resource_type = "accesskey"

    async def deploy_resources(self, key: AccessKey, context: AccessKeyContext) -> None:
        """The credential Secret is written in the Ready state instead."""

    async def reconcile(self, key: AccessKey, context: AccessKeyContext) -> Action:
        await self.deploy_resources(key, context)

        admin = context.admin
        status = key.status.model_copy()
        state = status.state
        permissions = key.spec.permissions

        if state == ResourceState.CREATING:
            status.id = await self.admin_call(admin.ensure_key(key.name))
            status.permissions_friendly = permissions.friendly()
            status.state = ResourceState.CONFIGURING
            action = Action.requeue(REQUEUE_SHORT)

        elif state == ResourceState.CONFIGURING:
            bucket = context.bucket
            if not status.id:
                status.state = ResourceState.CREATING
            elif bucket is None or not bucket.status.id:
                self.logger.logger.info(
                    f"Access key {key.namespace}/{key.name} waits for bucket "
                    f"{key.spec.bucket_ref}"
                )
            else:
                status.state = await self._grant(key, context, status, bucket)
            action = Action.requeue(
                REQUEUE_ERRORED if status.state == ResourceState.ERRORED else REQUEUE_SHORT
            )

        elif state == ResourceState.READY:
            action = await self._reconcile_ready(key, context, status)

        else:
            status.state = ResourceState.CREATING
            action = Action.requeue(REQUEUE_ERRORED)

        status.observed_generation = key.metadata.generation

        await self.write_status(
            context.context.kube,
            ACCESS_KEY_KIND,
            ACCESS_KEY_PLURAL,
            key.namespace,
            key.name,
            status.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        self.log_transition(key.name, key.namespace, state, status.state)
        key.status = status
        return action

    async def _grant(
        self,
        key: AccessKey,
        context: AccessKeyContext,
        status: AccessKeyStatus,
        bucket: Bucket,
    ) -> ResourceState:
        """Grant the permissions, returning the next state."""
        permissions = key.spec.permissions
        try:
            await self.admin_call(
                context.admin.allow_bucket_key(bucket.status.id, status.id, permissions)
            )
        except NetworkError as e:
            if e.status_code != 404:
                raise
            # The key or the bucket is gone from Garage
            self.logger.logger.warning(
                f"Access key {key.namespace}/{key.name} or bucket "
                f"{key.spec.bucket_ref} is missing in Garage, recreating the key"
            )
            return ResourceState.ERRORED

        status.permissions_friendly = permissions.friendly()
        return ResourceState.READY

    async def _reconcile_ready(
        self, key: AccessKey, context: AccessKeyContext, status: AccessKeyStatus
    ) -> Action:
        if key.metadata.generation != status.observed_generation:
            # Permissions or bucket may have changed, grant again
            status.state = ResourceState.CONFIGURING
            return Action.requeue(REQUEUE_SHORT)

        info = await self.admin_call(context.admin.get_key(key.name, show_secret=True))
        if info is None:
            # Deleted behind our back
            status.id = ""
            status.state = ResourceState.CREATING
            return Action.requeue(REQUEUE_SHORT)

        secret = build_credentials_secret(key, context.garage, info)
        await context.context.kube.apply(secret)
        return Action.requeue(REQUEUE_IDLE)
