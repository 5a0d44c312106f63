"""
Bucket reconciliation.

Creating -> Configuring -> Ready, with Errored falling back to Creating.
The bucket is looked up by its global alias before being created, so a
bucket that already exists in Garage is adopted rather than duplicated.
"""

from ..constants import (
    BUCKET_KIND,
    BUCKET_PLURAL,
    REQUEUE_CONFIGURE,
    REQUEUE_ERRORED,
    REQUEUE_IDLE,
    REQUEUE_SHORT,
)
from ..context import BucketContext
from ..errors import NetworkError
from ..models import Bucket, ResourceState
from .base_reconciler import Action, BaseReconciler


class BucketReconciler(BaseReconciler):
    """State machine of a single Bucket."""

    resource_type = "bucket"

    async def deploy_resources(self, bucket: Bucket, context: BucketContext) -> None:
        """Buckets own no cluster objects."""

    async def reconcile(self, bucket: Bucket, context: BucketContext) -> Action:
        await self.deploy_resources(bucket, context)

        admin = context.admin
        status = bucket.status.model_copy()
        state = status.state

        if state == ResourceState.CREATING:
            status.id = await self.admin_call(admin.ensure_bucket(bucket.name))
            status.state = ResourceState.CONFIGURING
            action = Action.requeue(REQUEUE_SHORT)

        elif state == ResourceState.CONFIGURING:
            if not status.id:
                # Configuring without a persisted id, start over
                status.state = ResourceState.CREATING
                action = Action.requeue(REQUEUE_SHORT)
            else:
                try:
                    await self.admin_call(
                        admin.set_bucket_quotas(bucket.name, status.id, bucket.spec.quotas)
                    )
                except NetworkError as e:
                    if e.status_code != 404:
                        raise
                    # Removed from Garage behind our back, recreate it
                    self.logger.logger.warning(
                        f"Bucket {bucket.namespace}/{bucket.name} has no Garage bucket "
                        f"{status.id}, recreating it"
                    )
                    status.state = ResourceState.ERRORED
                    action = Action.requeue(REQUEUE_ERRORED)
                else:
                    status.state = ResourceState.READY
                    action = Action.requeue(REQUEUE_CONFIGURE)

        elif state == ResourceState.READY:
            if bucket.metadata.generation != status.observed_generation:
                # Spec changed since quotas were last applied
                status.state = ResourceState.CONFIGURING
                action = Action.requeue(REQUEUE_CONFIGURE)
            else:
                action = Action.requeue(REQUEUE_IDLE)

        else:
            status.state = ResourceState.CREATING
            action = Action.requeue(REQUEUE_ERRORED)

        status.observed_generation = bucket.metadata.generation

        await self.write_status(
            context.context.kube,
            BUCKET_KIND,
            BUCKET_PLURAL,
            bucket.namespace,
            bucket.name,
            status.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        self.log_transition(bucket.name, bucket.namespace, state, status.state)
        bucket.status = status
        return action
