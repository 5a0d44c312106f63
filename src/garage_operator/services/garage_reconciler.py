"""
Garage instance reconciliation.

The instance machine is the orchestration hub: it deploys the objects that
run Garage, registers the node into the cluster layout and, once Ready,
drives the bucket and access-key machines of every resource referring to
it.
"""

from collections.abc import Awaitable, Callable
from decimal import InvalidOperation
from typing import Any

from ..constants import (
    ACCESS_KEY_KIND,
    ACCESS_KEY_PLURAL,
    ADMIN_SECRET_KIND,
    BUCKET_KIND,
    BUCKET_PLURAL,
    EVENT_LAYOUT_REQUESTED,
    GARAGE_KIND,
    GARAGE_PLURAL,
    REQUEUE_ERRORED,
    REQUEUE_IDLE,
    REQUEUE_SHORT,
    RPC_SECRET_KIND,
)
from ..context import AccessKeyContext, BucketContext, Context
from ..errors import (
    IllegalGarage,
    MissingDataSource,
    NetworkError,
    OperatorError,
    ValidationError,
)
from ..models import AccessKey, Bucket, Garage, GarageState, ResourceState
from ..utils.garage_admin import (
    GarageAdminClient,
    LayoutOutcome,
    get_garage_admin_client,
    sum_quantities,
)
from ..utils.kubernetes import KubeClient
from ..utils.projection import apply_projection, project
from .access_key_reconciler import AccessKeyReconciler
from .base_reconciler import Action, BaseReconciler, Reconciler
from .bucket_reconciler import BucketReconciler

AdminFactory = Callable[[Garage, KubeClient], Awaitable[GarageAdminClient]]


def refers_to(body: dict[str, Any], garage: Garage) -> bool:
    """Whether a raw Bucket or AccessKey names ``garage`` in its garageRef."""
    ref = (body.get("spec") or {}).get("garageRef")
    if not isinstance(ref, dict):
        return False
    return (ref.get("namespace"), ref.get("name")) == garage.key


def errored_status(body: dict[str, Any]) -> dict[str, Any]:
    """Status of a child resource moved to Errored, keeping its other fields."""
    status = dict(body.get("status") or {})
    status["state"] = ResourceState.ERRORED.value
    generation = (body.get("metadata") or {}).get("generation")
    if generation is not None:
        status["observedGeneration"] = generation
    return status


class GarageReconciler(BaseReconciler):
    """State machine of a Garage instance."""

    resource_type = "garage"

    def __init__(
        self,
        admin_factory: AdminFactory | None = None,
        bucket_reconciler: Reconciler[Bucket, BucketContext] | None = None,
        access_key_reconciler: Reconciler[AccessKey, AccessKeyContext] | None = None,
    ):
        """
        Initialize the reconciler.

        Args:
            admin_factory: Creates the admin client of an instance
            bucket_reconciler: Machine run for each bucket of a Ready instance
            access_key_reconciler: Machine run for each access key
        """
        super().__init__()
        self.admin_factory = admin_factory or get_garage_admin_client
        self.bucket_reconciler: Reconciler[Bucket, BucketContext] = (
            bucket_reconciler or BucketReconciler()
        )
        self.access_key_reconciler: Reconciler[AccessKey, AccessKeyContext] = (
            access_key_reconciler or AccessKeyReconciler()
        )

    async def data_capacities(self, garage: Garage, kube: KubeClient) -> list[int]:
        """
        Capacity in bytes of every data claim, in spec order.

        A claim that is not bound yet reports the storage it requests.

        Raises:
            MissingDataSource: If a claim does not exist
        """
        capacities = []
        for claim in garage.spec.storage.data:
            pvc = await kube.get_pvc(garage.namespace, claim)
            if pvc is None:
                raise MissingDataSource(claim)

            quantity = None
            if pvc.status is not None and pvc.status.capacity:
                quantity = pvc.status.capacity.get("storage")
            if quantity is None and pvc.spec is not None and pvc.spec.resources:
                quantity = (pvc.spec.resources.requests or {}).get("storage")
            if quantity is None:
                self.logger.logger.info(
                    f"Claim {garage.namespace}/{claim} reports no capacity yet"
                )
                capacities.append(0)
                continue

            try:
                capacities.append(sum_quantities([quantity]))
            except (ValueError, InvalidOperation) as e:
                raise IllegalGarage(
                    garage.name, f"claim {claim} has invalid capacity {quantity!r}"
                ) from e
        return capacities

    async def deploy_resources(
        self,
        garage: Garage,
        context: Context,
        capacities: list[int] | None = None,
    ) -> None:
        """Apply the config, secrets, service and workload of the instance."""
        kube = context.kube
        if capacities is None:
            capacities = await self.data_capacities(garage, kube)

        existing = set()
        for kind in (ADMIN_SECRET_KIND, RPC_SECRET_KIND):
            name = garage.secret_name(kind)
            if await kube.secret_exists(garage.namespace, name):
                existing.add(name)

        projection = project(garage, capacities, context.garage_version, existing)
        await apply_projection(projection, kube)

    async def reconcile(self, garage: Garage, context: Context) -> Action:
        capacities = await self.data_capacities(garage, context.kube)
        state = garage.status.state

        if state == GarageState.CREATING:
            self.logger.logger.info(f"Creating garage {garage.namespace}/{garage.name}")
            await self.deploy_resources(garage, context, capacities)
            next_state = (
                GarageState.LAYING_OUT if garage.spec.auto_layout else GarageState.READY
            )
            action = Action.requeue(REQUEUE_SHORT)

        elif state == GarageState.LAYING_OUT:
            laid_out = await self.layout(garage, context, sum(capacities))
            next_state = GarageState.READY if laid_out else GarageState.LAYING_OUT
            action = Action.requeue(REQUEUE_SHORT)

        elif state == GarageState.READY:
            await self.deploy_resources(garage, context, capacities)
            action = Action.requeue(REQUEUE_IDLE).merge(
                await self.reconcile_children(garage, context)
            )
            next_state = GarageState.READY

        else:
            next_state = GarageState.CREATING
            action = Action.requeue(REQUEUE_ERRORED)

        await self.write_status(
            context.kube,
            GARAGE_KIND,
            GARAGE_PLURAL,
            garage.namespace,
            garage.name,
            self.status_body(garage, next_state, sum(capacities)),
        )
        self.log_transition(garage.name, garage.namespace, state, next_state)
        return action

    @staticmethod
    def status_body(garage: Garage, state: GarageState, capacity: int) -> dict:
        status: dict[str, Any] = {"state": state.value, "capacity": capacity}
        if garage.metadata.generation is not None:
            status["observedGeneration"] = garage.metadata.generation
        return status

    async def layout(self, garage: Garage, context: Context, capacity: int) -> bool:
        """
        Run one layout step.

        Returns:
            True once Garage reports a committed layout
        """
        try:
            async with await self.admin_factory(garage, context.kube) as admin:
                outcome = await self.admin_call(admin.layout_instance(garage, capacity))
        except NetworkError as e:
            if e.status_code is not None:
                raise
            # Garage is still starting and not listening yet
            self.logger.logger.info(
                f"Admin API of {garage.namespace}/{garage.name} not reachable yet"
            )
            return False

        if outcome == LayoutOutcome.REQUESTED:
            await context.kube.publish_event(
                garage.metadata,
                EVENT_LAYOUT_REQUESTED,
                f"Configuring layout for `{garage.name}`",
            )
        return outcome == LayoutOutcome.COMMITTED

    async def reconcile_children(self, garage: Garage, context: Context) -> Action:
        """Run the bucket and access-key machines of this instance."""
        kube = context.kube
        bucket_bodies = [
            body
            for body in await kube.list_custom_objects(BUCKET_PLURAL)
            if refers_to(body, garage)
        ]
        key_bodies = [
            body
            for body in await kube.list_custom_objects(ACCESS_KEY_PLURAL)
            if refers_to(body, garage)
        ]
        if not bucket_bodies and not key_bodies:
            return Action.await_change()

        action = Action.await_change()
        async with await self.admin_factory(garage, kube) as admin:
            buckets: dict[tuple[str, str], Bucket] = {}
            bucket_context = BucketContext(context, garage, admin)
            for body in bucket_bodies:
                try:
                    bucket = Bucket.from_body(body)
                    action = action.merge(
                        await self.bucket_reconciler.reconcile(bucket, bucket_context)
                    )
                except OperatorError as e:
                    action = action.merge(
                        await self._child_failed(
                            garage, context, BUCKET_KIND, BUCKET_PLURAL, body, e
                        )
                    )
                    continue
                buckets[(bucket.namespace, bucket.name)] = bucket

            for body in key_bodies:
                try:
                    key = AccessKey.from_body(body)
                    key_context = AccessKeyContext(
                        context, garage, admin, buckets.get(key.spec.bucket_ref.key)
                    )
                    action = action.merge(
                        await self.access_key_reconciler.reconcile(key, key_context)
                    )
                except OperatorError as e:
                    action = action.merge(
                        await self._child_failed(
                            garage, context, ACCESS_KEY_KIND, ACCESS_KEY_PLURAL, body, e
                        )
                    )
        return action

    async def _child_failed(
        self,
        garage: Garage,
        context: Context,
        kind: str,
        plural: str,
        body: dict[str, Any],
        error: OperatorError,
    ) -> Action:
        """
        Contain the failure of one child to that child.

        An invalid child is moved to Errored. Any other failure leaves its
        status untouched and only brings the next instance pass forward.
        """
        metadata = body.get("metadata") or {}
        namespace, name = metadata.get("namespace", ""), metadata.get("name", "")
        context.metrics.reconcile_failure(
            f"{garage.namespace}/{garage.name}", error.metric_label()
        )

        if isinstance(error, ValidationError):
            self.logger.logger.error(f"{kind} {namespace}/{name} is invalid: {error}")
            await self.write_status(
                context.kube, kind, plural, namespace, name, errored_status(body)
            )
            return Action.requeue(REQUEUE_ERRORED)

        self.logger.logger.warning(
            f"{kind} {namespace}/{name} failed, retrying in {error.delay}s: {error}"
        )
        return Action.requeue(error.delay)
