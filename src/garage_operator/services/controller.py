"""
Dispatch of queued Garage keys to the instance reconciler.

``GarageController.process`` is the work queue handler. One call fetches the
current Garage, runs the finalizer protocol and one reconciliation pass, and
turns the outcome, including failures, into the delay before the next pass.
"""

import time
from typing import Any

from ..constants import (
    EVENT_DELETE_REQUESTED,
    GARAGE_FINALIZER,
    GARAGE_KIND,
    GARAGE_PLURAL,
    REQUEUE_ERRORED,
    REQUEUE_TRANSIENT_ERROR,
)
from ..context import Context
from ..errors import FinalizerError, OperatorError
from ..models import Garage, GarageState, ResourceMetadata
from ..observability.logging import OperatorLogger
from .base_reconciler import Action
from .garage_reconciler import GarageReconciler


class GarageController:
    """Runs reconciliation passes for queued Garage keys."""

    resource_type = "garage"

    def __init__(self, context: Context, reconciler: GarageReconciler | None = None):
        self.context = context
        self.reconciler = reconciler or GarageReconciler()
        self.logger = OperatorLogger(self.__class__.__name__)

    async def process(self, key: tuple[str, str]) -> float | None:
        """
        Reconcile the Garage identified by ``key`` once.

        Returns:
            Seconds until the key should be processed again, or None to wait
            for the next watch event
        """
        namespace, name = key
        body = await self.context.kube.get_custom_object(GARAGE_PLURAL, namespace, name)
        if body is None:
            self.logger.logger.debug(f"Garage {namespace}/{name} is gone")
            return None

        await self.context.diagnostics.touch()
        self.logger.log_reconciliation_start(self.resource_type, name, namespace)

        instance = f"{namespace}/{name}"
        start_time = time.monotonic()
        try:
            with self.context.metrics.track_reconciliation(instance):
                action = await self.reconcile(body)
        except OperatorError as e:
            self.context.metrics.reconcile_failure(instance, e.metric_label())
            self.logger.log_reconciliation_error(
                self.resource_type,
                name,
                namespace,
                e,
                time.monotonic() - start_time,
                transient=not e.is_validation,
            )
            if e.is_validation:
                return await self.mark_errored(body)
            return e.delay
        except Exception as e:
            self.context.metrics.reconcile_failure(instance, type(e).__name__.lower())
            self.logger.logger.exception(f"Unexpected error reconciling {instance}")
            return REQUEUE_TRANSIENT_ERROR

        self.logger.log_reconciliation_success(
            self.resource_type,
            name,
            namespace,
            time.monotonic() - start_time,
            action.requeue_after,
        )
        return action.requeue_after

    async def reconcile(self, body: dict[str, Any]) -> Action:
        """Run the finalizer protocol, then one pass of the instance machine."""
        if await self.handle_finalizer(body):
            return Action.await_change()
        garage = Garage.from_body(body)
        return await self.reconciler.reconcile(garage, self.context)

    async def handle_finalizer(self, body: dict[str, Any]) -> bool:
        """
        Add or remove the Garage finalizer.

        Works on the raw object so that an instance with an invalid spec can
        still be deleted.

        Returns:
            True if the object is being deleted and nothing else should run

        Raises:
            FinalizerError: If a finalizer patch or the event fails
        """
        metadata = body.get("metadata") or {}
        namespace, name = metadata.get("namespace", ""), metadata.get("name", "")
        finalizers = metadata.get("finalizers")
        kube = self.context.kube

        try:
            if metadata.get("deletionTimestamp"):
                if finalizers and GARAGE_FINALIZER in finalizers:
                    await kube.publish_event(
                        ResourceMetadata.model_validate(metadata),
                        EVENT_DELETE_REQUESTED,
                        f"Delete `{name}`",
                    )
                    index = finalizers.index(GARAGE_FINALIZER)
                    path = f"/metadata/finalizers/{index}"
                    await kube.patch_custom_object(
                        GARAGE_PLURAL,
                        namespace,
                        name,
                        [
                            {"op": "test", "path": path, "value": GARAGE_FINALIZER},
                            {"op": "remove", "path": path},
                        ],
                    )
                    self.logger.logger.info(f"Removed finalizer from {namespace}/{name}")
                return True

            if not finalizers:
                patch = [
                    {
                        "op": "add",
                        "path": "/metadata/finalizers",
                        "value": [GARAGE_FINALIZER],
                    }
                ]
            elif GARAGE_FINALIZER not in finalizers:
                # Fails if another writer changed the list in the meantime
                patch = [
                    {"op": "test", "path": "/metadata/finalizers", "value": finalizers},
                    {"op": "add", "path": "/metadata/finalizers/-", "value": GARAGE_FINALIZER},
                ]
            else:
                return False

            await kube.patch_custom_object(GARAGE_PLURAL, namespace, name, patch)
            self.logger.logger.debug(f"Added finalizer to {namespace}/{name}")
            return False
        except OperatorError as e:
            raise FinalizerError(e) from e

    async def mark_errored(self, body: dict[str, Any]) -> float:
        """Move a Garage with an invalid spec to Errored."""
        metadata = body.get("metadata") or {}
        namespace, name = metadata.get("namespace", ""), metadata.get("name", "")
        current = body.get("status") or {}

        status: dict[str, Any] = {
            "state": GarageState.ERRORED.value,
            "capacity": current.get("capacity", 0),
        }
        if metadata.get("generation") is not None:
            status["observedGeneration"] = metadata["generation"]

        try:
            await self.context.kube.apply_status(
                GARAGE_KIND, GARAGE_PLURAL, namespace, name, status
            )
        except OperatorError as e:
            self.logger.logger.error(
                f"Failed to mark {namespace}/{name} as Errored: {e}"
            )
            return REQUEUE_TRANSIENT_ERROR
        return REQUEUE_ERRORED
