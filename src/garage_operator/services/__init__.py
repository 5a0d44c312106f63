"""
Service layer for the Garage operator.

This module provides the state machines that handle the business logic for
Garage instances, buckets and access keys, separated from the kopf handler
layer, and the controller dispatching queued keys to them.
"""

from .access_key_reconciler import AccessKeyReconciler
from .base_reconciler import Action, BaseReconciler, Reconciler
from .bucket_reconciler import BucketReconciler
from .controller import GarageController
from .garage_reconciler import GarageReconciler

__all__ = [
    "Action",
    "BaseReconciler",
    "Reconciler",
    "GarageReconciler",
    "BucketReconciler",
    "AccessKeyReconciler",
    "GarageController",
]
