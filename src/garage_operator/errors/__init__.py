"""
Error handling module for the Garage operator.

This module provides the error hierarchy used by the reconcilers and the
controller's error policy.
"""

from .operator_errors import (
    FinalizerError,
    IllegalAccessKey,
    IllegalBucket,
    IllegalGarage,
    KubeError,
    MissingDataSource,
    MissingSecret,
    MissingSecretData,
    NetworkError,
    OperatorError,
    SerializationError,
    ValidationError,
)

__all__ = [
    "OperatorError",
    "ValidationError",
    "SerializationError",
    "KubeError",
    "FinalizerError",
    "NetworkError",
    "IllegalGarage",
    "IllegalBucket",
    "IllegalAccessKey",
    "MissingDataSource",
    "MissingSecret",
    "MissingSecretData",
]
