"""
Operator error hierarchy with categorization and retry logic.

This module defines the error types used throughout the Garage operator.
Every error knows whether it is a validation failure (the resource is marked
Errored and retried quickly) or a transient failure (retried after a longer
delay), and exposes a lowercase label for the failure metric.
"""

import kopf

from ..constants import REQUEUE_ERRORED, REQUEUE_TRANSIENT_ERROR


class OperatorError(Exception):
    """
    Base error class for all operator-related exceptions.

    Provides categorization, retry behavior, and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = True,
        delay: float = REQUEUE_TRANSIENT_ERROR,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize operator error.

        Args:
            message: Human-readable error description
            category: Error category (validation, kubernetes, network, ...)
            retryable: Whether the failure is transient
            delay: Requeue delay in seconds
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    @property
    def is_validation(self) -> bool:
        """Whether this error means the declared resource is invalid."""
        return self.category == "validation"

    def metric_label(self) -> str:
        """Lowercase error kind used as the failure metric label."""
        return type(self).__name__.lower()

    def as_kopf_error(self):
        """Convert to appropriate kopf exception type."""
        if self.retryable:
            return kopf.TemporaryError(str(self), delay=self.delay)
        else:
            return kopf.PermanentError(str(self))

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class SerializationError(OperatorError):
    """JSON or YAML coding failure."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=f"Serialization failed: {message}",
            category="serialization",
            cause=cause,
        )


class KubeError(OperatorError):
    """A Kubernetes API call failed."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        if status:
            message = f"{message} (HTTP {status})"
        super().__init__(
            message=message,
            category="kubernetes",
            user_action="Check RBAC permissions and cluster connectivity",
            cause=cause,
        )
        self.status = status


class FinalizerError(OperatorError):
    """An error raised while running the finalizer protocol."""

    def __init__(self, cause: Exception):
        super().__init__(
            message=f"Finalizer failed: {cause}",
            category="finalizer",
            cause=cause,
        )


class NetworkError(OperatorError):
    """A call to the Garage admin API failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        if status_code:
            message = f"HTTP {status_code}: {message}"
        super().__init__(
            message=f"Garage admin API error: {message}",
            category="network",
            user_action="Check that the Garage instance is running and reachable",
            cause=cause,
        )
        self.status_code = status_code


class ValidationError(OperatorError):
    """Base class for errors in a declared resource."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            category="validation",
            retryable=True,
            delay=REQUEUE_ERRORED,
            user_action=user_action
            or "Check resource specification and fix validation errors",
        )


class IllegalGarage(ValidationError):
    """The Garage resource is invalid."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Illegal Garage '{name}': {reason}")
        self.name = name
        self.reason = reason


class IllegalBucket(ValidationError):
    """The Bucket resource is invalid."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Illegal Bucket '{name}': {reason}")
        self.name = name
        self.reason = reason


class IllegalAccessKey(ValidationError):
    """The AccessKey resource is invalid."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Illegal AccessKey '{name}': {reason}")
        self.name = name
        self.reason = reason


class MissingDataSource(ValidationError):
    """A persistent volume claim referenced by a Garage does not exist."""

    def __init__(self, name: str):
        super().__init__(
            f"Persistent volume claim '{name}' does not exist",
            user_action="Create the claim or fix storage.meta / storage.data",
        )
        self.name = name


class MissingSecret(OperatorError):
    """The admin token secret of a Garage could not be found."""

    def __init__(self, name: str):
        super().__init__(
            message=f"Secret '{name}' does not exist",
            category="configuration",
            user_action="Create the secret or fix spec.secrets.admin",
        )
        self.name = name


class MissingSecretData(OperatorError):
    """The admin token secret exists but lacks the expected entry."""

    def __init__(self, key: str):
        super().__init__(
            message=f"Secret is missing data entry '{key}'",
            category="configuration",
            user_action=f"Add the '{key}' entry to the admin secret",
        )
        self.key = key
