#!/usr/bin/env python3
"""
Garage Operator - Main entry point for the Kopf-based Garage operator.

This operator manages Garage S3 storage on Kubernetes:
- Garage instances (config, secrets, service and deployment, cluster layout)
- Buckets with quotas
- Access keys with their credential Secrets

kopf only watches resources and feeds their keys to a work queue; a pool of
workers runs the reconciliation passes.

Usage:
    python -m garage_operator
    # Or with kopf directly:
    kopf run -m garage_operator.operator --all-namespaces

Environment Variables:
    GARAGE_VERSION: Tag of the Garage image to deploy (required)
    GARAGE_OPERATOR_NAMESPACES: Comma-separated list of namespaces to watch
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    WORKERS: Number of concurrent reconciliation workers
"""

import logging
import sys

import kopf

from garage_operator.constants import (
    ACCESS_KEY_PLURAL,
    BUCKET_PLURAL,
    GARAGE_PLURAL,
    OPERATOR_NAME,
)
from garage_operator.context import Context, Diagnostics

# Import all handler modules to register them with kopf
from garage_operator.handlers import (  # noqa: F401
    access_key,
    bucket,
    garage,
)
from garage_operator.observability.logging import setup_structured_logging
from garage_operator.observability.metrics import Metrics, MetricsServer
from garage_operator.services.controller import GarageController
from garage_operator.settings import get_settings
from garage_operator.utils.kubernetes import KubeClient, get_kubernetes_client
from garage_operator.utils.work_queue import WorkQueue

# Seconds allowed for in-flight passes when shutting down
SHUTDOWN_TIMEOUT = 30.0


def configure_logging() -> None:
    """Configure structured logging for the operator based on its settings."""
    operator_settings = get_settings()
    setup_structured_logging(
        log_level=operator_settings.log_level.upper(),
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
    )


async def check_crds(kube: KubeClient) -> None:
    """
    Fail fast when the custom resource definitions are not installed.

    Raises:
        kopf.PermanentError: If one of the kinds is not served
    """
    missing = [
        plural
        for plural in (GARAGE_PLURAL, BUCKET_PLURAL, ACCESS_KEY_PLURAL)
        if not await kube.crd_installed(plural)
    ]
    if missing:
        raise kopf.PermanentError(
            f"Custom resource definitions not installed for: {', '.join(missing)}. "
            "Apply the operator CRDs before starting it."
        )


@kopf.on.startup()
async def startup_handler(
    settings: kopf.OperatorSettings, memo: kopf.Memo, **_
) -> None:
    """
    Operator startup configuration.

    This handler runs once when the operator starts up and:
    - Tunes kopf (event posting, watch reconnects)
    - Connects to the cluster and checks the CRDs
    - Builds the shared reconciliation context
    - Starts the metrics server and the work queue workers
    """
    operator_settings = get_settings()
    logging.info("Starting Garage Operator...")

    settings.posting.level = logging.WARNING
    settings.watching.reconnect_backoff = 1.0

    watched_namespaces = operator_settings.watched_namespaces
    if watched_namespaces:
        logging.info(f"Watching namespaces: {', '.join(watched_namespaces)}")
    else:
        logging.info("Watching all namespaces (cluster-wide mode)")

    kube = KubeClient(get_kubernetes_client())
    await check_crds(kube)

    metrics = Metrics()
    diagnostics = Diagnostics(reporter=OPERATOR_NAME)
    context = Context(
        kube=kube,
        metrics=metrics,
        diagnostics=diagnostics,
        garage_version=operator_settings.garage_version,
    )

    metrics_server = MetricsServer(
        metrics,
        diagnostics,
        port=operator_settings.metrics_port,
        host=operator_settings.metrics_host,
    )
    await metrics_server.start()

    controller = GarageController(context)
    queue = WorkQueue()
    queue.start(controller.process, workers=operator_settings.workers)

    memo.context = context
    memo.queue = queue
    memo.metrics_server = metrics_server
    logging.info(
        f"Garage operator ready: image {operator_settings.garage_version}, "
        f"{operator_settings.workers} workers"
    )


@kopf.on.cleanup()
async def cleanup_handler(memo: kopf.Memo, **_) -> None:
    """Stop the workers, then the metrics server."""
    logging.info("Shutting down Garage Operator...")

    queue = getattr(memo, "queue", None)
    if queue is not None:
        await queue.shutdown(timeout=SHUTDOWN_TIMEOUT)

    metrics_server = getattr(memo, "metrics_server", None)
    if metrics_server is not None:
        try:
            await metrics_server.stop()
        except Exception as e:
            logging.error(f"Error stopping metrics server: {e}")


@kopf.on.probe(id="healthz")
async def health_check(memo: kopf.Memo, **_) -> dict[str, str]:
    """
    Liveness probe.

    Returns:
        Dictionary with the operator status and the last event time
    """
    context = getattr(memo, "context", None)
    if context is None:
        return {"status": "starting", "operator": OPERATOR_NAME}

    snapshot = await context.diagnostics.snapshot()
    return {
        "status": "healthy",
        "operator": OPERATOR_NAME,
        "lastEvent": snapshot["lastEvent"],
    }


def main() -> None:
    """
    Main entry point for the operator.

    This function:
    1. Configures logging
    2. Determines namespace scope
    3. Runs the kopf operator
    """
    configure_logging()
    watched_namespaces = get_settings().watched_namespaces

    try:
        if watched_namespaces:
            kopf.run(
                namespaces=watched_namespaces,
                liveness_endpoint="http://0.0.0.0:8081/healthz",
            )
        else:
            kopf.run(
                clusterwide=True,
                liveness_endpoint="http://0.0.0.0:8081/healthz",
            )
    except KeyboardInterrupt:
        logging.info("Received shutdown signal")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Operator failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
