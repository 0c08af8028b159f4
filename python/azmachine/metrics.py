"""
azmachine/metrics.py

Prometheus counters for Azure Resource Manager calls, keyed by service label,
and the helpers the orchestrators call after each ARM interaction. The helpers
are fire-and-forget: a metrics failure is logged and never changes control flow.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    generate_latest,
)

from azmachine.errors import AzureApiError, as_azure_error

logger = logging.getLogger(__name__)

SERVICE_SUBNET = "subnet"
SERVICE_VM = "virtual_machine"
SERVICE_NIC = "network_interfaces"
SERVICE_DISK = "disks"

REGISTRY = CollectorRegistry()

API_REQUEST_COUNT = Counter(
    "azmachine_api_request_count",
    "Number of successful Azure Resource Manager calls",
    labelnames=("service",),
    registry=REGISTRY,
)
API_FAILED_COUNT = Counter(
    "azmachine_api_failed_count",
    "Number of failed Azure Resource Manager calls",
    labelnames=("service",),
    registry=REGISTRY,
)


def on_arm_api_success(service: str, message: str, *args: Any) -> None:
    """Record a successful call for `service` and log it at debug level."""
    try:
        API_REQUEST_COUNT.labels(service=service).inc()
    except Exception as exc:  # metrics must never break provisioning
        logger.warning("Could not record success metric for %s: %s", service, exc)
    logger.debug(message, *args)


def on_arm_api_error_fail(
    service: str,
    err: BaseException,
    message: str,
    *args: Any,
    resource_name: Optional[str] = None,
) -> AzureApiError:
    """Record a failed call for `service` and return `err` wrapped with context.

    Args:
        service: Resource-kind label.
        err: The underlying failure.
        message: printf-style message describing the failed call.
        *args: Arguments for `message`.
        resource_name: Name of the resource involved, if known.

    Returns:
        AzureApiError: The failure with `message` prefixed; NotFound/Conflict
        classes are preserved.
    """
    try:
        API_FAILED_COUNT.labels(service=service).inc()
    except Exception as exc:
        logger.warning("Could not record failure metric for %s: %s", service, exc)
    text = message % args if args else message
    wrapped = as_azure_error(err, text, service=service, resource_name=resource_name)
    logger.error("%s", wrapped)
    return wrapped


def generate_latest_metrics() -> Tuple[bytes, str]:
    """Serialize the ARM call counters for a scrape endpoint.

    Returns:
        Tuple[bytes, str]: The exposition-format payload and its Content-Type.
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "SERVICE_SUBNET",
    "SERVICE_VM",
    "SERVICE_NIC",
    "SERVICE_DISK",
    "REGISTRY",
    "API_REQUEST_COUNT",
    "API_FAILED_COUNT",
    "on_arm_api_success",
    "on_arm_api_error_fail",
    "generate_latest_metrics",
]
