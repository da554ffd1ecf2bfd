# ABOUTME: Idempotent create-or-update reconciliation for Kubernetes resources
# ABOUTME: Merges a desired document with server state before writing it back

"""
The `ensure` algorithm.

=============================================================================
WHAT DOES ENSURE DO?
=============================================================================

Given a complete desired document, converge the cluster towards it:

1. exists(name)?  no  -> create(desired), done
2.                yes -> current = get(name)
3. merged = desired, with metadata.resourceVersion taken from current
4. if current has spec.clusterIP and desired does not, carry it forward
5. apply(merged), done

=============================================================================
WHY CARRY FIELDS FORWARD?
=============================================================================

resourceVersion: the API server rejects a PUT whose resourceVersion does
not match the stored object (optimistic concurrency). The desired document
usually has none, or a stale one, so the current value always wins.

spec.clusterIP: allocated by the server when a Service is created and
immutable afterwards. A PUT that omits it is treated as an attempt to
clear it and rejected. Only this one field is carried; other
server-assigned fields are left alone.

=============================================================================
RACES
=============================================================================

The three round trips are not atomic. A delete between exists and apply
makes apply fail with 404/409, which propagates to the caller as
APIError. `ensure` never retries.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from kuberest.utils.client import ConfigError, Outcome

if TYPE_CHECKING:
    from kuberest.operations import ResourceOperations

logger = structlog.get_logger(__name__)

DEFAULT_NAMESPACE = "default"


def require_name(document: Mapping[str, Any]) -> str:
    """Return metadata.name, or raise ConfigError if the document has none."""
    metadata = document.get("metadata") if isinstance(document, Mapping) else None
    name = metadata.get("name") if isinstance(metadata, Mapping) else None
    if not name:
        raise ConfigError("Resource document has no metadata.name")
    return str(name)


def merge_for_apply(desired: Mapping[str, Any], current: Mapping[str, Any]) -> dict[str, Any]:
    """
    Build the document to PUT over `current`.

    Neither input is mutated; the returned document shares unmodified
    nested values with `desired`.
    """
    merged = dict(desired)

    metadata = dict(desired.get("metadata") or {})
    version = (current.get("metadata") or {}).get("resourceVersion")
    if version is not None:
        metadata["resourceVersion"] = version
    merged["metadata"] = metadata

    current_ip = (current.get("spec") or {}).get("clusterIP")
    desired_spec = desired.get("spec") or {}
    if current_ip and not desired_spec.get("clusterIP"):
        spec = dict(desired_spec)
        spec["clusterIP"] = current_ip
        merged["spec"] = spec

    return merged


async def ensure(
    operations: ResourceOperations,
    desired: Mapping[str, Any],
    namespace: str | None = DEFAULT_NAMESPACE,
) -> Any:
    """
    Create `desired` if absent, otherwise replace the current resource with it.

    Returns:
        The result of the create or apply call.

    Raises:
        ConfigError: If desired has no metadata.name (before any request)
        APIError: If create/get/apply is rejected by the server
    """
    name = require_name(desired)
    log = logger.bind(resource=operations.descriptor.resource_name, name=name, namespace=namespace)

    if not await operations.exists(name, namespace=namespace):
        log.info("Resource absent, creating")
        return await operations.create(desired, namespace=namespace)

    current = await operations.get(name, namespace=namespace)
    if isinstance(current, Outcome):
        current = current.body
    merged = merge_for_apply(desired, current if isinstance(current, Mapping) else {})

    log.info("Resource present, replacing", resource_version=merged["metadata"].get("resourceVersion"))
    return await operations.apply(merged, namespace=namespace)
