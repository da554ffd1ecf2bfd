# ABOUTME: Declarative resource-kind descriptors and URL path construction
# ABOUTME: Holds the static table of supported Kubernetes kinds and the path builder

"""
Resource descriptors and path building.

A ResourceDescriptor is everything the client needs to know about a kind:
where its API group lives, what its collection is called, whether it is
partitioned by namespace, and which operations it supports. The operation
set for a kind is generated from its descriptor (see kuberest.operations).

Path grammar, exact segment order:

    {api_prefix}[/namespaces/{namespace}]/{resource_name}[/{name}]

    /api/v1/namespaces/default/pods/nginx
    /api/v1/nodes
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from kuberest.utils.client import ConfigError


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    Static declaration of a resource kind.

    Attributes:
        kind: Registry key, e.g. "pod"
        api_prefix: API group/version path, e.g. "/api/v1" or "/apis/apps/v1"
        resource_name: Collection name, e.g. "pods"
        namespaced: Whether paths carry a /namespaces/{ns} segment
        read_only: Disables create/apply/delete/exists/ensure/update
        listable: Enables list
    """

    kind: str
    api_prefix: str
    resource_name: str
    namespaced: bool = True
    read_only: bool = False
    listable: bool = True

    def __post_init__(self) -> None:
        _require_identity(self)

    @property
    def writable(self) -> bool:
        return not self.read_only


def _require_identity(descriptor: Any) -> None:
    if not getattr(descriptor, "api_prefix", None):
        raise ConfigError(f"Resource descriptor {descriptor!r} has no API prefix")
    if not getattr(descriptor, "resource_name", None):
        raise ConfigError(f"Resource descriptor {descriptor!r} has no resource name")


def build_path(
    descriptor: ResourceDescriptor,
    namespace: str | None = None,
    name: str | None = None,
) -> str:
    """
    Build the URL path for a collection or a single resource.

    Names and namespaces are inserted verbatim; no escaping is performed.

    >>> pods = ResourceDescriptor("pod", "/api/v1", "pods")
    >>> build_path(pods, "default", "nginx")
    '/api/v1/namespaces/default/pods/nginx'
    >>> build_path(pods, None, "nginx")
    '/api/v1/pods/nginx'
    >>> build_path(pods, "default")
    '/api/v1/namespaces/default/pods'
    """
    _require_identity(descriptor)
    if namespace:
        path = f"{descriptor.api_prefix}/namespaces/{namespace}/{descriptor.resource_name}"
    else:
        path = f"{descriptor.api_prefix}/{descriptor.resource_name}"
    if name:
        path = f"{path}/{name}"
    return path


def _table(*descriptors: ResourceDescriptor) -> dict[str, ResourceDescriptor]:
    return {d.kind: d for d in descriptors}


# The API surface this client knows about. The API groups are the ones
# these kinds were served from when the table was written; extensions/v1beta1
# and apps/v1alpha1 are gone from current clusters, so pass a custom table
# to KubeClient for anything newer.
RESOURCE_DESCRIPTORS: dict[str, ResourceDescriptor] = _table(
    ResourceDescriptor("configmap", "/api/v1", "configmaps", namespaced=True),
    ResourceDescriptor("daemonset", "/apis/extensions/v1beta1", "daemonsets", namespaced=True),
    ResourceDescriptor("deployment", "/apis/extensions/v1beta1", "deployments", namespaced=True),
    ResourceDescriptor("node", "/api/v1", "nodes", namespaced=False),
    ResourceDescriptor("petset", "/apis/apps/v1alpha1", "petsets", namespaced=True),
    ResourceDescriptor("pod", "/api/v1", "pods", namespaced=True),
    ResourceDescriptor("secret", "/api/v1", "secrets", namespaced=True),
    ResourceDescriptor("service", "/api/v1", "services", namespaced=True),
    ResourceDescriptor("persistentvolume", "/api/v1", "persistentvolumes", namespaced=False),
    ResourceDescriptor(
        "persistentvolumeclaim", "/api/v1", "persistentvolumeclaims", namespaced=True
    ),
)


def get_descriptor(
    kind: str,
    descriptors: dict[str, ResourceDescriptor] = RESOURCE_DESCRIPTORS,
) -> ResourceDescriptor:
    try:
        return descriptors[kind]
    except KeyError:
        raise ConfigError(
            f"Unknown resource kind '{kind}'. Available: {sorted(descriptors)}"
        ) from None
