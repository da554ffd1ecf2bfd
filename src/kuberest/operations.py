# ABOUTME: Per-kind operation sets generated from resource descriptors
# ABOUTME: Provides get/list/create/apply/delete/exists/ensure/update for one resource kind

"""
Operation sets.

One ResourceOperations object exists per resource kind. It combines the
kind's descriptor (paths, capabilities), the shared RequestExecutor
(network) and, for `ensure`, the reconciliation engine.

Every object exposes the same interface; operations a descriptor does not
enable raise OperationNotSupported before touching the network:

    | Operation | Enabled when | Method          |
    |-----------|--------------|-----------------|
    | get       | always       | GET             |
    | list      | listable     | GET             |
    | create    | writable     | POST            |
    | apply     | writable     | PUT             |
    | delete    | writable     | DELETE          |
    | exists    | writable     | GET, no raise   |
    | ensure    | writable     | exists/get/PUT  |
    | update    | writable     | GET then PUT    |

NAMESPACES:
-----------
Every operation takes `namespace="default"`. Passing None drops the
namespace segment for that call. Cluster-scoped kinds ignore it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from kuberest import reconcile
from kuberest.descriptors import ResourceDescriptor, build_path
from kuberest.reconcile import DEFAULT_NAMESPACE, require_name
from kuberest.utils.client import APIError, KubeError, OperationNotSupported, Outcome, RequestSpec
from kuberest.utils.logging import with_correlation_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from kuberest.utils.client import RequestExecutor
    from kuberest.utils.logging import AuditLogger

logger = structlog.get_logger(__name__)

READ_OPERATIONS = ("get",)
LIST_OPERATIONS = ("list",)
WRITE_OPERATIONS = ("create", "apply", "delete", "exists", "ensure", "update")


class ResourceOperations:
    """CRUD and reconciliation operations for one resource kind."""

    def __init__(
        self,
        descriptor: ResourceDescriptor,
        executor: RequestExecutor,
        base_url: str,
        audit: AuditLogger | None = None,
    ) -> None:
        self.descriptor = descriptor
        self._executor = executor
        self._base_url = base_url
        self._audit = audit

    def __repr__(self) -> str:
        return f"<ResourceOperations {self.descriptor.kind}>"

    @property
    def capabilities(self) -> frozenset[str]:
        ops = set(READ_OPERATIONS)
        if self.descriptor.listable:
            ops.update(LIST_OPERATIONS)
        if self.descriptor.writable:
            ops.update(WRITE_OPERATIONS)
        return frozenset(ops)

    def path(self, namespace: str | None = DEFAULT_NAMESPACE, name: str | None = None) -> str:
        """Path for this kind, dropping the namespace for cluster-scoped kinds."""
        return build_path(
            self.descriptor,
            namespace=namespace if self.descriptor.namespaced else None,
            name=name,
        )

    def _require(self, operation: str) -> None:
        if operation not in self.capabilities:
            raise OperationNotSupported(
                f"'{operation}' is not supported for resource kind '{self.descriptor.kind}'"
            )

    def _target(self, namespace: str | None, name: str | None = None) -> str:
        parts = [self.descriptor.resource_name]
        if self.descriptor.namespaced and namespace:
            parts.append(namespace)
        if name:
            parts.append(name)
        return "/".join(parts)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        return await self._executor.execute(
            RequestSpec(base_url=self._base_url, method=method, path=path, **kwargs)
        )

    async def _write(self, action: str, target: str, method: str, path: str, **kwargs: Any) -> Any:
        try:
            result = await self._request(method, path, **kwargs)
        except APIError as e:
            if self._audit:
                self._audit.log_error(action, target, str(e))
            raise
        if self._audit:
            status = result.status if isinstance(result, Outcome) else 200
            self._audit.log_write(action, target, details={"status": status})
        return result

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    @with_correlation_id
    async def get(
        self,
        name: str,
        namespace: str | None = DEFAULT_NAMESPACE,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        """Return one resource document."""
        self._require("get")
        return await self._request("GET", self.path(namespace, name), params=params)

    @with_correlation_id
    async def list(
        self,
        namespace: str | None = DEFAULT_NAMESPACE,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        """
        Return the collection document ({"kind": "...List", "items": [...]}).

        `params` passes query parameters through, e.g.
        {"labelSelector": "app=web"}.
        """
        self._require("list")
        return await self._request("GET", self.path(namespace), params=params)

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    @with_correlation_id
    async def create(self, data: Mapping[str, Any], namespace: str | None = DEFAULT_NAMESPACE) -> Any:
        """POST `data` to the collection."""
        self._require("create")
        name = (data.get("metadata") or {}).get("name")
        return await self._write(
            "create", self._target(namespace, name), "POST", self.path(namespace), body=data
        )

    @with_correlation_id
    async def apply(self, data: Mapping[str, Any], namespace: str | None = DEFAULT_NAMESPACE) -> Any:
        """PUT `data` over the resource named by data.metadata.name."""
        self._require("apply")
        name = require_name(data)
        return await self._write(
            "apply", self._target(namespace, name), "PUT", self.path(namespace, name), body=data
        )

    @with_correlation_id
    async def delete(self, name: str, namespace: str | None = DEFAULT_NAMESPACE) -> Any:
        self._require("delete")
        return await self._write(
            "delete", self._target(namespace, name), "DELETE", self.path(namespace, name)
        )

    @with_correlation_id
    async def exists(self, name: str, namespace: str | None = DEFAULT_NAMESPACE) -> bool:
        """True if GET on the resource answers 200; any other status is False."""
        self._require("exists")
        outcome = await self._request(
            "GET",
            self.path(namespace, name),
            return_body=False,
            suppress_errors=True,
        )
        return outcome.status == 200

    @with_correlation_id
    async def ensure(self, data: Mapping[str, Any], namespace: str | None = DEFAULT_NAMESPACE) -> Any:
        """Create or replace the resource; see kuberest.reconcile."""
        self._require("ensure")
        return await reconcile.ensure(self, data, namespace=namespace)

    @with_correlation_id
    async def update(
        self,
        name: str,
        key_path: Sequence[str],
        fn: Callable[[Any], Any],
        namespace: str | None = DEFAULT_NAMESPACE,
    ) -> Any:
        """
        Fetch the resource, replace the value at `key_path` with fn(old), apply.

        Missing intermediate mappings are created and `fn` receives None for
        a missing leaf. Not safe against concurrent writers: a change landing
        between the GET and the PUT makes the PUT fail with 409.

            await client["deployment"].update("web", ["spec", "replicas"], lambda n: n + 1)
        """
        self._require("update")
        current = await self.get(name, namespace=namespace)
        if isinstance(current, Outcome):
            current = current.body
        if not isinstance(current, Mapping):
            raise KubeError(f"GET {self.path(namespace, name)} returned no resource document")
        return await self.apply(update_in(current, key_path, fn), namespace=namespace)


def update_in(document: Mapping[str, Any], key_path: Sequence[str], fn: Callable[[Any], Any]) -> dict[str, Any]:
    """Copy-on-write update of a nested value; `document` is not mutated."""
    if not key_path:
        raise ValueError("key_path must not be empty")
    head, *rest = key_path
    updated = dict(document)
    if rest:
        child = document.get(head)
        updated[head] = update_in(child if isinstance(child, Mapping) else {}, rest, fn)
    else:
        updated[head] = fn(document.get(head))
    return updated


def build_registry(
    descriptors: Iterable[ResourceDescriptor],
    executor: RequestExecutor,
    base_url: str,
    audit: AuditLogger | None = None,
) -> dict[str, ResourceOperations]:
    """Build one operation set per descriptor, keyed by kind."""
    registry = {d.kind: ResourceOperations(d, executor, base_url, audit) for d in descriptors}
    logger.debug("Built resource registry", kinds=sorted(registry))
    return registry
