# ABOUTME: HTTP request executor for the Kubernetes REST API with layered options
# ABOUTME: Encodes/decodes JSON, injects credentials, and classifies responses into outcomes

"""
Request execution against a Kubernetes-style REST API.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module issues ONE HTTP call for a fully assembled RequestSpec. It:

1. LAYERS request options: library defaults, caller fields, JSON body and
   credentials, in that exact order (see `layer_request_options`)
2. AUTHENTICATES: asks the injected AuthProvider for the current bearer
   token and CA trust anchor on every call
3. CLASSIFIES the response:
   - 200 with return_body: the decoded JSON body
   - any other 2xx (e.g. 201 Created): an Outcome
   - non-2xx: APIError carrying the Outcome, or the Outcome itself when
     the caller asked to suppress errors (`exists` does)
4. TRANSLATES network failures into TransportError

It knows nothing about resource kinds, paths or reconciliation; those live
in `kuberest.descriptors`, `kuberest.operations` and `kuberest.reconcile`.

=============================================================================
TRUST ANCHORS AND CONNECTION POOLS
=============================================================================

httpx binds TLS verification to the client (connection pool), not to the
individual request. Credentials are resolved per call and the CA file may
rotate, so the executor keeps one pool per distinct trust anchor:

    None            -> pool verifying against the default system trust store
    <PEM bytes A>   -> pool whose SSL context additionally trusts A
    <PEM bytes B>   -> another pool, created when the CA rotates to B

Pools are created lazily and closed together in __aexit__.
"""

# =============================================================================
# IMPORTS
# =============================================================================

from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from kuberest.utils.auth import AuthMaterial, AuthProvider

logger = structlog.get_logger(__name__)

METHODS = frozenset(["GET", "POST", "PUT", "DELETE"])

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

# Failures worth retrying when retries are enabled: the request never
# reached the server or never got an answer.
RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.ConnectError)


# =============================================================================
# ERROR CLASSES
# =============================================================================


class KubeError(Exception):
    """Base class for every error raised by kuberest."""


class ConfigError(KubeError):
    """
    A precondition failed before any network call was attempted.

    Raised for descriptors with an empty API prefix or resource name, for
    documents without `metadata.name` passed to apply/ensure, and for
    unknown resource kinds or HTTP methods.
    """


class OperationNotSupported(ConfigError):
    """The resource kind's descriptor does not enable this operation."""


class TransportError(KubeError):
    """Network-level failure: connection refused, timeout, TLS failure."""


class APIError(KubeError):
    """
    Non-2xx HTTP response from the API server.

    The full Outcome is attached so callers can branch on the status code
    and inspect the server's Status document:

        try:
            await client["pod"].delete("nginx")
        except APIError as e:
            if e.status == 404:
                ...
    """

    def __init__(self, outcome: Outcome, method: str | None = None, path: str | None = None) -> None:
        self.outcome = outcome
        self.method = method
        self.path = path
        super().__init__(str(self))

    @property
    def status(self) -> int:
        return self.outcome.status

    @property
    def message(self) -> str:
        """Human-readable message from a Kubernetes Status body, if any."""
        body = self.outcome.body
        if isinstance(body, dict):
            return str(body.get("message") or body.get("reason") or f"HTTP {self.status}")
        if isinstance(body, str) and body:
            return body[:200]
        return f"HTTP {self.status}"

    def __str__(self) -> str:
        base = f"Kubernetes API error ({self.status}): {self.message}"
        if self.method and self.path:
            base += f" [{self.method} {self.path}]"
        return base


# =============================================================================
# REQUEST AND RESPONSE VALUES
# =============================================================================


@dataclass(frozen=True)
class RequestSpec:
    """
    Everything needed to issue one HTTP call.

    Constructed per call by the operation set and discarded afterwards.

    Fields:
    - base_url: API server URL, e.g. "https://kubernetes.default.svc"
    - method: One of GET, POST, PUT, DELETE
    - path: Output of build_path, e.g. "/api/v1/namespaces/default/pods"
    - body: Resource document to send as JSON (optional)
    - headers: Caller-supplied headers (optional)
    - params: Query parameters, e.g. {"labelSelector": "app=web"} (optional)
    - return_body: Return the decoded body for a 200 response
    - suppress_errors: Return non-2xx responses as Outcome instead of raising
    """

    base_url: str
    method: str
    path: str
    body: Any = None
    headers: Mapping[str, str] | None = None
    params: Mapping[str, str] | None = None
    return_body: bool = True
    suppress_errors: bool = False

    def __post_init__(self) -> None:
        if self.method not in METHODS:
            raise ConfigError(f"Unsupported HTTP method '{self.method}'. Allowed: {sorted(METHODS)}")

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.path}"


@dataclass(frozen=True)
class Outcome:
    """Inspectable result of a request that did not yield a plain body."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def from_response(cls, response: httpx.Response) -> Outcome:
        """Build an Outcome, decoding the body as JSON when possible."""
        return cls(
            status=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response),
        )


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


# =============================================================================
# OPTION LAYERING
# =============================================================================


def layer_request_options(spec: RequestSpec, auth: AuthMaterial) -> dict[str, Any]:
    """
    Merge the request options for one call, lowest precedence first.

    LAYERS:
    -------
    1. Library defaults: JSON Content-Type and Accept headers
    2. Caller fields: spec.headers and spec.params
    3. Body: spec.body, JSON-encoded by httpx
    4. Auth-derived fields: Authorization header, trust anchor

    Headers are merged KEY BY KEY. A caller's custom headers survive
    alongside the injected Authorization header; only a caller-supplied
    Authorization is replaced when a token is present. Header names are
    compared case-insensitively.

    Returns:
        Keyword arguments for httpx.AsyncClient.request(), plus the
        "trust_anchor" entry consumed by the executor to pick a pool.
    """
    headers = httpx.Headers(DEFAULT_HEADERS)
    headers.update(spec.headers or {})

    options: dict[str, Any] = {
        "method": spec.method,
        "url": spec.url,
        "params": dict(spec.params) if spec.params else None,
    }

    if spec.body is not None:
        options["json"] = spec.body

    if auth.token:
        headers["Authorization"] = f"Bearer {auth.token}"
    options["trust_anchor"] = auth.trust_anchor

    options["headers"] = headers
    return options


def build_ssl_context(trust_anchor: bytes) -> ssl.SSLContext:
    """Default SSL context with the given PEM bundle added to its trust set."""
    context = ssl.create_default_context()
    context.load_verify_locations(cadata=trust_anchor.decode("ascii"))
    return context


# =============================================================================
# REQUEST EXECUTOR
# =============================================================================


class RequestExecutor:
    """
    Async executor for RequestSpecs.

    LIFECYCLE:
    ----------
        async with RequestExecutor(auth_provider) as executor:
            pods = await executor.execute(RequestSpec(...))

    One connection pool is open at a time, bound to the current trust
    anchor.

    TRANSPORT OPTIONS:
    ------------------
    timeout, retries and TLS verification are configured HERE and nowhere
    else. `retry_attempts=1` (the default) means a single attempt; higher
    values retry timeouts and connection errors with exponential backoff.
    """

    def __init__(
        self,
        auth: AuthProvider,
        timeout: float = 30.0,
        retry_attempts: int = 1,
        insecure: bool = False,
    ) -> None:
        self._auth = auth
        self._timeout = timeout
        self._retry_attempts = max(1, retry_attempts)
        self._insecure = insecure
        self._clients: dict[bytes | None, httpx.AsyncClient] | None = None

    async def __aenter__(self) -> RequestExecutor:
        self._clients = {}
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._clients:
            for client in self._clients.values():
                await client.aclose()
        self._clients = None

    async def _client_for(self, trust_anchor: bytes | None) -> httpx.AsyncClient:
        """
        Return the connection pool for a trust anchor.

        Only the pool for the current anchor is kept. When the anchor
        changes (CA rotation) the previous pool is replaced, then closed;
        requests still in flight on it may fail.
        """
        if self._clients is None:
            raise RuntimeError("Executor not initialized. Use 'async with' context manager.")

        key = None if self._insecure else trust_anchor
        client = self._clients.get(key)
        if client is None:
            verify: bool | ssl.SSLContext
            if self._insecure:
                verify = False
            elif trust_anchor is None:
                verify = True
            else:
                try:
                    verify = build_ssl_context(trust_anchor)
                except (ssl.SSLError, ValueError) as e:
                    raise TransportError(f"Cannot load cluster CA certificate: {e}") from e
            stale = list(self._clients.values())
            client = httpx.AsyncClient(timeout=self._timeout, verify=verify)
            self._clients = {key: client}
            if stale:
                logger.info("Cluster CA changed, replacing connection pool")
            for old in stale:
                await old.aclose()
        return client

    async def execute(self, spec: RequestSpec) -> Any:
        """
        Issue the request described by `spec`.

        Returns:
            The decoded JSON body for a 200 response with return_body,
            otherwise an Outcome.

        Raises:
            APIError: On non-2xx status unless spec.suppress_errors
            TransportError: On network, timeout or TLS failure
            RuntimeError: If the executor was not entered
        """
        options = layer_request_options(spec, self._auth.resolve())
        client = await self._client_for(options.pop("trust_anchor"))

        log = logger.bind(method=spec.method, path=spec.path)
        log.debug("Making Kubernetes API request", headers=dict(options["headers"]))

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(**options)
        except httpx.TransportError as e:
            log.warning("Kubernetes API request failed", error=str(e))
            raise TransportError(f"{spec.method} {spec.url} failed: {e}") from e

        log.debug("Kubernetes API response", status=response.status_code)

        if response.status_code == 200 and spec.return_body:
            return _decode_body(response)

        outcome = Outcome.from_response(response)
        if outcome.ok or spec.suppress_errors:
            return outcome

        log.warning("Kubernetes API error", status=outcome.status)
        raise APIError(outcome, method=spec.method, path=spec.path)
