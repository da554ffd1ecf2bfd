# ABOUTME: Credential discovery for in-cluster Kubernetes API access
# ABOUTME: Resolves the service-account bearer token and CA trust anchor per call

"""
Authentication providers.

An AuthProvider is injected into the RequestExecutor and asked for the
current AuthMaterial before every request. Absence of a token or CA
certificate is a valid state (anonymous access, default TLS trust), not an
error.

ServiceAccountAuthProvider reads the files Kubernetes mounts into every pod
(https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/).
The kubelet rotates projected tokens in place, so the provider re-reads
them: on every call by default, or at most every `ttl` seconds.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from kuberest.config import ClusterSettings

logger = structlog.get_logger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
SERVICE_ACCOUNT_TOKEN = SERVICE_ACCOUNT_DIR / "token"
SERVICE_ACCOUNT_CA = SERVICE_ACCOUNT_DIR / "ca.crt"


@dataclass(frozen=True)
class AuthMaterial:
    """Bearer token and PEM trust anchor for one request; either may be absent."""

    token: str | None = None
    trust_anchor: bytes | None = None

    @property
    def anonymous(self) -> bool:
        return self.token is None


class AuthProvider(Protocol):
    def resolve(self) -> AuthMaterial: ...


class AnonymousAuthProvider:
    """No token, default TLS trust."""

    def resolve(self) -> AuthMaterial:
        return AuthMaterial()


class StaticAuthProvider:
    """Fixed credentials, e.g. a token passed in through configuration."""

    def __init__(self, token: str | None = None, trust_anchor: bytes | None = None) -> None:
        self._material = AuthMaterial(token=token or None, trust_anchor=trust_anchor or None)

    def resolve(self) -> AuthMaterial:
        return self._material


class ServiceAccountAuthProvider:
    """
    Service-account credentials read from the filesystem.

    With ttl=0 (the default) both files are re-read on every resolve(), so
    a rotated token is used by the very next request. A positive ttl caches
    the material for at most that many seconds; invalidate() forces the
    next resolve() to re-read regardless.
    """

    def __init__(
        self,
        token_path: Path = SERVICE_ACCOUNT_TOKEN,
        ca_path: Path = SERVICE_ACCOUNT_CA,
        ttl: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._token_path = Path(token_path)
        self._ca_path = Path(ca_path)
        self._ttl = ttl
        self._clock = clock
        self._cached: AuthMaterial | None = None
        self._loaded_at = 0.0

    def resolve(self) -> AuthMaterial:
        now = self._clock()
        if self._cached is not None and self._ttl > 0 and now - self._loaded_at < self._ttl:
            return self._cached

        material = AuthMaterial(
            token=_read_token(self._token_path),
            trust_anchor=_read_bytes(self._ca_path),
        )
        if self._cached is None or material != self._cached:
            logger.debug(
                "Resolved service-account credentials",
                has_token=material.token is not None,
                has_ca=material.trust_anchor is not None,
            )
        self._cached = material
        self._loaded_at = now
        return material

    def invalidate(self) -> None:
        self._cached = None


def _read_token(path: Path) -> str | None:
    # An empty token file is treated the same as a missing one.
    try:
        return path.read_text(encoding="utf-8").strip() or None
    except FileNotFoundError:
        return None


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes() or None
    except FileNotFoundError:
        return None


def auth_provider_from_settings(settings: ClusterSettings) -> AuthProvider:
    """
    Pick the provider for the configured environment.

    An explicitly configured token wins (out-of-cluster use); the CA file is
    still honoured when it exists. Otherwise the service-account files are
    used, which degrades to anonymous access when they are absent.
    """
    token = settings.token.get_secret_value()
    if token:
        return StaticAuthProvider(token=token, trust_anchor=_read_bytes(settings.ca_path))
    return ServiceAccountAuthProvider(
        token_path=settings.token_path,
        ca_path=settings.ca_path,
        ttl=settings.credential_ttl,
    )
