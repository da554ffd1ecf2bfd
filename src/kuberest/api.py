# ABOUTME: KubeClient facade wiring settings, credentials, transport and resource registry
# ABOUTME: Entry point for callers: async context manager exposing one operation set per kind

"""KubeClient: the public entry point."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from kuberest.config import ClusterSettings, load_settings
from kuberest.descriptors import RESOURCE_DESCRIPTORS, ResourceDescriptor, get_descriptor
from kuberest.operations import ResourceOperations, build_registry
from kuberest.utils.auth import AuthProvider, auth_provider_from_settings
from kuberest.utils.client import RequestExecutor
from kuberest.utils.logging import AuditLogger, configure_logging

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = structlog.get_logger(__name__)


class KubeClient:
    """
    Client for a Kubernetes-style REST API.

    USAGE:
    ------
        async with KubeClient() as kube:
            await kube["configmap"].ensure(
                {"metadata": {"name": "settings"}, "data": {"mode": "fast"}},
                namespace="web",
            )
            nodes = await kube.resource("node").list()

    Settings default to load_settings() (environment). The auth provider
    defaults to one chosen from the settings; pass your own to control
    credential discovery explicitly (tests pass a static provider).
    With configure_logs=True the structlog pipeline is set up from
    settings.log_level and settings.json_logs; libraries embedding the
    client usually leave that to the application.
    """

    def __init__(
        self,
        settings: ClusterSettings | None = None,
        *,
        auth: AuthProvider | None = None,
        descriptors: Mapping[str, ResourceDescriptor] = RESOURCE_DESCRIPTORS,
        configure_logs: bool = False,
    ) -> None:
        self.settings = settings if settings is not None else load_settings()
        if configure_logs:
            configure_logging(level=self.settings.log_level, json_output=self.settings.json_logs)
        self._executor = RequestExecutor(
            auth=auth if auth is not None else auth_provider_from_settings(self.settings),
            timeout=self.settings.timeout,
            retry_attempts=self.settings.retry_attempts,
            insecure=self.settings.insecure,
        )
        self._descriptors = dict(descriptors)
        self._registry = build_registry(
            self._descriptors.values(),
            self._executor,
            self.settings.base_url,
            AuditLogger(self.settings.audit_log),
        )

    async def __aenter__(self) -> KubeClient:
        await self._executor.__aenter__()
        logger.info("Kubernetes client ready", url=self.settings.base_url, kinds=len(self._registry))
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._executor.__aexit__(*args)
        logger.info("Kubernetes client closed", url=self.settings.base_url)

    @property
    def kinds(self) -> list[str]:
        return sorted(self._registry)

    def resource(self, kind: str) -> ResourceOperations:
        """Operation set for `kind`; raises ConfigError for unknown kinds."""
        return self._registry[get_descriptor(kind, self._descriptors).kind]

    def __getitem__(self, kind: str) -> ResourceOperations:
        return self.resource(kind)
