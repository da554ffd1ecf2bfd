# ABOUTME: Pytest fixtures and configuration for kuberest tests
# ABOUTME: Provides shared settings, fake credentials, and entered clients

import os
from typing import AsyncIterator

import pytest
from pydantic import SecretStr

from kuberest.api import KubeClient
from kuberest.config import ClusterSettings
from kuberest.descriptors import RESOURCE_DESCRIPTORS, ResourceDescriptor
from kuberest.operations import ResourceOperations
from kuberest.utils.auth import AuthMaterial, StaticAuthProvider
from kuberest.utils.client import RequestExecutor

BASE_URL = "https://kube.example.com:6443"


class RecordingAuthProvider:
    """Fake provider counting resolutions instead of touching the filesystem."""

    def __init__(self, material: AuthMaterial | None = None) -> None:
        self.material = material or AuthMaterial(token="test-token")
        self.calls = 0

    def resolve(self) -> AuthMaterial:
        self.calls += 1
        return self.material


@pytest.fixture
def settings(tmp_path) -> ClusterSettings:
    """Settings pointing at a fake API server with no service-account files."""
    return ClusterSettings(
        api_url=BASE_URL,
        token_path=tmp_path / "token",
        ca_path=tmp_path / "ca.crt",
    )


@pytest.fixture
def auth() -> RecordingAuthProvider:
    return RecordingAuthProvider()


@pytest.fixture
def anonymous_auth() -> StaticAuthProvider:
    return StaticAuthProvider()


@pytest.fixture
async def executor(auth: RecordingAuthProvider) -> AsyncIterator[RequestExecutor]:
    async with RequestExecutor(auth) as executor:
        yield executor


@pytest.fixture
def pods(executor: RequestExecutor) -> ResourceOperations:
    return ResourceOperations(RESOURCE_DESCRIPTORS["pod"], executor, BASE_URL)


@pytest.fixture
def services(executor: RequestExecutor) -> ResourceOperations:
    return ResourceOperations(RESOURCE_DESCRIPTORS["service"], executor, BASE_URL)


@pytest.fixture
def nodes(executor: RequestExecutor) -> ResourceOperations:
    return ResourceOperations(RESOURCE_DESCRIPTORS["node"], executor, BASE_URL)


@pytest.fixture
def events(executor: RequestExecutor) -> ResourceOperations:
    """A read-only, non-listable kind for capability tests."""
    descriptor = ResourceDescriptor(
        "event", "/api/v1", "events", namespaced=True, read_only=True, listable=False
    )
    return ResourceOperations(descriptor, executor, BASE_URL)


@pytest.fixture
def sample_pod() -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": "nginx", "namespace": "default", "labels": {"app": "web"}},
        "spec": {"containers": [{"name": "nginx", "image": "nginx:1.27"}]},
    }


@pytest.fixture
def sample_service() -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": "web"},
        "spec": {"selector": {"app": "web"}, "ports": [{"port": 80}]},
    }


@pytest.fixture
async def kube(settings: ClusterSettings, auth: RecordingAuthProvider) -> AsyncIterator[KubeClient]:
    async with KubeClient(settings, auth=auth) as client:
        yield client


# Integration test fixtures


@pytest.fixture
def live_settings() -> ClusterSettings | None:
    """Settings for a live cluster, or None when KUBEREST_API_URL is unset."""
    url = os.environ.get("KUBEREST_API_URL")
    if not url:
        return None
    return ClusterSettings(
        api_url=url,
        token=SecretStr(os.environ.get("KUBEREST_TOKEN", "")),
        insecure=os.environ.get("KUBEREST_INSECURE", "false").lower() == "true",
    )


@pytest.fixture
async def live_client(live_settings: ClusterSettings | None) -> AsyncIterator[KubeClient | None]:
    """Create a live client for integration tests."""
    if live_settings is None:
        yield None
        return

    async with KubeClient(live_settings) as client:
        yield client
