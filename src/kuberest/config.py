# ABOUTME: Configuration management for the kuberest Kubernetes API client
# ABOUTME: Handles environment variables, credential locations, and transport options

"""
Configuration management using pydantic-settings.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module reads, validates and exposes the client's settings:

1. WHERE the API server is (KUBEREST_API_URL, or the in-cluster service)
2. HOW to authenticate (explicit token, or service-account files)
3. TRANSPORT options (timeout, retries, TLS verification)
4. OBSERVABILITY options (log level, JSON logs, audit log file)

=============================================================================
ENVIRONMENT VARIABLE MAPPING
=============================================================================

    KUBEREST_API_URL          -> API server URL
    KUBEREST_TOKEN            -> Bearer token (skips service-account files)
    KUBEREST_TOKEN_PATH       -> Service-account token file
    KUBEREST_CA_PATH          -> Cluster CA certificate file
    KUBEREST_CREDENTIAL_TTL   -> Seconds to cache credentials (0 = re-read per call)
    KUBEREST_TIMEOUT          -> HTTP timeout in seconds
    KUBEREST_RETRY_ATTEMPTS   -> Attempts for timeouts/connection errors (1 = no retry)
    KUBEREST_INSECURE         -> Skip TLS certificate verification
    KUBEREST_AUDIT_LOG        -> Path to audit log file
    KUBEREST_LOG_LEVEL        -> DEBUG, INFO, WARNING, ERROR, CRITICAL
    KUBEREST_JSON_LOGS        -> Render logs as JSON lines

When KUBEREST_API_URL is not set, the URL is derived from the
KUBERNETES_SERVICE_HOST / KUBERNETES_SERVICE_PORT variables Kubernetes
injects into every pod, falling back to https://kubernetes.default.svc.
"""

# =============================================================================
# IMPORTS
# =============================================================================

from __future__ import annotations

import os
from pathlib import Path  # noqa: TC003 - Required at runtime for Pydantic
from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kuberest.utils.auth import SERVICE_ACCOUNT_CA, SERVICE_ACCOUNT_TOKEN

IN_CLUSTER_URL = "https://kubernetes.default.svc"


def normalize_url(v: str) -> str:
    """Prepend https:// to schemeless URLs and strip trailing slashes."""
    if not v.startswith(("http://", "https://")):
        v = f"https://{v}"
    return v.rstrip("/")


def in_cluster_url() -> str:
    """
    API server URL as seen from inside a pod.

    IPv6 service hosts are bracketed. Without the service variables the
    cluster DNS name is used.
    """
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    if not host:
        return IN_CLUSTER_URL
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
    if ":" in host:
        host = f"[{host}]"
    return f"https://{host}:{port}"


# =============================================================================
# CLUSTER SETTINGS
# =============================================================================


class ClusterSettings(BaseSettings):
    """
    Client configuration.

    USAGE:
    ------
        settings = load_settings()      # Reads from environment
        settings.base_url               # Effective API server URL
        settings.credential_ttl         # 0.0 unless configured
    """

    model_config = SettingsConfigDict(
        env_prefix="KUBEREST_",
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # API SERVER
    # -------------------------------------------------------------------------

    api_url: str = Field(
        default="",  # Empty string = derive from the pod environment
        description="Kubernetes API server URL",
    )

    # -------------------------------------------------------------------------
    # CREDENTIALS
    # -------------------------------------------------------------------------

    token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token; when empty the service-account token file is used",
    )
    # SecretStr keeps the token out of reprs and logs.
    # To get the actual value: token.get_secret_value()

    token_path: Path = Field(
        default=SERVICE_ACCOUNT_TOKEN,
        description="Service-account token file",
    )

    ca_path: Path = Field(
        default=SERVICE_ACCOUNT_CA,
        description="Cluster CA certificate file",
    )

    credential_ttl: float = Field(
        default=0.0,
        ge=0.0,
        description="Seconds to reuse credentials read from files (0 = re-read on every call)",
    )
    # The token is re-read on every request by default, so rotated
    # credentials take effect immediately. A high-QPS client may raise this
    # to a few seconds; the provider never caches for the process lifetime.

    # -------------------------------------------------------------------------
    # TRANSPORT
    # -------------------------------------------------------------------------

    timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout in seconds",
    )

    retry_attempts: int = Field(
        default=1,
        ge=1,
        description="Attempts for timeouts and connection errors (1 = no retry)",
    )
    # Retries only cover requests that never got an answer. HTTP error
    # statuses are returned or raised as-is; `ensure` never retries.

    insecure: bool = Field(
        default=False,
        description="Skip TLS verification",
    )
    # DANGEROUS outside local development clusters with self-signed certs.

    # -------------------------------------------------------------------------
    # OBSERVABILITY
    # -------------------------------------------------------------------------

    audit_log: Path | None = Field(
        default=None,
        description="Path to audit log file",
    )
    # When None, audit entries go to the structlog stream.

    log_level: Annotated[str, Field(pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")] = Field(
        default="INFO",
        description="Logging level",
    )

    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON lines",
    )

    # -------------------------------------------------------------------------
    # VALIDATORS AND COMPUTED PROPERTIES
    # -------------------------------------------------------------------------

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Normalize an explicitly configured URL; leave empty as empty."""
        return normalize_url(v) if v else v

    @property
    def base_url(self) -> str:
        """Effective API server URL: configured, or derived in-cluster."""
        return self.api_url or in_cluster_url()


# =============================================================================
# SETTINGS LOADER
# =============================================================================


def load_settings() -> ClusterSettings:
    """
    Load settings from environment with validation.

    If KUBEREST_ENV_FILE is set, additional variables are read from that
    dotenv file (useful for local development against a kind cluster).

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return ClusterSettings(
        _env_file=os.environ.get("KUBEREST_ENV_FILE"),
    )
