# ABOUTME: kuberest package initialization
# ABOUTME: Exposes the client facade, descriptors, errors and version information

"""
kuberest - descriptor-driven client for Kubernetes-style REST APIs.

=============================================================================
PACKAGE STRUCTURE OVERVIEW
=============================================================================

kuberest/
├── __init__.py          <- Package entry point and public API
├── api.py               <- KubeClient: settings + auth + transport + registry
├── config.py            <- Configuration management (env vars, settings)
├── descriptors.py       <- Resource descriptors, descriptor table, path builder
├── operations.py        <- Per-kind operation sets (get/list/create/...)
├── reconcile.py         <- The `ensure` create-or-update algorithm
└── utils/
    ├── __init__.py      <- Utils subpackage marker
    ├── auth.py          <- Service-account token and CA discovery
    ├── client.py        <- Request executor, outcomes, error classes
    └── logging.py       <- Structured logging, masking, audit trail
"""

from kuberest.api import KubeClient
from kuberest.config import ClusterSettings, load_settings
from kuberest.descriptors import RESOURCE_DESCRIPTORS, ResourceDescriptor, build_path
from kuberest.operations import ResourceOperations
from kuberest.utils.client import (
    APIError,
    ConfigError,
    KubeError,
    OperationNotSupported,
    Outcome,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    "RESOURCE_DESCRIPTORS",
    "APIError",
    "ClusterSettings",
    "ConfigError",
    "KubeClient",
    "KubeError",
    "OperationNotSupported",
    "Outcome",
    "ResourceDescriptor",
    "ResourceOperations",
    "TransportError",
    "__version__",
    "build_path",
    "load_settings",
]
