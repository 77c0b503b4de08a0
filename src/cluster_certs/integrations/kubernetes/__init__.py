"""Kubernetes integration - API client and configuration models."""

from cluster_certs.integrations.kubernetes.client import KubernetesClient
from cluster_certs.integrations.kubernetes.config import (
    CertsConfig,
    DownstreamClusterConfig,
    EngineConfig,
    ManagementClusterConfig,
    PersistenceConfig,
)
from cluster_certs.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

__all__ = [
    "CertsConfig",
    "DownstreamClusterConfig",
    "EngineConfig",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesValidationError",
    "ManagementClusterConfig",
    "PersistenceConfig",
]
