"""RKE integration - state models, certificate names and the rke engine."""

from cluster_certs.integrations.rke.engine import (
    BootstrapEngine,
    ClusterUpResult,
    ExternalFlags,
    RkeClusterObject,
    RkeCommandEngine,
)
from cluster_certs.integrations.rke.models import (
    CertificateBundle,
    CertificateRecord,
    ClusterInfo,
    ClusterState,
    FullState,
    RKEConfig,
    RKEConfigNode,
    RKEState,
    RotateCertificates,
    bundle_to_json,
)

__all__ = [
    "BootstrapEngine",
    "CertificateBundle",
    "CertificateRecord",
    "ClusterInfo",
    "ClusterState",
    "ClusterUpResult",
    "ExternalFlags",
    "FullState",
    "RKEConfig",
    "RKEConfigNode",
    "RKEState",
    "RkeClusterObject",
    "RkeCommandEngine",
    "RotateCertificates",
    "bundle_to_json",
]
