"""Control-plane certificate services.

Resolution of a cluster's certificate state, expiration reporting,
rotation of legacy clusters and persistence of rotated bundles.
"""

from cluster_certs.services.certificates.inventory import (
    CertificateExpiry,
    expiration_of,
    list_identities,
    report,
)
from cluster_certs.services.certificates.management import ManagementContext
from cluster_certs.services.certificates.manager import ClusterCertificateManager
from cluster_certs.services.certificates.persistence import PersistenceEngine, PersistenceResult
from cluster_certs.services.certificates.rotation import (
    RotationCoordinator,
    RotationNotApplicable,
    RotationResult,
)
from cluster_certs.services.certificates.secret_store import SecretStore
from cluster_certs.services.certificates.state_resolver import (
    ClusterStateResolver,
    StateFound,
    StateNotFound,
)

__all__ = [
    "CertificateExpiry",
    "ClusterCertificateManager",
    "ClusterStateResolver",
    "ManagementContext",
    "PersistenceEngine",
    "PersistenceResult",
    "RotationCoordinator",
    "RotationNotApplicable",
    "RotationResult",
    "SecretStore",
    "StateFound",
    "StateNotFound",
    "expiration_of",
    "list_identities",
    "report",
]
