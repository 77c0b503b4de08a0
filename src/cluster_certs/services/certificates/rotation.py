"""Certificate rotation for legacy clusters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from cluster_certs.integrations.rke.engine import ExternalFlags
from cluster_certs.integrations.rke.models import RotateCertificates
from cluster_certs.services.certificates.state_resolver import StateFound

if TYPE_CHECKING:
    from cluster_certs.integrations.rke.engine import BootstrapEngine
    from cluster_certs.integrations.rke.models import CertificateBundle, RKEConfig
    from cluster_certs.services.certificates.persistence import PersistenceEngine
    from cluster_certs.services.certificates.state_resolver import ClusterStateResolver

logger = structlog.get_logger()

NOT_APPLICABLE_ADVISORY = (
    "Cluster [{cluster}] is not a legacy cluster, please use rotate certificate from Rancher UI"
)


@dataclass(frozen=True)
class RotationResult:
    """New client credentials and certificate bundle produced by a rotation."""

    client_cert: str
    client_key: str
    certificates: CertificateBundle = field(default_factory=dict)


@dataclass(frozen=True)
class RotationNotApplicable:
    """Rotation was refused because the cluster is tracked by a state record."""

    cluster_name: str

    @property
    def advisory(self) -> str:
        """Message telling the operator where to rotate instead."""
        return NOT_APPLICABLE_ADVISORY.format(cluster=self.cluster_name)


class RotationCoordinator:
    """Rotates the certificates of legacy clusters through the engine."""

    def __init__(
        self,
        resolver: ClusterStateResolver,
        engine: BootstrapEngine,
        persistence: PersistenceEngine,
    ) -> None:
        self._resolver = resolver
        self._engine = engine
        self._persistence = persistence
        self._log = logger.bind(entity="rotation")

    def rotate(
        self,
        cluster_name: str,
        rke_config: RKEConfig,
    ) -> RotationResult | RotationNotApplicable:
        """Rotate a legacy cluster's certificates.

        Clusters with a full state record are left alone and get a
        RotationNotApplicable. Engine errors propagate unchanged.

        Raises:
            EngineInitError: If the engine rejects the configuration.
            EngineBootstrapError: If bringing the cluster up fails.
        """
        if isinstance(self._resolver.lookup(cluster_name), StateFound):
            outcome = RotationNotApplicable(cluster_name=cluster_name)
            self._log.info("rotation_not_applicable", cluster=cluster_name)
            return outcome

        self._log.info("rotating_legacy_cluster_certificates", cluster=cluster_name)
        flags = ExternalFlags(cluster_name=cluster_name, legacy=True)
        config = rke_config.model_copy(update={"rotate_certificates": RotateCertificates()})

        self._engine.cluster_init(config, flags)
        up = self._engine.cluster_up(flags)

        self._log.info(
            "rotated_certificates",
            cluster=cluster_name,
            count=len(up.certificates),
        )
        return RotationResult(
            client_cert=up.client_cert,
            client_key=up.client_key,
            certificates=dict(up.certificates),
        )

    def rotate_and_persist(
        self,
        cluster_name: str,
        rke_config: RKEConfig,
    ) -> RotationResult | RotationNotApplicable:
        """Rotate, persist the new bundle, then update the cluster record.

        The cluster record is only touched once every certificate secret has
        been written.

        Raises:
            BundlePersistenceError: If any certificate could not be written.
            ClusterRecordUpdateError: If the cluster record update failed.
        """
        outcome = self.rotate(cluster_name, rke_config)
        if isinstance(outcome, RotationNotApplicable):
            return outcome

        self._persistence.persist(outcome.certificates)
        self._persistence.update_cluster_record(
            cluster_name,
            outcome.client_cert,
            outcome.client_key,
            outcome.certificates,
        )
        return outcome
