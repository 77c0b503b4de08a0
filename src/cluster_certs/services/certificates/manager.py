"""Certificate workflows for a downstream cluster.

Wires the management context, the downstream cluster client and the
certificate components together for the ``info``, ``rotate`` and
``update-record`` commands.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from cluster_certs.integrations.kubernetes.client import KubernetesClient
from cluster_certs.integrations.kubernetes.config import CertsConfig
from cluster_certs.integrations.rke.engine import (
    BootstrapEngine,
    ClusterUpResult,
    ExternalFlags,
    RkeCommandEngine,
)
from cluster_certs.services.certificates import inventory
from cluster_certs.services.certificates.management import ManagementContext
from cluster_certs.services.certificates.persistence import PersistenceEngine
from cluster_certs.services.certificates.rotation import (
    RotationCoordinator,
    RotationNotApplicable,
    RotationResult,
)
from cluster_certs.services.certificates.secret_store import SecretStore
from cluster_certs.services.certificates.state_resolver import ClusterStateResolver

if TYPE_CHECKING:
    from cluster_certs.services.certificates.inventory import CertificateExpiry

logger = structlog.get_logger()

DownstreamClientFactory = Callable[[str], KubernetesClient]
EngineFactory = Callable[[SecretStore, str], BootstrapEngine]


class ClusterCertificateManager:
    """Shows and rotates the control-plane certificates of a cluster.

    Example:
        ```python
        with KubernetesClient.from_kubeconfig() as client:
            manager = ClusterCertificateManager(client, CertsConfig.from_env())
            for entry in manager.show_certificates("c-abc12"):
                print(entry.identity, entry.not_after)
        ```
    """

    def __init__(
        self,
        management_client: KubernetesClient,
        config: CertsConfig | None = None,
        *,
        downstream_client_factory: DownstreamClientFactory | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            management_client: Client of the Rancher management cluster.
            config: Certificate tooling configuration.
            downstream_client_factory: Builds a downstream client from
                kubeconfig content.
            engine_factory: Builds the bootstrapping engine from the downstream
                secret store and kubeconfig.
        """
        self._config = config or CertsConfig()
        self._management_client = management_client
        self._management = ManagementContext(management_client, self._config.management)
        self._downstream_client_factory = downstream_client_factory or self._default_client
        self._engine_factory = engine_factory or self._default_engine
        self._log = logger.bind(entity="certificates")

    def _default_client(self, kubeconfig: str) -> KubernetesClient:
        return KubernetesClient.from_kubeconfig_content(
            kubeconfig,
            request_timeout=self._config.request_timeout,
        )

    def _default_engine(self, store: SecretStore, kubeconfig: str) -> BootstrapEngine:
        engine_config = self._config.engine
        return RkeCommandEngine(
            store,
            binary_path=engine_config.binary,
            work_dir=engine_config.work_dir,
            timeout=engine_config.timeout,
            kubeconfig=kubeconfig,
        )

    def _resolver(self, store: SecretStore, engine: BootstrapEngine) -> ClusterStateResolver:
        return ClusterStateResolver(
            store,
            engine,
            config_map_name=self._config.downstream.state_config_map_name,
        )

    def show_certificates(self, cluster_name: str) -> list[CertificateExpiry]:
        """Report the expiration of every control-plane certificate of a cluster.

        Raises:
            NotAnRkeClusterError: If the cluster was not provisioned by RKE.
            KubernetesError: On API failure.
        """
        self._log.info("showing_certificates", cluster=cluster_name)
        rke_config = self._management.get_rke_config(cluster_name)
        kubeconfig = self._management.get_cluster_kubeconfig(cluster_name)

        with self._downstream_client_factory(kubeconfig) as downstream:
            store = SecretStore(downstream, self._config.downstream.namespace)
            resolver = self._resolver(store, self._engine_factory(store, kubeconfig))
            state = resolver.resolve(cluster_name, rke_config)
            return inventory.report(state)

    def rotate_certificates(self, cluster_name: str) -> RotationResult | RotationNotApplicable:
        """Rotate a legacy cluster's certificates and persist the new bundle.

        Raises:
            NotAnRkeClusterError: If the cluster was not provisioned by RKE.
            EngineError: If the engine fails to rotate.
            BundlePersistenceError: If any certificate could not be written.
            ClusterRecordUpdateError: If the cluster record update failed.
        """
        self._log.info("rotating_certificates", cluster=cluster_name)
        rke_config = self._management.get_rke_config(cluster_name)
        kubeconfig = self._management.get_cluster_kubeconfig(cluster_name)

        with self._downstream_client_factory(kubeconfig) as downstream:
            store = SecretStore(downstream, self._config.downstream.namespace)
            engine = self._engine_factory(store, kubeconfig)
            coordinator = RotationCoordinator(
                self._resolver(store, engine),
                engine,
                PersistenceEngine(store, self._management, self._config.persistence),
            )
            return coordinator.rotate_and_persist(cluster_name, rke_config)

    def update_cluster_record(self, cluster_name: str) -> ClusterUpResult:
        """Store the bundle of the last rotation in the cluster record.

        Repairs a rotation whose certificates were saved but whose record
        update failed; the bundle is reread from the engine's local state.

        Raises:
            EngineError: If no usable state from a previous rotation exists.
            ClusterRecordUpdateError: If the cluster record update failed.
        """
        self._log.info("updating_cluster_record", cluster=cluster_name)
        kubeconfig = self._management.get_cluster_kubeconfig(cluster_name)

        with self._downstream_client_factory(kubeconfig) as downstream:
            store = SecretStore(downstream, self._config.downstream.namespace)
            engine = self._engine_factory(store, kubeconfig)
            flags = ExternalFlags(cluster_name=cluster_name, legacy=True)
            state = engine.read_cluster_state(flags)
            persistence = PersistenceEngine(store, self._management, self._config.persistence)
            persistence.update_cluster_record(
                cluster_name,
                state.client_cert,
                state.client_key,
                state.certificates,
            )
        return state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the management cluster client."""
        self._management_client.close()

    def __enter__(self) -> ClusterCertificateManager:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
