"""Resolution of a cluster's certificate state.

A cluster is either tracked, with a full state record in the
``full-cluster-state`` config map, or legacy, in which case its topology
comes from the RKE config and its certificates are read live through the
bootstrapping engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from cluster_certs.integrations.rke.engine import ExternalFlags
from cluster_certs.integrations.rke.exceptions import (
    StateRecordCorrupt,
    StateRecordError,
    StateRecordMissing,
)
from cluster_certs.integrations.rke.models import ClusterState, FullState

if TYPE_CHECKING:
    from cluster_certs.integrations.rke.engine import BootstrapEngine
    from cluster_certs.integrations.rke.models import RKEConfig
    from cluster_certs.services.certificates.secret_store import SecretStore

logger = structlog.get_logger()

DEFAULT_STATE_CONFIG_MAP = "full-cluster-state"


@dataclass(frozen=True)
class StateFound:
    """The cluster has a usable full state record."""

    state: FullState


@dataclass(frozen=True)
class StateNotFound:
    """The cluster has no usable full state record.

    Attributes:
        cause: StateRecordMissing or StateRecordCorrupt.
    """

    cause: StateRecordError


StateLookup = StateFound | StateNotFound


class ClusterStateResolver:
    """Determines the current nodes and certificate bundle of a cluster."""

    def __init__(
        self,
        store: SecretStore,
        engine: BootstrapEngine,
        *,
        config_map_name: str = DEFAULT_STATE_CONFIG_MAP,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Store of the downstream namespace holding the state record.
            engine: Bootstrapping engine used for legacy clusters.
            config_map_name: Name of the state config map (and of its data key).
        """
        self._store = store
        self._engine = engine
        self._config_map_name = config_map_name
        self._log = logger.bind(entity="state_resolver", namespace=store.namespace)

    def lookup(self, cluster_name: str) -> StateLookup:
        """Read and parse the full state record of a cluster.

        Raises:
            KubernetesError: On API failures other than the config map being
                absent.
        """
        self._log.info("fetching_cluster_state", cluster=cluster_name)
        data = self._store.get_config_map_data(self._config_map_name)
        if data is None:
            return self._not_found(
                StateRecordMissing(
                    message=f"ConfigMap '{self._config_map_name}' not found",
                    cluster_name=cluster_name,
                )
            )

        raw = data.get(self._config_map_name)
        if not raw:
            return self._not_found(
                StateRecordMissing(
                    message=f"ConfigMap '{self._config_map_name}' has no state data",
                    cluster_name=cluster_name,
                )
            )

        try:
            state = FullState.model_validate_json(raw)
        except ValidationError as e:
            return self._not_found(
                StateRecordCorrupt(
                    message=f"Failed to unmarshal cluster state ({e.error_count()} errors)",
                    cluster_name=cluster_name,
                )
            )

        if state.current_state.rke_config is None:
            return self._not_found(
                StateRecordCorrupt(
                    message="Cluster state has no current RKE config",
                    cluster_name=cluster_name,
                )
            )

        return StateFound(state=state)

    def _not_found(self, cause: StateRecordError) -> StateNotFound:
        self._log.info(
            "cluster_state_not_found",
            cluster=cause.cluster_name,
            kind=type(cause).__name__,
            reason=cause.message,
        )
        return StateNotFound(cause=cause)

    def resolve(self, cluster_name: str, rke_config: RKEConfig) -> ClusterState:
        """Resolve the nodes and certificate bundle of a cluster.

        Tracked clusters take both from the state record; legacy clusters
        take nodes from ``rke_config`` and certificates from the engine.

        Raises:
            EngineError: If the engine cannot read a legacy cluster.
            KubernetesError: On API failure.
        """
        lookup = self.lookup(cluster_name)

        if isinstance(lookup, StateFound):
            current = lookup.state.current_state
            # lookup() guarantees rke_config is set
            assert current.rke_config is not None
            return ClusterState(
                cluster_name=cluster_name,
                nodes=current.rke_config.nodes,
                certificates=current.certificates_bundle,
                legacy=False,
                rotate_certificates=current.rke_config.rotate_certificates,
            )

        self._log.info("possible_legacy_cluster", cluster=cluster_name)
        flags = ExternalFlags(cluster_name=cluster_name)
        cluster_object = self._engine.init_cluster_object(rke_config, flags)
        certificates = self._engine.get_cluster_certs_from_kubernetes(cluster_object)
        return ClusterState(
            cluster_name=cluster_name,
            nodes=rke_config.nodes,
            certificates=certificates,
            legacy=True,
            rotate_certificates=rke_config.rotate_certificates,
        )
