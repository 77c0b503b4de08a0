"""Unit tests for RotationCoordinator."""

from __future__ import annotations

from unittest.mock import MagicMock, call

import pytest

from cluster_certs.integrations.rke.engine import ClusterUpResult, ExternalFlags
from cluster_certs.integrations.rke.exceptions import (
    BundlePersistenceError,
    EngineBootstrapError,
    EngineInitError,
    StateRecordMissing,
)
from cluster_certs.integrations.rke.models import (
    CertificateRecord,
    FullState,
    RKEConfig,
    RKEConfigNode,
    RotateCertificates,
)
from cluster_certs.services.certificates.rotation import (
    RotationCoordinator,
    RotationNotApplicable,
    RotationResult,
)
from cluster_certs.services.certificates.state_resolver import StateFound, StateNotFound

ROTATED = {
    "kube-admin": CertificateRecord(certificate_pem="ADMIN", key_pem="ADMIN KEY"),
    "kube-apiserver": CertificateRecord(certificate_pem="API", key_pem="API KEY"),
}


@pytest.fixture
def resolver() -> MagicMock:
    """Resolver reporting a legacy cluster."""
    mock_resolver = MagicMock()
    mock_resolver.lookup.return_value = StateNotFound(
        cause=StateRecordMissing("ConfigMap 'full-cluster-state' not found")
    )
    return mock_resolver


@pytest.fixture
def engine() -> MagicMock:
    """Engine mock producing a rotated bundle."""
    mock_engine = MagicMock()
    mock_engine.cluster_up.return_value = ClusterUpResult(
        client_cert="ADMIN", client_key="ADMIN KEY", certificates=ROTATED
    )
    return mock_engine


@pytest.fixture
def persistence() -> MagicMock:
    """Persistence engine mock."""
    return MagicMock()


@pytest.fixture
def coordinator(
    resolver: MagicMock, engine: MagicMock, persistence: MagicMock
) -> RotationCoordinator:
    """Create a coordinator over mocks."""
    return RotationCoordinator(resolver, engine, persistence)


@pytest.fixture
def rke_config(nodes: list[RKEConfigNode]) -> RKEConfig:
    """Config from the management cluster."""
    return RKEConfig(nodes=nodes)


class TestRotate:
    """Tests for rotating a cluster's certificates."""

    @pytest.mark.unit
    def test_tracked_cluster_not_applicable(
        self,
        coordinator: RotationCoordinator,
        resolver: MagicMock,
        engine: MagicMock,
        rke_config: RKEConfig,
    ) -> None:
        """Should refuse clusters with a state record without calling the engine."""
        resolver.lookup.return_value = StateFound(state=FullState())

        outcome = coordinator.rotate("c-abc", rke_config)

        assert isinstance(outcome, RotationNotApplicable)
        assert outcome.advisory == (
            "Cluster [c-abc] is not a legacy cluster, please use rotate certificate from Rancher UI"
        )
        assert engine.mock_calls == []

    @pytest.mark.unit
    def test_legacy_cluster(
        self,
        coordinator: RotationCoordinator,
        engine: MagicMock,
        rke_config: RKEConfig,
    ) -> None:
        """Should init then bring the cluster up with a rotation request."""
        outcome = coordinator.rotate("c-abc", rke_config)

        assert isinstance(outcome, RotationResult)
        assert outcome.client_cert == "ADMIN"
        assert outcome.client_key == "ADMIN KEY"
        assert outcome.certificates == ROTATED

        flags = ExternalFlags(cluster_name="c-abc", legacy=True)
        assert [c[0] for c in engine.mock_calls] == ["cluster_init", "cluster_up"]
        config, init_flags = engine.cluster_init.call_args.args
        assert init_flags == flags
        assert config.rotate_certificates == RotateCertificates()
        assert config.nodes == rke_config.nodes
        engine.cluster_up.assert_called_once_with(flags)

    @pytest.mark.unit
    def test_input_config_unchanged(
        self, coordinator: RotationCoordinator, rke_config: RKEConfig
    ) -> None:
        """Should leave the caller's config without a rotation request."""
        coordinator.rotate("c-abc", rke_config)

        assert rke_config.rotate_certificates is None

    @pytest.mark.unit
    def test_init_error_propagates(
        self,
        coordinator: RotationCoordinator,
        engine: MagicMock,
        rke_config: RKEConfig,
    ) -> None:
        """Should not bring the cluster up when init fails."""
        engine.cluster_init.side_effect = EngineInitError("bad config", "c-abc")

        with pytest.raises(EngineInitError):
            coordinator.rotate("c-abc", rke_config)

        engine.cluster_up.assert_not_called()


class TestRotateAndPersist:
    """Tests for the full rotation workflow."""

    @pytest.mark.unit
    def test_persists_then_updates_record(
        self,
        coordinator: RotationCoordinator,
        persistence: MagicMock,
        rke_config: RKEConfig,
    ) -> None:
        """Should write the bundle before touching the cluster record."""
        outcome = coordinator.rotate_and_persist("c-abc", rke_config)

        assert isinstance(outcome, RotationResult)
        assert persistence.mock_calls == [
            call.persist(ROTATED),
            call.update_cluster_record("c-abc", "ADMIN", "ADMIN KEY", ROTATED),
        ]

    @pytest.mark.unit
    def test_not_applicable_persists_nothing(
        self,
        coordinator: RotationCoordinator,
        resolver: MagicMock,
        persistence: MagicMock,
        rke_config: RKEConfig,
    ) -> None:
        """Should not persist anything for tracked clusters."""
        resolver.lookup.return_value = StateFound(state=FullState())

        outcome = coordinator.rotate_and_persist("c-abc", rke_config)

        assert isinstance(outcome, RotationNotApplicable)
        assert persistence.mock_calls == []

    @pytest.mark.unit
    def test_engine_error_persists_nothing(
        self,
        coordinator: RotationCoordinator,
        engine: MagicMock,
        persistence: MagicMock,
        rke_config: RKEConfig,
    ) -> None:
        """Should leave secrets and the record alone when the engine fails."""
        engine.cluster_up.side_effect = EngineBootstrapError("rke up failed", "c-abc")

        with pytest.raises(EngineBootstrapError):
            coordinator.rotate_and_persist("c-abc", rke_config)

        assert persistence.mock_calls == []

    @pytest.mark.unit
    def test_persistence_failure_skips_record_update(
        self,
        coordinator: RotationCoordinator,
        persistence: MagicMock,
        rke_config: RKEConfig,
    ) -> None:
        """Should not update the record when any certificate failed."""
        persistence.persist.side_effect = BundlePersistenceError({"kube-admin": RuntimeError()})

        with pytest.raises(BundlePersistenceError):
            coordinator.rotate_and_persist("c-abc", rke_config)

        persistence.update_cluster_record.assert_not_called()
