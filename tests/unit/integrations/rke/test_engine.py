"""Unit tests for the rke CLI engine."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from cluster_certs.integrations.rke.engine import (
    CLUSTER_FILE_NAME,
    KUBECONFIG_FILE_NAME,
    STATE_FILE_NAME,
    ExternalFlags,
    RkeCommandEngine,
)
from cluster_certs.integrations.rke.exceptions import (
    EngineBinaryNotFoundError,
    EngineBootstrapError,
    EngineInitError,
)
from cluster_certs.integrations.rke.models import RKEConfig, RKEConfigNode


@pytest.fixture
def secrets() -> MagicMock:
    """Secret reader with no secrets."""
    reader = MagicMock()
    reader.get_secret_data.return_value = None
    return reader


@pytest.fixture
def engine(secrets: MagicMock, tmp_path: Path) -> RkeCommandEngine:
    """Engine working under a temporary directory."""
    with patch("shutil.which", return_value="/usr/local/bin/rke"):
        rke = RkeCommandEngine(secrets, work_dir=tmp_path, kubeconfig="apiVersion: v1\n")
        rke._find_binary()
    return rke


@pytest.fixture
def config(nodes: list[RKEConfigNode]) -> RKEConfig:
    """RKE config over the shared three-node topology."""
    return RKEConfig(nodes=nodes)


@pytest.fixture
def flags() -> ExternalFlags:
    """Flags for a legacy cluster named c-abc."""
    return ExternalFlags(cluster_name="c-abc", legacy=True)


def write_state(cluster_dir: Path, bundle: dict[str, dict[str, str]]) -> None:
    """Write a cluster.rkestate file holding ``bundle``."""
    cluster_dir.mkdir(parents=True, exist_ok=True)
    document = {"desiredState": {}, "currentState": {"certificatesBundle": bundle}}
    (cluster_dir / STATE_FILE_NAME).write_text(json.dumps(document))


@pytest.mark.unit
class TestBinaryLookup:
    """Test locating the rke binary."""

    def test_binary_not_on_path(self, secrets: MagicMock) -> None:
        """A missing binary is reported on first use."""
        engine = RkeCommandEngine(secrets, binary_path="rke")

        with (
            patch("shutil.which", return_value=None),
            pytest.raises(EngineBinaryNotFoundError, match="rke binary 'rke' not found"),
        ):
            engine._find_binary()

    def test_explicit_path_missing(self, secrets: MagicMock, tmp_path: Path) -> None:
        """An explicit path must exist."""
        engine = RkeCommandEngine(secrets, binary_path=str(tmp_path / "rke"))

        with pytest.raises(EngineBinaryNotFoundError):
            engine._find_binary()

    def test_explicit_path(self, secrets: MagicMock, tmp_path: Path) -> None:
        """An existing explicit path is used as-is."""
        binary = tmp_path / "rke"
        binary.write_text("")
        engine = RkeCommandEngine(secrets, binary_path=str(binary))

        assert engine._find_binary() == str(binary.resolve())

    def test_construction_does_not_look_up_binary(self, secrets: MagicMock) -> None:
        """Read-only workflows work without rke installed."""
        with patch("shutil.which") as mock_which:
            RkeCommandEngine(secrets)

        mock_which.assert_not_called()


@pytest.mark.unit
class TestInitClusterObject:
    """Test init_cluster_object."""

    def test_builds_object(
        self, engine: RkeCommandEngine, config: RKEConfig, flags: ExternalFlags, tmp_path: Path
    ) -> None:
        """The object carries the config and its cluster directory."""
        cluster = engine.init_cluster_object(config, flags)

        assert cluster.cluster_name == "c-abc"
        assert cluster.config is config
        assert cluster.cluster_dir == tmp_path / "c-abc"

    def test_no_nodes(self, engine: RkeCommandEngine, flags: ExternalFlags) -> None:
        """A config without nodes is rejected."""
        with pytest.raises(EngineInitError, match="no nodes"):
            engine.init_cluster_object(RKEConfig(), flags)


@pytest.mark.unit
class TestGetClusterCertsFromKubernetes:
    """Test reading live certificates."""

    def test_reads_known_identities(
        self,
        engine: RkeCommandEngine,
        secrets: MagicMock,
        config: RKEConfig,
        flags: ExternalFlags,
    ) -> None:
        """Every identity is looked up and missing secrets are skipped."""
        stored = {
            "kube-apiserver": {"Certificate": "API", "Key": "API KEY"},
            "kube-etcd-10-0-0-5": {"Certificate": "ETCD"},
            "kube-ca": {"Certificate": "CA"},
        }
        secrets.get_secret_data.side_effect = stored.get
        cluster = engine.init_cluster_object(config, flags)

        bundle = engine.get_cluster_certs_from_kubernetes(cluster)

        looked_up = [call.args[0] for call in secrets.get_secret_data.call_args_list]
        assert "kube-etcd-10-0-0-5" in looked_up
        assert "kube-ca" in looked_up
        assert "kube-service-account-token" in looked_up
        assert set(bundle) == set(stored)
        assert bundle["kube-apiserver"].key_pem == "API KEY"
        assert bundle["kube-etcd-10-0-0-5"].name == "kube-etcd-10-0-0-5"

    def test_uses_internal_address(
        self, engine: RkeCommandEngine, secrets: MagicMock, flags: ExternalFlags
    ) -> None:
        """etcd identities follow the internal address."""
        config = RKEConfig(
            nodes=[RKEConfigNode(address="1.2.3.4", internal_address="10.0.0.9", role=["etcd"])]
        )

        engine.get_cluster_certs_from_kubernetes(engine.init_cluster_object(config, flags))

        looked_up = [call.args[0] for call in secrets.get_secret_data.call_args_list]
        assert "kube-etcd-10-0-0-9" in looked_up
        assert "kube-etcd-1-2-3-4" not in looked_up


@pytest.mark.unit
class TestClusterInit:
    """Test cluster_init."""

    def test_writes_cluster_files(
        self, engine: RkeCommandEngine, config: RKEConfig, flags: ExternalFlags, tmp_path: Path
    ) -> None:
        """cluster.yml and the kubeconfig are written to the cluster directory."""
        engine.cluster_init(config, flags)

        cluster_dir = tmp_path / "c-abc"
        document = yaml.safe_load((cluster_dir / CLUSTER_FILE_NAME).read_text())
        assert [node["address"] for node in document["nodes"]] == [
            "10.0.0.5",
            "10.0.0.6",
            "10.0.0.7",
        ]
        assert document["nodes"][0]["node_name"] == "etcd-1"
        assert (cluster_dir / KUBECONFIG_FILE_NAME).read_text() == "apiVersion: v1\n"

    def test_no_nodes(self, engine: RkeCommandEngine, flags: ExternalFlags, tmp_path: Path) -> None:
        """A config without nodes is rejected before anything is written."""
        with pytest.raises(EngineInitError):
            engine.cluster_init(RKEConfig(), flags)

        assert not (tmp_path / "c-abc").exists()

    def test_write_failure(
        self, engine: RkeCommandEngine, config: RKEConfig, flags: ExternalFlags, tmp_path: Path
    ) -> None:
        """Filesystem errors are init errors."""
        (tmp_path / "c-abc").write_text("not a directory")

        with pytest.raises(EngineInitError, match="Failed to write cluster files"):
            engine.cluster_init(config, flags)


@pytest.mark.unit
class TestClusterUp:
    """Test cluster_up."""

    @patch("subprocess.run")
    def test_returns_rotated_bundle(
        self,
        mock_run: MagicMock,
        engine: RkeCommandEngine,
        flags: ExternalFlags,
        tmp_path: Path,
    ) -> None:
        """The admin credentials and bundle come from cluster.rkestate."""
        cluster_dir = tmp_path / "c-abc"
        write_state(
            cluster_dir,
            {
                "kube-admin": {"certificatePEM": "ADMIN", "keyPEM": "ADMIN KEY"},
                "kube-apiserver": {"certificatePEM": "API", "keyPEM": "API KEY"},
            },
        )
        mock_run.return_value = MagicMock(stdout="done")

        result = engine.cluster_up(flags)

        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == [
            "/usr/local/bin/rke",
            "up",
            "--config",
            CLUSTER_FILE_NAME,
        ]
        assert mock_run.call_args.kwargs["cwd"] == cluster_dir
        assert mock_run.call_args.kwargs["check"] is True
        assert result.client_cert == "ADMIN"
        assert result.client_key == "ADMIN KEY"
        assert set(result.certificates) == {"kube-admin", "kube-apiserver"}

    @patch("subprocess.run")
    def test_command_failure(
        self, mock_run: MagicMock, engine: RkeCommandEngine, flags: ExternalFlags
    ) -> None:
        """A failing rke run is a bootstrap error carrying stderr."""
        mock_run.side_effect = subprocess.CalledProcessError(
            1, ["rke", "up"], stderr="Failed to set up SSH tunneling\n"
        )

        with pytest.raises(EngineBootstrapError, match="SSH tunneling") as exc_info:
            engine.cluster_up(flags)

        assert exc_info.value.stderr == "Failed to set up SSH tunneling\n"
        assert exc_info.value.cluster_name == "c-abc"

    @patch("subprocess.run")
    def test_timeout(
        self, mock_run: MagicMock, engine: RkeCommandEngine, flags: ExternalFlags
    ) -> None:
        """A run past the timeout is a bootstrap error."""
        mock_run.side_effect = subprocess.TimeoutExpired(["rke", "up"], 3600)

        with pytest.raises(EngineBootstrapError, match="timed out"):
            engine.cluster_up(flags)

    @patch("subprocess.run")
    def test_missing_state_file(
        self, mock_run: MagicMock, engine: RkeCommandEngine, flags: ExternalFlags
    ) -> None:
        """A run that leaves no state file is a bootstrap error."""
        mock_run.return_value = MagicMock(stdout="")

        with pytest.raises(EngineBootstrapError, match="Cannot read"):
            engine.cluster_up(flags)

    @patch("subprocess.run")
    def test_missing_admin_certificate(
        self,
        mock_run: MagicMock,
        engine: RkeCommandEngine,
        flags: ExternalFlags,
        tmp_path: Path,
    ) -> None:
        """A state without kube-admin has no client credentials."""
        write_state(tmp_path / "c-abc", {"kube-apiserver": {"certificatePEM": "API"}})
        mock_run.return_value = MagicMock(stdout="")

        with pytest.raises(EngineBootstrapError, match="kube-admin"):
            engine.cluster_up(flags)


@pytest.mark.unit
class TestReadClusterState:
    """Test rereading the state left by a previous run."""

    def test_reads_without_running_rke(
        self, engine: RkeCommandEngine, flags: ExternalFlags, tmp_path: Path
    ) -> None:
        """The state file is read as is; rke is not started."""
        write_state(
            tmp_path / "c-abc",
            {"kube-admin": {"certificatePEM": "ADMIN", "keyPEM": "ADMIN KEY"}},
        )

        with patch("subprocess.run") as mock_run:
            result = engine.read_cluster_state(flags)

        mock_run.assert_not_called()
        assert result.client_cert == "ADMIN"
        assert list(result.certificates) == ["kube-admin"]

    def test_no_previous_run(self, engine: RkeCommandEngine, flags: ExternalFlags) -> None:
        """Without a state file there is nothing to reread."""
        with pytest.raises(EngineBootstrapError, match=STATE_FILE_NAME):
            engine.read_cluster_state(flags)
