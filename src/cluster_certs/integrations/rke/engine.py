"""Bootstrapping engine interface and the rke CLI adapter.

The certificate workflows need a handful of engine operations: build a
cluster object for an existing cluster, read its live certificates,
initialize a rotation, bring the cluster up and reread the state the last
run left behind. ``BootstrapEngine``
describes them; ``RkeCommandEngine`` implements them by driving the
``rke`` binary and reading certificate secrets from the cluster.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Protocol

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cluster_certs.integrations.rke.exceptions import (
    EngineBinaryNotFoundError,
    EngineBootstrapError,
    EngineInitError,
)
from cluster_certs.integrations.rke.models import (
    CertificateBundle,
    CertificateRecord,
    FullState,
    RKEConfig,
)
from cluster_certs.integrations.rke.pki import (
    KUBE_ADMIN_CERT_NAME,
    KUBE_CA_CERT_NAME,
    SERVICE_ACCOUNT_TOKEN_KEY_NAME,
    certificate_identities,
)

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CLUSTER_FILE_NAME = "cluster.yml"
STATE_FILE_NAME = "cluster.rkestate"
KUBECONFIG_FILE_NAME = "kube_config_cluster.yml"
RKE_TIMEOUT_SECONDS = 3600


# ---------------------------------------------------------------------------
# Engine types
# ---------------------------------------------------------------------------


class ExternalFlags(BaseModel):
    """Flags passed to every engine call of one workflow."""

    model_config = ConfigDict(frozen=True)

    cluster_name: str
    legacy: bool = False


class RkeClusterObject(BaseModel):
    """An engine-side handle on an existing cluster."""

    model_config = ConfigDict(frozen=True)

    cluster_name: str
    config: RKEConfig
    cluster_dir: Path


class ClusterUpResult(BaseModel):
    """Outcome of bringing a cluster up with rotated certificates."""

    model_config = ConfigDict(frozen=True)

    client_cert: str
    client_key: str
    certificates: dict[str, CertificateRecord] = Field(default_factory=dict)


class BootstrapEngine(Protocol):
    """Operations the certificate workflows need from the bootstrapping engine."""

    def init_cluster_object(self, config: RKEConfig, flags: ExternalFlags) -> RkeClusterObject:
        """Build a cluster object for ``config``."""
        ...

    def get_cluster_certs_from_kubernetes(self, cluster: RkeClusterObject) -> CertificateBundle:
        """Read the certificates currently deployed in the cluster."""
        ...

    def cluster_init(self, config: RKEConfig, flags: ExternalFlags) -> None:
        """Prepare the cluster state for a run of ``cluster_up``."""
        ...

    def cluster_up(self, flags: ExternalFlags) -> ClusterUpResult:
        """Reconcile the cluster and return its new client credentials and bundle."""
        ...

    def read_cluster_state(self, flags: ExternalFlags) -> ClusterUpResult:
        """Return the credentials and bundle written by the last ``cluster_up``."""
        ...


class SecretReader(Protocol):
    """Read access to the secrets of one namespace."""

    def get_secret_data(self, name: str) -> dict[str, str] | None:
        """Return decoded secret data, or None if the secret does not exist."""
        ...


# ---------------------------------------------------------------------------
# rke CLI adapter
# ---------------------------------------------------------------------------


class RkeCommandEngine:
    """Bootstrapping engine backed by the ``rke`` binary.

    Each cluster gets its own directory under ``work_dir`` holding the
    generated ``cluster.yml``, the downstream kubeconfig and the
    ``cluster.rkestate`` file rke writes.
    """

    def __init__(
        self,
        secrets: SecretReader,
        *,
        binary_path: str = "rke",
        work_dir: str | Path = ".",
        timeout: int = RKE_TIMEOUT_SECONDS,
        kubeconfig: str | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            secrets: Reader for certificate secrets in the downstream cluster.
            binary_path: Name or path of the rke binary.
            work_dir: Directory under which per-cluster directories are created.
            timeout: Timeout for ``rke up`` in seconds.
            kubeconfig: Downstream kubeconfig handed to rke for legacy clusters.
        """
        self._secrets = secrets
        self._binary_path = binary_path
        self._binary: str | None = None
        self._work_dir = Path(work_dir)
        self._timeout = timeout
        self._kubeconfig = kubeconfig
        self._log = logger.bind(entity="rke_engine")

    def _find_binary(self) -> str:
        """Locate the rke binary on first use.

        Raises:
            EngineBinaryNotFoundError: If not found.
        """
        if self._binary is None:
            path = Path(self._binary_path)
            if path.is_absolute() or len(path.parts) > 1:
                if not path.exists():
                    raise EngineBinaryNotFoundError(self._binary_path)
                self._binary = str(path.resolve())
            else:
                found = shutil.which(self._binary_path)
                if not found:
                    raise EngineBinaryNotFoundError(self._binary_path)
                self._binary = found
        return self._binary

    def cluster_dir(self, cluster_name: str) -> Path:
        """Directory holding the files of ``cluster_name``."""
        return self._work_dir / cluster_name

    def _run(self, args: list[str], *, cluster_name: str, cwd: Path) -> str:
        """Run an rke command and return its stdout.

        Raises:
            EngineBootstrapError: On non-zero exit or timeout.
        """
        cmd = [self._find_binary(), *args]
        self._log.debug("running_rke_command", args=args, cluster=cluster_name)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self._timeout,
                cwd=cwd,
            )
        except subprocess.CalledProcessError as e:
            raise EngineBootstrapError(
                message=f"rke command failed: {e.stderr.strip() if e.stderr else f'exit code {e.returncode}'}",
                cluster_name=cluster_name,
                stderr=e.stderr,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise EngineBootstrapError(
                message=f"rke command timed out after {self._timeout}s",
                cluster_name=cluster_name,
            ) from e
        return result.stdout

    # -----------------------------------------------------------------------
    # Cluster object
    # -----------------------------------------------------------------------

    def init_cluster_object(self, config: RKEConfig, flags: ExternalFlags) -> RkeClusterObject:
        """Build a cluster object for an existing cluster.

        Raises:
            EngineInitError: If the config has no nodes.
        """
        if not config.nodes:
            raise EngineInitError(
                message="Cluster configuration has no nodes",
                cluster_name=flags.cluster_name,
            )
        return RkeClusterObject(
            cluster_name=flags.cluster_name,
            config=config,
            cluster_dir=self.cluster_dir(flags.cluster_name),
        )

    def get_cluster_certs_from_kubernetes(self, cluster: RkeClusterObject) -> CertificateBundle:
        """Read the certificate secrets currently deployed in the cluster.

        Identities without a secret are left out of the bundle.
        """
        etcd_addresses = [node.effective_internal_address for node in cluster.config.etcd_nodes()]
        names = [
            *certificate_identities(etcd_addresses),
            KUBE_CA_CERT_NAME,
            SERVICE_ACCOUNT_TOKEN_KEY_NAME,
        ]

        bundle: CertificateBundle = {}
        for name in names:
            data = self._secrets.get_secret_data(name)
            if data is None:
                self._log.debug("certificate_secret_missing", cluster=cluster.cluster_name, identity=name)
                continue
            bundle[name] = CertificateRecord.from_secret_data(name, data)

        self._log.info(
            "read_live_certificates",
            cluster=cluster.cluster_name,
            count=len(bundle),
        )
        return bundle

    # -----------------------------------------------------------------------
    # Rotation
    # -----------------------------------------------------------------------

    def cluster_init(self, config: RKEConfig, flags: ExternalFlags) -> None:
        """Write ``cluster.yml`` (and the kubeconfig, if known) for the cluster.

        Raises:
            EngineInitError: If the config has no nodes or the files cannot
                be written.
        """
        if not config.nodes:
            raise EngineInitError(
                message="Cluster configuration has no nodes",
                cluster_name=flags.cluster_name,
            )

        cluster_dir = self.cluster_dir(flags.cluster_name)
        try:
            cluster_dir.mkdir(parents=True, exist_ok=True)
            (cluster_dir / CLUSTER_FILE_NAME).write_text(
                yaml.safe_dump(config.to_cluster_yaml(), default_flow_style=False)
            )
            if self._kubeconfig:
                (cluster_dir / KUBECONFIG_FILE_NAME).write_text(self._kubeconfig)
        except (OSError, yaml.YAMLError) as e:
            raise EngineInitError(
                message=f"Failed to write cluster files: {e}",
                cluster_name=flags.cluster_name,
            ) from e

        self._log.info(
            "cluster_initialized",
            cluster=flags.cluster_name,
            legacy=flags.legacy,
            path=str(cluster_dir),
        )

    def cluster_up(self, flags: ExternalFlags) -> ClusterUpResult:
        """Run ``rke up`` and read the rotated bundle from ``cluster.rkestate``.

        Raises:
            EngineBootstrapError: If rke fails or leaves no usable state.
        """
        cluster_dir = self.cluster_dir(flags.cluster_name)
        self._run(
            ["up", "--config", CLUSTER_FILE_NAME],
            cluster_name=flags.cluster_name,
            cwd=cluster_dir,
        )
        result = self.read_cluster_state(flags)
        self._log.info(
            "cluster_up_complete", cluster=flags.cluster_name, count=len(result.certificates)
        )
        return result

    def read_cluster_state(self, flags: ExternalFlags) -> ClusterUpResult:
        """Read the credentials and bundle from ``cluster.rkestate``.

        Raises:
            EngineBootstrapError: If the state file is missing, unreadable or
                holds no kube-admin certificate.
        """
        state_file = self.cluster_dir(flags.cluster_name) / STATE_FILE_NAME
        try:
            state = FullState.model_validate_json(state_file.read_text())
        except (OSError, ValidationError) as e:
            raise EngineBootstrapError(
                message=f"Cannot read {STATE_FILE_NAME}: {e}",
                cluster_name=flags.cluster_name,
            ) from e

        certificates = state.current_state.certificates_bundle
        admin = certificates.get(KUBE_ADMIN_CERT_NAME)
        if admin is None or not admin.certificate_pem:
            raise EngineBootstrapError(
                message=f"{STATE_FILE_NAME} has no {KUBE_ADMIN_CERT_NAME} certificate",
                cluster_name=flags.cluster_name,
            )

        self._log.debug("read_cluster_state", cluster=flags.cluster_name, path=str(state_file))
        return ClusterUpResult(
            client_cert=admin.certificate_pem,
            client_key=admin.key_pem,
            certificates=certificates,
        )
