"""Pydantic models for RKE cluster configuration, state and certificates.

RKE and Rancher serialize the same structures with camelCase JSON keys
(custom resources, the full-state config map, ``cluster.rkestate``) and
snake_case YAML keys (``cluster.yml``). Models accept both spellings and
keep keys they do not model so documents round-trip intact.
"""

from __future__ import annotations

import base64
import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator

from cluster_certs.integrations.rke.exceptions import MalformedSecretPayload
from cluster_certs.integrations.rke.pki import ETCD_ROLE

# Per-certificate secret keys
SECRET_CERTIFICATE = "Certificate"
SECRET_ENV_NAME = "EnvName"
SECRET_PATH = "Path"
SECRET_KEY = "Key"
SECRET_KEY_ENV_NAME = "KeyEnvName"
SECRET_KEY_PATH = "KeyPath"
SECRET_CONFIG = "Config"
SECRET_CONFIG_ENV_NAME = "ConfigEnvName"
SECRET_CONFIG_PATH = "ConfigPath"

# Cluster record secret key and metadata fields
CLUSTER_RECORD_KEY = "cluster"
METADATA_CLIENT_CERT = "clientCert"
METADATA_CLIENT_KEY = "clientKey"
METADATA_CERTS = "Certs"
METADATA_KUBECONFIG = "state"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")
# Maps whose keys are user data and must be written as-is
_OPAQUE_KEYS = frozenset({"labels", "annotations", "extra_args", "extra_env", "extra_binds"})
_SERVICE_KEYS = {"kube_api": "kube-api", "kube_controller": "kube-controller"}


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def _to_cluster_yaml(value: Any, parent: str | None = None) -> Any:
    """Convert camelCase keys of an RKE document to cluster.yml spelling."""
    if isinstance(value, list):
        return [_to_cluster_yaml(item, parent) for item in value]
    if not isinstance(value, dict):
        return value
    if parent in _OPAQUE_KEYS:
        return dict(value)
    converted: dict[str, Any] = {}
    for key, item in value.items():
        new_key = _snake_case(key)
        if parent == "services":
            new_key = _SERVICE_KEYS.get(new_key, new_key)
        converted[new_key] = _to_cluster_yaml(item, new_key)
    return converted


# =============================================================================
# Cluster configuration
# =============================================================================


class RKEConfigNode(BaseModel):
    """A node of the cluster topology and the roles it carries."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    node_name: str = Field(default="", alias="nodeName")
    address: str = ""
    port: str = ""
    internal_address: str = Field(default="", alias="internalAddress")
    role: list[str] = Field(default_factory=list)
    hostname_override: str = Field(default="", alias="hostnameOverride")
    user: str = ""
    ssh_key_path: str = Field(default="", alias="sshKeyPath")

    @field_validator("port", mode="before")
    @classmethod
    def validate_port(cls, v: Any) -> str:
        """Accept numeric ports."""
        return "" if v is None else str(v)

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v: Any) -> list[str]:
        """Treat a null role list as empty."""
        return v or []

    @property
    def effective_internal_address(self) -> str:
        """Internal address, defaulting to the public address like RKE does."""
        return self.internal_address or self.address

    def has_role(self, role: str) -> bool:
        """Check whether the node carries ``role``."""
        return role in self.role


class RotateCertificates(BaseModel):
    """Rotation request embedded in the RKE config."""

    model_config = ConfigDict(populate_by_name=True)

    ca_certificates: bool = Field(default=False, alias="caCertificates")
    services: list[str] = Field(default_factory=list)


class RKEConfig(BaseModel):
    """RKE cluster configuration (``rancherKubernetesEngineConfig``)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    nodes: list[RKEConfigNode] = Field(default_factory=list)
    rotate_certificates: RotateCertificates | None = Field(
        default=None, alias="rotateCertificates"
    )

    @field_validator("nodes", mode="before")
    @classmethod
    def validate_nodes(cls, v: Any) -> Any:
        """Treat a null node list as empty."""
        return v or []

    def etcd_nodes(self) -> list[RKEConfigNode]:
        """Nodes carrying the etcd role, in topology order."""
        return [node for node in self.nodes if node.has_role(ETCD_ROLE)]

    def to_cluster_yaml(self) -> dict[str, Any]:
        """Render the config with the snake_case keys ``cluster.yml`` expects."""
        return _to_cluster_yaml(self.model_dump(exclude_defaults=True))


# =============================================================================
# Certificates
# =============================================================================


class CertificateRecord(BaseModel):
    """One certificate of the control-plane bundle.

    Holds the PEM certificate, PEM private key and an optional config blob
    (a kubeconfig for client certificates), each with the environment
    variable name and file path RKE deploys it under.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    certificate_pem: str = Field(default="", alias="certificatePEM")
    key_pem: str = Field(default="", alias="keyPEM")
    config: str = ""
    name: str = ""
    common_name: str = Field(default="", alias="commonName")
    ou_name: str = Field(default="", alias="ouName")
    env_name: str = Field(default="", alias="envName")
    path: str = ""
    key_env_name: str = Field(default="", alias="keyEnvName")
    key_path: str = Field(default="", alias="keyPath")
    config_env_name: str = Field(default="", alias="configEnvName")
    config_path: str = Field(default="", alias="configPath")

    @property
    def has_payload(self) -> bool:
        """A record with neither certificate nor key has nothing to store."""
        return bool(self.certificate_pem or self.key_pem)

    def to_secret_data(self) -> dict[str, str]:
        """Secret data for this record; each group only if its payload is set."""
        data: dict[str, str] = {}
        if self.certificate_pem:
            data[SECRET_CERTIFICATE] = self.certificate_pem
            data[SECRET_ENV_NAME] = self.env_name
            data[SECRET_PATH] = self.path
        if self.key_pem:
            data[SECRET_KEY] = self.key_pem
            data[SECRET_KEY_ENV_NAME] = self.key_env_name
            data[SECRET_KEY_PATH] = self.key_path
        if self.config:
            data[SECRET_CONFIG_ENV_NAME] = self.config_env_name
            data[SECRET_CONFIG] = self.config
            data[SECRET_CONFIG_PATH] = self.config_path
        return data

    @classmethod
    def from_secret_data(cls, identity: str, data: dict[str, str]) -> CertificateRecord:
        """Rebuild a record from the data of its certificate secret."""
        return cls(
            name=identity,
            certificate_pem=data.get(SECRET_CERTIFICATE, ""),
            env_name=data.get(SECRET_ENV_NAME, ""),
            path=data.get(SECRET_PATH, ""),
            key_pem=data.get(SECRET_KEY, ""),
            key_env_name=data.get(SECRET_KEY_ENV_NAME, ""),
            key_path=data.get(SECRET_KEY_PATH, ""),
            config=data.get(SECRET_CONFIG, ""),
            config_env_name=data.get(SECRET_CONFIG_ENV_NAME, ""),
            config_path=data.get(SECRET_CONFIG_PATH, ""),
        )


CertificateBundle = dict[str, CertificateRecord]


def bundle_to_json(bundle: CertificateBundle) -> str:
    """Serialize a bundle the way the cluster record stores it.

    Each entry carries the record's own fields plus ``CertPEM`` and
    ``KeyPEM`` copies of the PEM payloads.
    """
    output: dict[str, dict[str, Any]] = {}
    for name, record in bundle.items():
        saved = record.model_dump(by_alias=True)
        saved["CertPEM"] = record.certificate_pem
        saved["KeyPEM"] = record.key_pem
        output[name] = saved
    return json.dumps(output, sort_keys=True)


# =============================================================================
# Cluster state
# =============================================================================


class RKEState(BaseModel):
    """One side (desired or current) of an RKE full state document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    rke_config: RKEConfig | None = Field(default=None, alias="rkeConfig")
    certificates_bundle: dict[str, CertificateRecord] = Field(
        default_factory=dict, alias="certificatesBundle"
    )
    encryption_config: str = Field(default="", alias="encryptionConfig")

    @field_validator("certificates_bundle", mode="before")
    @classmethod
    def validate_bundle(cls, v: Any) -> Any:
        """Treat a null bundle as empty."""
        return v or {}


class FullState(BaseModel):
    """The structured state RKE stores for clusters it tracks."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    desired_state: RKEState = Field(default_factory=RKEState, alias="desiredState")
    current_state: RKEState = Field(default_factory=RKEState, alias="currentState")


class ClusterState(BaseModel):
    """Resolved view of a cluster: topology plus certificate bundle.

    ``legacy`` is True when the state was reconstructed from live
    certificates because no full state record exists.
    """

    model_config = ConfigDict(frozen=True)

    cluster_name: str
    nodes: list[RKEConfigNode] = Field(default_factory=list)
    certificates: dict[str, CertificateRecord] = Field(default_factory=dict)
    legacy: bool = False
    rotate_certificates: RotateCertificates | None = None


# =============================================================================
# Cluster record
# =============================================================================


class ClusterInfo(BaseModel):
    """Cluster record stored by the Rancher management plane.

    Only ``metadata`` is typed; every other key is preserved so the record
    can be written back in full.
    """

    model_config = ConfigDict(extra="allow")

    metadata: dict[str, str] = Field(default_factory=dict)

    _secret_name: str = PrivateAttr(default="")

    @field_validator("metadata", mode="before")
    @classmethod
    def validate_metadata(cls, v: Any) -> Any:
        """Treat null metadata as empty."""
        return v or {}

    @classmethod
    def from_secret_data(cls, secret_name: str, data: dict[str, str]) -> ClusterInfo:
        """Parse the ``cluster`` key of a cluster record secret.

        Raises:
            MalformedSecretPayload: If the key is missing or does not match
                the schema.
        """
        raw = data.get(CLUSTER_RECORD_KEY)
        if not raw:
            raise MalformedSecretPayload(
                f"missing '{CLUSTER_RECORD_KEY}' key",
                secret_name=secret_name,
                key=CLUSTER_RECORD_KEY,
            )
        try:
            info = cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedSecretPayload(
                f"'{CLUSTER_RECORD_KEY}' is not a cluster record ({e.error_count()} errors)",
                secret_name=secret_name,
                key=CLUSTER_RECORD_KEY,
            ) from e
        info._secret_name = secret_name
        return info

    @property
    def kubeconfig(self) -> str:
        """Kubeconfig of the downstream cluster.

        Raises:
            MalformedSecretPayload: If the record carries no kubeconfig.
        """
        value = self.metadata.get(METADATA_KUBECONFIG)
        if not value:
            raise MalformedSecretPayload(
                f"metadata has no '{METADATA_KUBECONFIG}' entry",
                secret_name=self._secret_name,
                key=CLUSTER_RECORD_KEY,
            )
        return value

    def set_certificates(
        self,
        client_cert: str,
        client_key: str,
        bundle: CertificateBundle,
    ) -> None:
        """Record new client credentials (base64) and the serialized bundle."""
        self.metadata[METADATA_CLIENT_CERT] = base64.b64encode(client_cert.encode()).decode()
        self.metadata[METADATA_CLIENT_KEY] = base64.b64encode(client_key.encode()).decode()
        self.metadata[METADATA_CERTS] = bundle_to_json(bundle)

    def to_json(self) -> str:
        """Serialize the full record, unknown keys included."""
        return self.model_dump_json()
