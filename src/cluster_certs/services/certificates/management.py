"""Rancher management cluster access.

Reads the ``clusters`` and ``nodes`` resources of the
``management.cattle.io`` API group to assemble a downstream cluster's RKE
configuration, and the cluster record secret to get its kubeconfig.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from cluster_certs.integrations.rke.exceptions import NotAnRkeClusterError, StateRecordMissing
from cluster_certs.integrations.rke.models import ClusterInfo, RKEConfig, RKEConfigNode
from cluster_certs.services.certificates.base import K8sBaseManager
from cluster_certs.services.certificates.secret_store import SecretStore

if TYPE_CHECKING:
    from cluster_certs.integrations.kubernetes.client import KubernetesClient
    from cluster_certs.integrations.kubernetes.config import ManagementClusterConfig

# management.cattle.io CRD coordinates
MANAGEMENT_GROUP = "management.cattle.io"
MANAGEMENT_VERSION = "v3"
CLUSTER_PLURAL = "clusters"
NODE_PLURAL = "nodes"


@dataclass
class ClusterRecordSecret:
    """A cluster record secret as read from the management cluster.

    Attributes:
        secret: The V1Secret, kept for a metadata-preserving write-back.
        data: Decoded secret data.
        info: Parsed cluster record.
    """

    secret: Any
    data: dict[str, str]
    info: ClusterInfo


class ManagementContext(K8sBaseManager):
    """Reads downstream cluster definitions from the Rancher management cluster."""

    _entity_name = "management"

    def __init__(self, client: KubernetesClient, config: ManagementClusterConfig) -> None:
        """Initialize the context.

        Args:
            client: Client of the management cluster.
            config: Management cluster settings.
        """
        super().__init__(client, config.namespace)
        self._config = config
        self._secrets = SecretStore(client, config.namespace)

    @property
    def secrets(self) -> SecretStore:
        """Secret store of the namespace holding cluster records."""
        return self._secrets

    def get_rke_config(self, cluster_name: str) -> RKEConfig:
        """Assemble the RKE config of a cluster with its current node list.

        The node topology comes from the ``nodes`` resources in the namespace
        named after the cluster, replacing whatever the cluster spec holds.

        Raises:
            NotAnRkeClusterError: If the cluster has no RKE configuration.
            KubernetesError: On API failure.
        """
        self._log.info("getting_rke_config", cluster=cluster_name)
        try:
            cluster = self._client.custom_objects.get_cluster_custom_object(
                MANAGEMENT_GROUP,
                MANAGEMENT_VERSION,
                CLUSTER_PLURAL,
                cluster_name,
                _request_timeout=self._client.request_timeout,
            )
        except Exception as e:
            self._handle_api_error(e, "Cluster", cluster_name)

        raw_config = (cluster.get("spec") or {}).get("rancherKubernetesEngineConfig")
        if not raw_config:
            raise NotAnRkeClusterError(cluster_name)

        try:
            nodes_list = self._client.custom_objects.list_namespaced_custom_object(
                MANAGEMENT_GROUP,
                MANAGEMENT_VERSION,
                cluster_name,
                NODE_PLURAL,
                _request_timeout=self._client.request_timeout,
            )
        except Exception as e:
            self._handle_api_error(e, "Node", None)

        nodes: list[RKEConfigNode] = []
        items: list[dict[str, Any]] = nodes_list.get("items", [])
        for item in items:
            node_config = (item.get("status") or {}).get("nodeConfig")
            if not node_config:
                self._log.debug(
                    "skipping_node_without_config",
                    cluster=cluster_name,
                    node=item.get("metadata", {}).get("name"),
                )
                continue
            nodes.append(RKEConfigNode.model_validate(node_config))

        try:
            rke_config = RKEConfig.model_validate(raw_config)
        except ValidationError as e:
            raise NotAnRkeClusterError(cluster_name) from e
        rke_config.nodes = nodes

        self._log.debug("got_rke_config", cluster=cluster_name, nodes=len(nodes))
        return rke_config

    def get_cluster_record(self, cluster_name: str) -> ClusterRecordSecret:
        """Read and parse the cluster record secret.

        Raises:
            StateRecordMissing: If the secret does not exist.
            MalformedSecretPayload: If the record cannot be parsed.
        """
        secret_name = self._config.cluster_secret_name(cluster_name)
        secret = self._secrets.get_secret(secret_name)
        if secret is None:
            raise StateRecordMissing(
                message=f"Cluster record secret '{secret_name}' not found",
                cluster_name=cluster_name,
            )
        data = self._secrets.decode_secret_data(secret_name, secret)
        return ClusterRecordSecret(
            secret=secret,
            data=data,
            info=ClusterInfo.from_secret_data(secret_name, data),
        )

    def save_cluster_record(self, cluster_name: str, record: ClusterRecordSecret) -> None:
        """Write the record's data back onto the secret it was read from.

        Raises:
            KubernetesConflictError: If the secret changed since it was read.
            KubernetesError: If the secret cannot be written.
        """
        secret_name = self._config.cluster_secret_name(cluster_name)
        self._log.info("updating_cluster_record", cluster=cluster_name, name=secret_name)
        self._secrets.update_secret_data(record.secret, record.data)

    def get_cluster_kubeconfig(self, cluster_name: str) -> str:
        """Get the downstream kubeconfig stored in the cluster record.

        Raises:
            StateRecordMissing: If the cluster record does not exist.
            MalformedSecretPayload: If the record holds no kubeconfig.
        """
        self._log.info("getting_cluster_kubeconfig", cluster=cluster_name)
        return self.get_cluster_record(cluster_name).info.kubeconfig
