"""Names RKE gives to control-plane certificates."""

from __future__ import annotations

from collections.abc import Iterable

KUBE_CA_CERT_NAME = "kube-ca"
KUBE_API_CERT_NAME = "kube-apiserver"
KUBE_CONTROLLER_CERT_NAME = "kube-controller-manager"
KUBE_SCHEDULER_CERT_NAME = "kube-scheduler"
KUBE_PROXY_CERT_NAME = "kube-proxy"
KUBE_NODE_CERT_NAME = "kube-node"
KUBE_ADMIN_CERT_NAME = "kube-admin"
REQUEST_HEADER_CA_CERT_NAME = "kube-apiserver-requestheader-ca"
API_PROXY_CLIENT_CERT_NAME = "kube-apiserver-proxy-client"
SERVICE_ACCOUNT_TOKEN_KEY_NAME = "kube-service-account-token"
ETCD_CERT_NAME = "kube-etcd"

ETCD_ROLE = "etcd"

COMPONENT_CERT_NAMES: tuple[str, ...] = (
    KUBE_API_CERT_NAME,
    KUBE_CONTROLLER_CERT_NAME,
    KUBE_SCHEDULER_CERT_NAME,
    KUBE_PROXY_CERT_NAME,
    KUBE_NODE_CERT_NAME,
    KUBE_ADMIN_CERT_NAME,
    REQUEST_HEADER_CA_CERT_NAME,
    API_PROXY_CLIENT_CERT_NAME,
)


def etcd_cert_name(address: str) -> str:
    """Return the certificate identity of the etcd member at ``address``.

    Dots become dashes; nothing else changes, so the name matches the
    bundle key rke writes for the member.

    >>> etcd_cert_name("10.0.0.5")
    'kube-etcd-10-0-0-5'
    """
    return f"{ETCD_CERT_NAME}-{address.replace('.', '-')}"


def certificate_identities(etcd_addresses: Iterable[str]) -> list[str]:
    """Return the control-plane certificate identities of a cluster.

    The fixed component names come first, followed by one etcd identity per
    address in the order given. Repeated addresses yield a single identity.
    """
    identities = list(COMPONENT_CERT_NAMES)
    seen: set[str] = set()
    for address in etcd_addresses:
        name = etcd_cert_name(address)
        if name in seen:
            continue
        seen.add(name)
        identities.append(name)
    return identities
