"""Certificate identities of a cluster and their expiration dates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from cryptography import x509

from cluster_certs.integrations.rke.exceptions import CertificateParseError
from cluster_certs.integrations.rke.pki import ETCD_ROLE, certificate_identities

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cluster_certs.integrations.rke.models import (
        CertificateBundle,
        ClusterState,
        RKEConfigNode,
    )

logger = structlog.get_logger()


@dataclass(frozen=True)
class CertificateExpiry:
    """Expiration of one certificate identity.

    Attributes:
        identity: Certificate identity.
        not_after: Expiration timestamp (UTC), or None if the cluster has no
            certificate for the identity.
        error: Why the certificate could not be read, if it could not.
    """

    identity: str
    not_after: datetime | None = None
    error: CertificateParseError | None = None

    @property
    def present(self) -> bool:
        """Whether a readable certificate exists for the identity."""
        return self.not_after is not None


def list_identities(nodes: Sequence[RKEConfigNode]) -> list[str]:
    """Return the certificate identities for a node topology.

    The eight fixed component identities come first, then one etcd identity
    per etcd node in topology order. Nodes sharing an address share an
    identity.
    """
    return certificate_identities(
        node.effective_internal_address for node in nodes if node.has_role(ETCD_ROLE)
    )


def expiration_of(bundle: CertificateBundle, identity: str) -> datetime | None:
    """Return the expiration of the first certificate in a record's PEM chain.

    Returns:
        The UTC ``not_after`` timestamp, or None if the bundle holds no
        certificate for ``identity``.

    Raises:
        CertificateParseError: If the certificate payload cannot be parsed.
    """
    record = bundle.get(identity)
    if record is None or not record.certificate_pem:
        return None
    try:
        certificates = x509.load_pem_x509_certificates(record.certificate_pem.encode())
    except ValueError as e:
        raise CertificateParseError(identity, str(e)) from e
    if not certificates:
        raise CertificateParseError(identity, "no certificate in PEM data")
    return certificates[0].not_valid_after_utc


def report(state: ClusterState) -> list[CertificateExpiry]:
    """Report the expiration of every certificate identity of a cluster.

    A certificate that cannot be parsed is recorded with its error and does
    not stop the report.
    """
    log = logger.bind(cluster=state.cluster_name)
    entries: list[CertificateExpiry] = []
    for identity in list_identities(state.nodes):
        try:
            not_after = expiration_of(state.certificates, identity)
        except CertificateParseError as e:
            log.warning("certificate_parse_failed", identity=identity, reason=e.reason)
            entries.append(CertificateExpiry(identity=identity, error=e))
            continue
        if not_after is None:
            log.debug("certificate_absent", identity=identity)
        else:
            log.info("certificate_expiration", identity=identity, not_after=not_after.isoformat())
        entries.append(CertificateExpiry(identity=identity, not_after=not_after))
    return entries
