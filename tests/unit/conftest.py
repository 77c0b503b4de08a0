"""Shared fixtures for unit tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from cryptography.x509.oid import NameOID

from cluster_certs.integrations.rke.models import CertificateRecord, RKEConfigNode

CertFactory = Callable[..., CertificateRecord]


def make_pem_pair(common_name: str, not_after: datetime) -> tuple[str, str]:
    """Generate a self-signed certificate and its key as PEM text."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=365))
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(Encoding.PEM, PrivateFormat.TraditionalOpenSSL, NoEncryption())
    return certificate.public_bytes(Encoding.PEM).decode(), key_pem.decode()


@pytest.fixture
def not_after() -> datetime:
    """A fixed expiration date with second precision."""
    return (datetime.now(UTC) + timedelta(days=300)).replace(microsecond=0)


@pytest.fixture
def cert_factory(not_after: datetime) -> CertFactory:
    """Build CertificateRecords with a real certificate and key."""

    def factory(identity: str, expires: datetime | None = None, **fields: str) -> CertificateRecord:
        certificate_pem, key_pem = make_pem_pair(identity, expires or not_after)
        return CertificateRecord(
            name=identity,
            certificate_pem=certificate_pem,
            key_pem=key_pem,
            common_name=identity,
            env_name=f"{identity.upper().replace('-', '_')}",
            path=f"/etc/kubernetes/ssl/{identity}.pem",
            key_env_name=f"{identity.upper().replace('-', '_')}_KEY",
            key_path=f"/etc/kubernetes/ssl/{identity}-key.pem",
            **fields,
        )

    return factory


@pytest.fixture
def nodes() -> list[RKEConfigNode]:
    """Three-node topology with one etcd node at 10.0.0.5."""
    return [
        RKEConfigNode(address="10.0.0.5", role=["etcd"], node_name="etcd-1"),
        RKEConfigNode(address="10.0.0.6", role=["controlplane"], node_name="cp-1"),
        RKEConfigNode(address="10.0.0.7", role=["worker"], node_name="worker-1"),
    ]
