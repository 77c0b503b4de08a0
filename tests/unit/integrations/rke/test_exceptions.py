"""Unit tests for certificate lifecycle exceptions."""

from __future__ import annotations

import pytest

from cluster_certs.integrations.rke.exceptions import (
    BundlePersistenceError,
    CertificateError,
    CertificateParseError,
    CertificatePersistenceError,
    ClusterRecordUpdateError,
    EngineBinaryNotFoundError,
    EngineError,
    MalformedSecretPayload,
    NotAnRkeClusterError,
    PersistenceTimeout,
)


@pytest.mark.unit
class TestCertificateError:
    """Test CertificateError base exception."""

    def test_str_message_only(self) -> None:
        """Test string representation with message only."""
        assert str(CertificateError("Something failed")) == "Something failed"

    def test_str_with_context(self) -> None:
        """Test cluster and identity are appended."""
        error = CertificateError("Failed", cluster_name="c-abc", identity="kube-ca")

        assert str(error) == "Failed [cluster c-abc] [certificate kube-ca]"


@pytest.mark.unit
class TestCertificateErrorSubclasses:
    """Test the specific error subclasses."""

    def test_not_an_rke_cluster(self) -> None:
        """Test the message names the cluster."""
        error = NotAnRkeClusterError("c-abc")

        assert error.message == "The cluster 'c-abc' isn't an RKE cluster"
        assert error.cluster_name == "c-abc"

    def test_malformed_secret_payload(self) -> None:
        """Test the secret name is part of the message."""
        error = MalformedSecretPayload("missing key", secret_name="c-c-abc", key="cluster")

        assert "secret 'c-c-abc'" in error.message
        assert error.key == "cluster"

    def test_parse_error(self) -> None:
        """Test the identity and reason are kept."""
        error = CertificateParseError("kube-proxy", "no PEM data")

        assert error.identity == "kube-proxy"
        assert error.reason == "no PEM data"

    def test_persistence_error_includes_cause(self) -> None:
        """Test the original error is part of the message."""
        cause = RuntimeError("forbidden")
        error = CertificatePersistenceError("kube-ca", original_error=cause)

        assert error.original_error is cause
        assert error.message == "Failed to save certificate as secret: forbidden"

    def test_persistence_timeout(self) -> None:
        """Test timeout is a persistence error with its window."""
        error = PersistenceTimeout("kube-ca", 5.0)

        assert isinstance(error, CertificatePersistenceError)
        assert error.timeout == 5.0
        assert "Timeout after 5s" in error.message

    def test_bundle_persistence_error(self) -> None:
        """Test failures are listed in sorted order."""
        failures = {"kube-proxy": RuntimeError("x"), "kube-ca": RuntimeError("y")}

        error = BundlePersistenceError(failures, persisted=["kube-node"])

        assert error.message.endswith("kube-ca, kube-proxy")
        assert error.persisted == ["kube-node"]

    def test_cluster_record_update_error(self) -> None:
        """Test the cluster is recorded."""
        error = ClusterRecordUpdateError("c-abc", RuntimeError("conflict"))

        assert error.cluster_name == "c-abc"
        assert "conflict" in error.message

    def test_engine_binary_not_found(self) -> None:
        """Test missing binary is an engine error."""
        error = EngineBinaryNotFoundError("/opt/rke")

        assert isinstance(error, EngineError)
        assert "/opt/rke" in error.message
        assert error.stderr is None
