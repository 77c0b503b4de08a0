"""Certificate lifecycle exceptions."""

from __future__ import annotations


class CertificateError(Exception):
    """Base exception for certificate state, inventory and persistence failures.

    Attributes:
        message: Human-readable error message.
        cluster_name: Downstream cluster the error relates to.
        identity: Certificate identity the error relates to.
    """

    def __init__(
        self,
        message: str,
        cluster_name: str | None = None,
        identity: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cluster_name = cluster_name
        self.identity = identity

    def __str__(self) -> str:
        """Return string representation of the error."""
        parts = [self.message]
        if self.cluster_name:
            parts.append(f"[cluster {self.cluster_name}]")
        if self.identity:
            parts.append(f"[certificate {self.identity}]")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# State resolution
# ---------------------------------------------------------------------------


class StateRecordError(CertificateError):
    """The full cluster state record could not be used."""


class StateRecordMissing(StateRecordError):
    """The full cluster state record does not exist or holds no data."""


class StateRecordCorrupt(StateRecordError):
    """The full cluster state record exists but cannot be deserialized."""


class MalformedSecretPayload(CertificateError):
    """A secret does not hold the payload its schema requires."""

    def __init__(
        self,
        message: str,
        secret_name: str,
        key: str | None = None,
    ) -> None:
        super().__init__(message=f"Malformed payload in secret '{secret_name}': {message}")
        self.secret_name = secret_name
        self.key = key


class NotAnRkeClusterError(CertificateError):
    """The management cluster object carries no RKE configuration."""

    def __init__(self, cluster_name: str) -> None:
        super().__init__(
            message=f"The cluster '{cluster_name}' isn't an RKE cluster",
            cluster_name=cluster_name,
        )


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class CertificateParseError(CertificateError):
    """A certificate payload is not a readable PEM chain."""

    def __init__(self, identity: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to read certificate: {reason}",
            identity=identity,
        )
        self.reason = reason


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class CertificatePersistenceError(CertificateError):
    """A single certificate secret could not be written."""

    def __init__(
        self,
        identity: str,
        message: str = "Failed to save certificate as secret",
        original_error: Exception | None = None,
    ) -> None:
        if original_error is not None:
            message = f"{message}: {original_error}"
        super().__init__(message=message, identity=identity)
        self.original_error = original_error


class PersistenceTimeout(CertificatePersistenceError):
    """Writing a certificate secret did not succeed within its retry window."""

    def __init__(
        self,
        identity: str,
        timeout: float,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            identity=identity,
            message=f"Timeout after {timeout:g}s waiting for kubernetes to be ready",
            original_error=original_error,
        )
        self.timeout = timeout


class BundlePersistenceError(CertificateError):
    """One or more certificates of a bundle could not be persisted.

    Attributes:
        failures: Mapping of certificate identity to the error it raised.
        persisted: Identities that were written successfully.
    """

    def __init__(
        self,
        failures: dict[str, Exception],
        persisted: list[str] | None = None,
    ) -> None:
        names = ", ".join(sorted(failures))
        super().__init__(message=f"Failed to save certificates as secrets: {names}")
        self.failures = failures
        self.persisted = persisted or []


class ClusterRecordUpdateError(CertificateError):
    """The cluster record secret could not be updated with the new bundle."""

    def __init__(self, cluster_name: str, original_error: Exception | None = None) -> None:
        message = "Failed to update cluster record"
        if original_error is not None:
            message = f"{message}: {original_error}"
        super().__init__(message=message, cluster_name=cluster_name)
        self.original_error = original_error


# ---------------------------------------------------------------------------
# Bootstrapping engine
# ---------------------------------------------------------------------------


class EngineError(CertificateError):
    """Base exception for bootstrapping engine failures."""

    def __init__(
        self,
        message: str,
        cluster_name: str | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message=message, cluster_name=cluster_name)
        self.stderr = stderr


class EngineInitError(EngineError):
    """The engine rejected the cluster configuration."""


class EngineBootstrapError(EngineError):
    """The engine failed while bringing the cluster up."""


class EngineBinaryNotFoundError(EngineError):
    """The rke binary is not installed or not executable."""

    def __init__(self, binary: str) -> None:
        super().__init__(
            message=(
                f"rke binary '{binary}' not found. "
                "Install from: https://github.com/rancher/rke/releases"
            ),
        )
