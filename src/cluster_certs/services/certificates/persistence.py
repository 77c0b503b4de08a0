"""Persistence of certificate bundles as Kubernetes secrets.

Each certificate is written to its own secret by an independent task with
a bounded retry window. Tasks run concurrently and are all awaited before
the outcome of the bundle is known. The cluster record is updated
separately, once, after the bundle has been persisted.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_before_delay,
    wait_fixed,
)

from cluster_certs.integrations.kubernetes.config import PersistenceConfig
from cluster_certs.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesError,
    KubernetesValidationError,
)
from cluster_certs.integrations.rke.exceptions import (
    BundlePersistenceError,
    CertificateError,
    CertificatePersistenceError,
    ClusterRecordUpdateError,
    PersistenceTimeout,
)
from cluster_certs.integrations.rke.models import CLUSTER_RECORD_KEY

if TYPE_CHECKING:
    from cluster_certs.integrations.rke.models import CertificateBundle, CertificateRecord
    from cluster_certs.services.certificates.management import ManagementContext
    from cluster_certs.services.certificates.secret_store import SecretStore

logger = structlog.get_logger()

# Errors a retry cannot fix
PERMANENT_ERRORS: tuple[type[KubernetesError], ...] = (
    KubernetesAuthError,
    KubernetesValidationError,
)


@dataclass
class PersistenceResult:
    """Outcome of persisting a bundle.

    Attributes:
        persisted: Identities written to a secret.
        skipped: Identities with no certificate or key, left unwritten.
    """

    persisted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class PersistenceEngine:
    """Writes certificate bundles and the cluster record."""

    def __init__(
        self,
        store: SecretStore,
        management: ManagementContext,
        config: PersistenceConfig | None = None,
        *,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Store of the downstream namespace receiving certificate secrets.
            management: Management cluster context owning the cluster record.
            config: Retry window and worker settings.
            sleep: Sleep function used between attempts (defaults to time.sleep).
            clock: Monotonic clock measuring each certificate's window.
        """
        self._store = store
        self._management = management
        self._config = config or PersistenceConfig()
        self._sleep = sleep
        self._clock = clock
        self._log = logger.bind(entity="persistence", namespace=store.namespace)

    def _retrying(self, identity: str) -> Retrying:
        log = self._log

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            log.warning(
                "retrying_certificate_write",
                identity=identity,
                attempt=retry_state.attempt_number,
                error=str(error),
            )

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return Retrying(
            retry=(
                retry_if_exception_type(KubernetesError)
                & retry_if_not_exception_type(PERMANENT_ERRORS)
            ),
            stop=stop_before_delay(self._config.timeout),
            wait=wait_fixed(self._config.backoff),
            before_sleep=log_retry,
            **kwargs,
        )

    def persist_certificate(self, identity: str, record: CertificateRecord) -> bool:
        """Write one certificate to the secret named after its identity.

        Transient API errors are retried every ``backoff`` seconds while the
        ``timeout`` window lasts. The window starts with the first attempt
        and also bounds each API call, so a write still in flight when it
        closes is abandoned. A record with neither certificate nor key is
        skipped.

        Returns:
            True if the secret was written, False if the record was skipped.

        Raises:
            PersistenceTimeout: If the window closed before a write succeeded.
            CertificatePersistenceError: On an error a retry cannot fix.
        """
        if not record.has_payload:
            self._log.debug("skipping_empty_certificate", identity=identity)
            return False

        data = record.to_secret_data()
        timeout = self._config.timeout
        deadline = self._clock() + timeout
        self._log.debug("persisting_certificate", identity=identity)
        try:
            for attempt in self._retrying(identity):
                with attempt:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        raise PersistenceTimeout(identity, timeout=timeout)
                    self._store.put_secret_data(identity, data, request_timeout=remaining)
        except RetryError as e:
            raise PersistenceTimeout(
                identity,
                timeout=timeout,
                original_error=e.last_attempt.exception(),
            ) from e
        except KubernetesError as e:
            raise CertificatePersistenceError(identity, original_error=e) from e

        if self._clock() > deadline:
            raise PersistenceTimeout(identity, timeout=timeout)

        self._log.debug("persisted_certificate", identity=identity)
        return True

    def persist(self, bundle: CertificateBundle) -> PersistenceResult:
        """Write every certificate of a bundle concurrently.

        All tasks settle before the result is known; a failing certificate
        does not stop the others.

        Raises:
            BundlePersistenceError: If any certificate could not be written.
        """
        result = PersistenceResult()
        if not bundle:
            return result

        self._log.info("saving_certificates_as_secrets", count=len(bundle))
        failures: dict[str, Exception] = {}
        max_workers = self._config.max_workers or len(bundle)

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="persist") as executor:
            future_to_identity = {
                executor.submit(self.persist_certificate, identity, record): identity
                for identity, record in bundle.items()
            }
            for future in as_completed(future_to_identity):
                identity = future_to_identity[future]
                try:
                    written = future.result()
                except Exception as e:
                    self._log.error("certificate_persistence_failed", identity=identity, error=str(e))
                    failures[identity] = e
                    continue
                if written:
                    result.persisted.append(identity)
                else:
                    result.skipped.append(identity)

        result.persisted.sort()
        result.skipped.sort()
        if failures:
            raise BundlePersistenceError(failures, persisted=result.persisted)

        self._log.info(
            "saved_certificates_as_secrets",
            persisted=len(result.persisted),
            skipped=len(result.skipped),
        )
        return result

    def update_cluster_record(
        self,
        cluster_name: str,
        client_cert: str,
        client_key: str,
        bundle: CertificateBundle,
    ) -> None:
        """Store new client credentials and the bundle in the cluster record.

        Single attempt; the record is read, updated and written back onto the
        same secret. A concurrent change to the record fails the update.

        Raises:
            ClusterRecordUpdateError: If the record cannot be read, parsed or
                written.
        """
        try:
            record = self._management.get_cluster_record(cluster_name)
            record.info.set_certificates(client_cert, client_key, bundle)
            record.data[CLUSTER_RECORD_KEY] = record.info.to_json()
            self._management.save_cluster_record(cluster_name, record)
        except (KubernetesError, CertificateError) as e:
            raise ClusterRecordUpdateError(cluster_name, original_error=e) from e

        self._log.info("updated_cluster_record", cluster=cluster_name)
