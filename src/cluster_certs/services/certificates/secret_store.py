"""Secret and config map access for one namespace."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from cluster_certs.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesNotFoundError,
)
from cluster_certs.integrations.rke.exceptions import MalformedSecretPayload
from cluster_certs.services.certificates.base import K8sBaseManager


def _encode(data: dict[str, str]) -> dict[str, str]:
    return {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}


class SecretStore(K8sBaseManager):
    """Reads and writes secrets, and reads config maps, in one namespace.

    Secret values are exchanged as plain strings; base64 encoding of the
    API representation is handled here.
    """

    _entity_name = "secret"

    def get_secret(self, name: str) -> Any | None:
        """Get a secret as returned by the API.

        Returns:
            The V1Secret, or None if the secret does not exist.

        Raises:
            KubernetesError: On any API failure other than not found.
        """
        self._log.debug("getting_secret", name=name)
        try:
            return self._client.core_v1.read_namespaced_secret(
                name=name,
                namespace=self._namespace,
                _request_timeout=self._client.request_timeout,
            )
        except Exception as e:
            error = self._client.translate_api_exception(e, "Secret", name, self._namespace)
            if isinstance(error, KubernetesNotFoundError):
                self._log.debug("secret_not_found", name=name)
                return None
            raise error

    def decode_secret_data(self, name: str, secret: Any) -> dict[str, str]:
        """Decode the data of a secret read from the API.

        Raises:
            MalformedSecretPayload: If a value is not base64-encoded text.
        """
        data: dict[str, str] = {}
        for key, value in (secret.data or {}).items():
            try:
                data[key] = base64.b64decode(value, validate=True).decode()
            except (binascii.Error, UnicodeDecodeError) as e:
                raise MalformedSecretPayload(
                    f"value of '{key}' is not base64-encoded text",
                    secret_name=name,
                    key=key,
                ) from e
        return data

    def get_secret_data(self, name: str) -> dict[str, str] | None:
        """Get the decoded data of a secret.

        Args:
            name: Secret name.

        Returns:
            Decoded key-value pairs, or None if the secret does not exist.

        Raises:
            MalformedSecretPayload: If a value is not base64-encoded text.
            KubernetesError: On any other API failure.
        """
        secret = self.get_secret(name)
        if secret is None:
            return None
        return self.decode_secret_data(name, secret)

    def _timeout(self, request_timeout: float | None) -> float:
        if request_timeout is None:
            return self._client.request_timeout
        return min(self._client.request_timeout, request_timeout)

    def put_secret_data(
        self,
        name: str,
        data: dict[str, str],
        request_timeout: float | None = None,
    ) -> None:
        """Create a secret, or replace the data of an existing one.

        An existing secret is read first; its labels, annotations, owner
        references and type are kept and only the given keys change.

        Args:
            name: Secret name.
            data: Key-value pairs (values will be base64-encoded).
            request_timeout: Upper bound in seconds for each API call,
                capped by the client's own timeout.

        Raises:
            KubernetesError: If the secret cannot be written.
        """
        from kubernetes.client import V1ObjectMeta, V1Secret

        timeout = self._timeout(request_timeout)
        body = V1Secret(
            metadata=V1ObjectMeta(name=name, namespace=self._namespace),
            type="Opaque",
            data=_encode(data),
        )

        self._log.debug("saving_secret", name=name, keys=sorted(data))
        try:
            self._client.core_v1.create_namespaced_secret(
                namespace=self._namespace,
                body=body,
                _request_timeout=timeout,
            )
            self._log.debug("created_secret", name=name)
            return
        except Exception as e:
            error = self._client.translate_api_exception(e, "Secret", name, self._namespace)
            if not isinstance(error, KubernetesConflictError):
                raise error

        try:
            existing = self._client.core_v1.read_namespaced_secret(
                name=name,
                namespace=self._namespace,
                _request_timeout=timeout,
            )
        except Exception as e:
            self._handle_api_error(e, "Secret", name)
        self.update_secret_data(existing, data, request_timeout=timeout)

    def update_secret_data(
        self,
        secret: Any,
        data: dict[str, str],
        request_timeout: float | None = None,
    ) -> None:
        """Replace a previously read secret with new values for some keys.

        The secret is sent back with its resourceVersion, so a change made
        since it was read fails with a conflict instead of being overwritten.

        Args:
            secret: V1Secret read from the API.
            data: Key-value pairs to set (values will be base64-encoded).
            request_timeout: Upper bound in seconds for the API call.

        Raises:
            KubernetesConflictError: If the secret changed since it was read.
            KubernetesError: If the secret cannot be written.
        """
        name = secret.metadata.name
        secret.data = {**(secret.data or {}), **_encode(data)}
        try:
            self._client.core_v1.replace_namespaced_secret(
                name=name,
                namespace=self._namespace,
                body=secret,
                _request_timeout=self._timeout(request_timeout),
            )
        except Exception as e:
            self._handle_api_error(e, "Secret", name)
        self._log.debug("replaced_secret", name=name, keys=sorted(data))

    def get_config_map_data(self, name: str) -> dict[str, str] | None:
        """Get the data of a config map.

        Args:
            name: ConfigMap name.

        Returns:
            Key-value pairs, or None if the config map does not exist.

        Raises:
            KubernetesError: On any API failure other than not found.
        """
        self._log.debug("getting_configmap_data", name=name)
        try:
            config_map = self._client.core_v1.read_namespaced_config_map(
                name=name,
                namespace=self._namespace,
                _request_timeout=self._client.request_timeout,
            )
        except Exception as e:
            error = self._client.translate_api_exception(e, "ConfigMap", name, self._namespace)
            if isinstance(error, KubernetesNotFoundError):
                self._log.debug("configmap_not_found", name=name)
                return None
            raise error
        return dict(config_map.data or {})
