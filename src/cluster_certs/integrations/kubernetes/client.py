"""Kubernetes API client wrapper.

Wraps the official kubernetes Python client. Each KubernetesClient owns its
own ``ApiClient`` so the management cluster and a downstream cluster can be
used side by side without touching the library's global configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
import yaml

from cluster_certs.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

if TYPE_CHECKING:
    from kubernetes.client import ApiClient, CoreV1Api, CustomObjectsApi

logger = structlog.get_logger()


class KubernetesClient:
    """Single-cluster Kubernetes API client.

    Provides:
    - Construction from a kubeconfig file, in-cluster config, or kubeconfig
      content held in memory
    - Lazy API group initialization bound to this client's ``ApiClient``
    - Consistent error translation to custom exceptions
    - Context manager support

    Example:
        ```python
        from cluster_certs.integrations.kubernetes import KubernetesClient

        with KubernetesClient.from_kubeconfig("~/.kube/config") as client:
            secret = client.core_v1.read_namespaced_secret("c-abc", "cattle-system")
        ```
    """

    def __init__(
        self,
        api_client: ApiClient,
        *,
        context: str | None = None,
        request_timeout: int = 30,
    ) -> None:
        """Initialize the client around an existing ApiClient.

        Args:
            api_client: Configured kubernetes ApiClient.
            context: Name of the kubeconfig context, for logging.
            request_timeout: Per-request timeout in seconds.
        """
        self._api_client = api_client
        self._current_context = context
        self._request_timeout = request_timeout

        self._core_v1: CoreV1Api | None = None
        self._custom_objects: CustomObjectsApi | None = None

        logger.debug("kubernetes_client_initialized", context=context)

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_kubeconfig(
        cls,
        kubeconfig: str | None = None,
        context: str | None = None,
        *,
        request_timeout: int = 30,
    ) -> KubernetesClient:
        """Build a client from a kubeconfig file, falling back to in-cluster config.

        Args:
            kubeconfig: Path to the kubeconfig file (None for the default).
            context: Kubeconfig context to use (None for current-context).
            request_timeout: Per-request timeout in seconds.

        Raises:
            KubernetesConnectionError: If no configuration can be loaded.
        """
        from kubernetes import client, config
        from kubernetes.config import ConfigException

        try:
            api_client = config.new_client_from_config(config_file=kubeconfig, context=context)
            logger.debug("loaded_kubeconfig", context=context, kubeconfig=kubeconfig)
            return cls(api_client, context=context, request_timeout=request_timeout)
        except ConfigException:
            pass

        try:
            configuration = client.Configuration()
            config.load_incluster_config(client_configuration=configuration)
        except ConfigException as e:
            raise KubernetesConnectionError(
                message="Cannot load Kubernetes configuration. "
                "Ensure kubeconfig exists or running inside a cluster.",
                original_error=e,
            ) from e
        logger.debug("loaded_incluster_config")
        return cls(
            client.ApiClient(configuration),
            context="in-cluster",
            request_timeout=request_timeout,
        )

    @classmethod
    def from_kubeconfig_content(
        cls,
        content: str,
        *,
        request_timeout: int = 30,
    ) -> KubernetesClient:
        """Build a client from kubeconfig YAML held in memory.

        Args:
            content: Kubeconfig document.
            request_timeout: Per-request timeout in seconds.

        Raises:
            KubernetesConnectionError: If the document is not a usable kubeconfig.
        """
        from kubernetes import config
        from kubernetes.config import ConfigException

        try:
            config_dict = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise KubernetesConnectionError(
                message="Kubeconfig is not valid YAML",
                original_error=e,
            ) from e
        if not isinstance(config_dict, dict):
            raise KubernetesConnectionError(message="Kubeconfig must be a YAML mapping")

        try:
            api_client = config.new_client_from_config_dict(config_dict)
        except ConfigException as e:
            raise KubernetesConnectionError(
                message="Cannot load kubeconfig content",
                original_error=e,
            ) from e
        return cls(
            api_client,
            context=config_dict.get("current-context"),
            request_timeout=request_timeout,
        )

    # =========================================================================
    # Lazy API Group Accessors
    # =========================================================================

    @property
    def core_v1(self) -> CoreV1Api:
        """Get CoreV1Api instance (secrets, configmaps)."""
        if self._core_v1 is None:
            from kubernetes.client import CoreV1Api

            self._core_v1 = CoreV1Api(self._api_client)
        return self._core_v1

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """Get CustomObjectsApi instance (Rancher management resources)."""
        if self._custom_objects is None:
            from kubernetes.client import CustomObjectsApi

            self._custom_objects = CustomObjectsApi(self._api_client)
        return self._custom_objects

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a kubernetes ApiException to a custom exception.

        Transport failures (urllib3 errors, socket errors) become
        KubernetesConnectionError.

        Args:
            e: The original exception.
            resource_type: Type of resource being operated on.
            resource_name: Name of the resource.
            namespace: Namespace of the resource.

        Returns:
            An appropriate KubernetesError subclass.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, HTTPError | OSError):
            return KubernetesConnectionError(
                message=f"Kubernetes API unreachable: {e}",
                original_error=e,
            )

        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = e.status

        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
            )

        if status == 404:
            return KubernetesNotFoundError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status == 409:
            return KubernetesConflictError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status in (400, 422):
            return KubernetesValidationError(
                message=e.reason or "Validation failed",
                status_code=status,
            )

        if not status:
            return KubernetesConnectionError(
                message=e.reason or "Kubernetes API request failed",
                original_error=e,
            )

        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def current_context(self) -> str:
        """Get the context name this client was built from."""
        return self._current_context or "unknown"

    @property
    def request_timeout(self) -> int:
        """Get the per-request timeout in seconds."""
        return self._request_timeout

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the client and release resources."""
        self._core_v1 = None
        self._custom_objects = None
        self._api_client.close()
        logger.debug("kubernetes_client_closed", context=self._current_context)

    def __enter__(self) -> KubernetesClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
