"""Base manager for certificate service managers.

Provides shared infrastructure for managers that talk to one namespace of
one cluster: client access, structured logging and error translation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import structlog

if TYPE_CHECKING:
    from cluster_certs.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()


class K8sBaseManager:
    """Base class for namespace-scoped Kubernetes managers.

    Provides shared concerns for all managers:
    - Client reference and the namespace the manager works in
    - Structured logging with entity binding
    - Consistent API error translation

    Subclasses set ``_entity_name`` for structured log context.

    Example:
        >>> class SecretStore(K8sBaseManager):
        ...     _entity_name = "secret"
    """

    _entity_name: str = ""

    def __init__(self, client: KubernetesClient, namespace: str) -> None:
        """Initialize the manager.

        Args:
            client: Kubernetes API client instance.
            namespace: Namespace every operation of the manager targets.
        """
        self._client = client
        self._namespace = namespace
        self._log = logger.bind(entity=self._entity_name, namespace=namespace)

    @property
    def namespace(self) -> str:
        """Namespace the manager works in."""
        return self._namespace

    def _handle_api_error(
        self,
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
    ) -> NoReturn:
        """Translate a Kubernetes API exception and re-raise.

        Args:
            e: The original exception (typically ApiException).
            resource_type: Type of resource being operated on.
            resource_name: Name of the resource.

        Raises:
            KubernetesError: Always raises an appropriate subclass.
        """
        raise self._client.translate_api_exception(
            e,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=self._namespace,
        )
