"""Kubernetes API exceptions."""

from __future__ import annotations

from typing import Any


class KubernetesError(Exception):
    """Base exception for Kubernetes API operations.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from the Kubernetes API (if applicable).
        resource_type: Type of resource involved (e.g., "Secret", "ConfigMap").
        resource_name: Name of the resource involved.
        namespace: Namespace of the resource (if applicable).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        """Initialize KubernetesError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code from Kubernetes API.
            resource_type: Type of resource involved.
            resource_name: Name of the resource involved.
            namespace: Namespace of the resource.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace

    def __str__(self) -> str:
        """Return string representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if self.resource_type and self.resource_name:
            loc = f"[{self.resource_type}/{self.resource_name}"
            if self.namespace:
                loc += f" in {self.namespace}"
            loc += "]"
            parts.append(loc)
        return " ".join(parts)


class KubernetesConnectionError(KubernetesError):
    """Raised when a cluster cannot be reached or its kubeconfig cannot be loaded."""

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
    ) -> None:
        """Initialize KubernetesConnectionError.

        Args:
            message: Human-readable error message.
            original_error: The original exception that caused this error.
        """
        super().__init__(message=message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """Raised on 401/403 responses (bad credentials, RBAC denial)."""

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int | None = 401,
        reason: str | None = None,
    ) -> None:
        """Initialize KubernetesAuthError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code (usually 401 or 403).
            reason: Kubernetes API reason string.
        """
        super().__init__(message=message, status_code=status_code)
        self.reason = reason


class KubernetesNotFoundError(KubernetesError):
    """Raised when a requested resource does not exist (404)."""

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        """Initialize KubernetesNotFoundError.

        Args:
            message: Human-readable error message.
            resource_type: Type of resource (e.g., "Secret").
            resource_name: Name of the resource.
            namespace: Namespace of the resource.
        """
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' not found"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=404,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """Raised when the API server rejects a resource body (400/422)."""

    def __init__(
        self,
        message: str = "Invalid resource specification",
        validation_errors: dict[str, Any] | None = None,
        status_code: int | None = 422,
    ) -> None:
        """Initialize KubernetesValidationError.

        Args:
            message: Human-readable error message.
            validation_errors: Specific field validation errors.
            status_code: HTTP status code (usually 400 or 422).
        """
        super().__init__(message=message, status_code=status_code)
        self.validation_errors = validation_errors or {}


class KubernetesConflictError(KubernetesError):
    """Raised on 409 responses.

    Also returned when creating a resource that already exists.
    """

    def __init__(
        self,
        message: str = "Resource conflict",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        """Initialize KubernetesConflictError.

        Args:
            message: Human-readable error message.
            resource_type: Type of resource.
            resource_name: Name of the resource.
            namespace: Namespace of the resource.
        """
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' conflicts with its current state"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=409,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
