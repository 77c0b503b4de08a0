"""Base utilities for certificate CLI commands.

Provides common Typer options and error handling for the ``info`` and
``rotate`` commands.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from cluster_certs.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)
from cluster_certs.integrations.rke.exceptions import (
    BundlePersistenceError,
    CertificateError,
    ClusterRecordUpdateError,
    EngineError,
    MalformedSecretPayload,
    NotAnRkeClusterError,
)

# Shared console instance
console = Console()


# =============================================================================
# Common Typer Option Annotations
# =============================================================================

ClusterOption = Annotated[
    str,
    typer.Option(
        "--cluster",
        help="Name of the downstream cluster in Rancher (e.g., 'c-abc12')",
    ),
]

KubeconfigOption = Annotated[
    str | None,
    typer.Option(
        "--kubeconfig",
        "-c",
        envvar="KUBECONFIG",
        help="Kubeconfig of the Rancher management cluster",
    ),
]

ContextOption = Annotated[
    str | None,
    typer.Option(
        "--context",
        help="Kubeconfig context of the Rancher management cluster",
    ),
]


# =============================================================================
# Error Handling
# =============================================================================


def handle_k8s_error(error: KubernetesError) -> None:
    """Handle Kubernetes errors with user-friendly output.

    Args:
        error: The Kubernetes error to handle.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    if isinstance(error, KubernetesConnectionError):
        console.print("[red]Error:[/red] Cannot connect to Kubernetes cluster")
        console.print(f"  {error.message}")
        if error.original_error:
            console.print(f"  Cause: {error.original_error}")
        console.print(
            "\n[dim]Hint: Check that your kubeconfig is valid and the cluster is reachable.[/dim]"
        )

    elif isinstance(error, KubernetesAuthError):
        console.print("[red]Error:[/red] Authentication/authorization failed")
        console.print(f"  {error.message}")
        console.print("\n[dim]Hint: Check your credentials, token, or RBAC permissions.[/dim]")

    elif isinstance(error, KubernetesNotFoundError):
        console.print("[red]Error:[/red] Resource not found")
        console.print(f"  {error.message}")

    elif isinstance(error, KubernetesValidationError):
        console.print("[red]Error:[/red] Validation failed")
        console.print(f"  {error.message}")

    elif isinstance(error, KubernetesConflictError):
        console.print("[red]Error:[/red] Resource conflict")
        console.print(f"  {error.message}")

    else:
        console.print(f"[red]Error:[/red] {error.message}")
        if error.status_code:
            console.print(f"  HTTP Status: {error.status_code}")

    raise typer.Exit(1)


def handle_cert_error(error: CertificateError) -> None:
    """Handle certificate workflow errors with user-friendly output.

    Args:
        error: The certificate error to handle.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    if isinstance(error, NotAnRkeClusterError):
        console.print(f"[red]Error:[/red] {escape(error.message)}")

    elif isinstance(error, MalformedSecretPayload):
        console.print("[red]Error:[/red] Cluster record is malformed")
        console.print(f"  {escape(error.message)}")

    elif isinstance(error, EngineError):
        console.print("[red]Error:[/red] Certificate rotation failed")
        console.print(f"  {escape(str(error))}")
        if error.stderr:
            console.print(f"\n[dim]{escape(error.stderr.strip())}[/dim]")

    elif isinstance(error, BundlePersistenceError):
        console.print("[red]Error:[/red] Failed to save certificates as secrets")
        for identity, cause in sorted(error.failures.items()):
            console.print(f"  - {identity}: {escape(str(cause))}")
        if error.persisted:
            console.print(f"\n  Saved: {', '.join(error.persisted)}")

    elif isinstance(error, ClusterRecordUpdateError):
        console.print("[red]Error:[/red] Certificates were saved but the cluster record was not")
        console.print(f"  {escape(str(error))}")
        console.print("\n[dim]Hint: Only the cluster record update needs to be retried:[/dim]")
        console.print(f"  cluster-certs update-record --cluster {escape(error.cluster_name or '')}")

    else:
        console.print(f"[red]Error:[/red] {escape(str(error))}")

    raise typer.Exit(1)
