"""CLI commands for control-plane certificates.

Provides the ``info``, ``rotate`` and ``update-record`` commands backed by
the ClusterCertificateManager service.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import typer
from rich.markup import escape
from rich.table import Table

from cluster_certs.cli.commands.base import (
    ClusterOption,
    ContextOption,
    KubeconfigOption,
    console,
    handle_cert_error,
    handle_k8s_error,
)
from cluster_certs.integrations.kubernetes.exceptions import KubernetesError
from cluster_certs.integrations.rke.exceptions import CertificateError
from cluster_certs.services.certificates.rotation import RotationNotApplicable

if TYPE_CHECKING:
    from cluster_certs.services.certificates.inventory import CertificateExpiry
    from cluster_certs.services.certificates.manager import ClusterCertificateManager

ManagerFactory = Callable[[str | None, str | None], "ClusterCertificateManager"]


def _expiry_status(entry: CertificateExpiry, now: datetime) -> str:
    """Rich-formatted status of one certificate."""
    if entry.error is not None:
        return f"[red]unreadable: {escape(entry.error.reason)}[/red]"
    if entry.not_after is None:
        return "[dim]absent[/dim]"
    if entry.not_after <= now:
        return "[red]expired[/red]"
    days = (entry.not_after - now).days
    return f"[green]valid[/green] ({days}d left)"


def build_expiry_table(cluster_name: str, entries: list[CertificateExpiry]) -> Table:
    """Build the table printed by ``info``."""
    now = datetime.now(UTC)
    table = Table(title=f"Certificates of cluster {escape(cluster_name)}")
    table.add_column("Certificate", style="cyan", no_wrap=True)
    table.add_column("Expires (UTC)")
    table.add_column("Status")

    for entry in entries:
        expires = entry.not_after.strftime("%Y-%m-%d %H:%M:%S") if entry.not_after else "-"
        table.add_row(entry.identity, expires, _expiry_status(entry, now))
    return table


def register_certs_commands(app: typer.Typer, get_manager: ManagerFactory) -> None:
    """Register certificate CLI commands."""

    @app.command("info")
    def info(
        cluster: ClusterOption,
        kubeconfig: KubeconfigOption = None,
        context: ContextOption = None,
    ) -> None:
        """Show the expiration of a cluster's control-plane certificates.

        Examples:
            cluster-certs info --cluster c-abc12
            cluster-certs info --cluster c-abc12 -c ~/.kube/rancher.yaml
        """
        try:
            with get_manager(kubeconfig, context) as manager:
                entries = manager.show_certificates(cluster)
            console.print(build_expiry_table(cluster, entries))
        except KubernetesError as e:
            handle_k8s_error(e)
        except CertificateError as e:
            handle_cert_error(e)

    @app.command("rotate")
    def rotate(
        cluster: ClusterOption,
        kubeconfig: KubeconfigOption = None,
        context: ContextOption = None,
    ) -> None:
        """Rotate the control-plane certificates of a legacy cluster.

        Clusters tracked by a full state record are rotated from the
        Rancher UI instead; for those this command only prints an advisory.

        Examples:
            cluster-certs rotate --cluster c-abc12
        """
        try:
            with get_manager(kubeconfig, context) as manager:
                outcome = manager.rotate_certificates(cluster)
        except KubernetesError as e:
            handle_k8s_error(e)
            return
        except CertificateError as e:
            handle_cert_error(e)
            return

        if isinstance(outcome, RotationNotApplicable):
            console.print(f"[yellow]{escape(outcome.advisory)}[/yellow]")
            return

        console.print(
            f"[green]Rotated {len(outcome.certificates)} certificates "
            f"for cluster {escape(cluster)}[/green]"
        )
        for identity in sorted(outcome.certificates):
            console.print(f"  - {identity}")

    @app.command("update-record")
    def update_record(
        cluster: ClusterOption,
        kubeconfig: KubeconfigOption = None,
        context: ContextOption = None,
    ) -> None:
        """Store the certificates of the last rotation in the cluster record.

        Use this when ``rotate`` saved the certificates but could not
        update the cluster record. It reads the ``cluster.rkestate`` left in
        the work directory and does not rotate again.

        Examples:
            cluster-certs update-record --cluster c-abc12
        """
        try:
            with get_manager(kubeconfig, context) as manager:
                state = manager.update_cluster_record(cluster)
        except KubernetesError as e:
            handle_k8s_error(e)
            return
        except CertificateError as e:
            handle_cert_error(e)
            return

        console.print(
            f"[green]Updated cluster record of {escape(cluster)} "
            f"with {len(state.certificates)} certificates[/green]"
        )
