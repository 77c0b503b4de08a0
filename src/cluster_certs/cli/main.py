"""Main CLI entry point using Typer."""

from __future__ import annotations

import os

import typer
from rich.console import Console

from cluster_certs import __version__
from cluster_certs.cli.commands.certs import register_certs_commands
from cluster_certs.integrations.kubernetes.client import KubernetesClient
from cluster_certs.integrations.kubernetes.config import CertsConfig
from cluster_certs.logging.config import configure_logging
from cluster_certs.services.certificates.manager import ClusterCertificateManager

app = typer.Typer(
    name="cluster-certs",
    help="Inspect and rotate the control-plane certificates of RKE clusters managed by Rancher.",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cluster-certs version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    log_file: bool = typer.Option(
        True,
        "--log-file/--no-log-file",
        help="Also write logs to ~/.local/state/cluster-certs/.",
    ),
) -> None:
    """cluster-certs - Control-plane certificates of Rancher RKE clusters."""
    configure_logging(verbose=verbose, debug=debug, log_to_file=log_file)


def get_manager(kubeconfig: str | None, context: str | None) -> ClusterCertificateManager:
    """Build the certificate manager for the management cluster.

    Command-line options take precedence over environment configuration.
    """
    config = CertsConfig.from_env()
    overrides: dict[str, str] = {}
    if kubeconfig:
        overrides["kubeconfig"] = kubeconfig.split(os.pathsep)[0]
    if context:
        overrides["context"] = context
    if overrides:
        config = CertsConfig.model_validate(
            {
                **config.model_dump(),
                "management": {**config.management.model_dump(), **overrides},
            }
        )

    client = KubernetesClient.from_kubeconfig(
        config.management.kubeconfig,
        config.management.context,
        request_timeout=config.request_timeout,
    )
    return ClusterCertificateManager(client, config)


# Register commands
register_certs_commands(app, get_manager)


if __name__ == "__main__":
    app()
