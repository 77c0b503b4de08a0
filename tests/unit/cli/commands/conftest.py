"""Shared fixtures for certificate command tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import typer

from cluster_certs.cli.commands.certs import register_certs_commands


@pytest.fixture
def mock_cert_manager() -> MagicMock:
    """Create a mock ClusterCertificateManager."""
    manager = MagicMock()
    manager.show_certificates.return_value = []
    return manager


@pytest.fixture
def get_cert_manager(mock_cert_manager: MagicMock) -> MagicMock:
    """Create a factory returning the mock manager as a context manager."""
    factory = MagicMock()
    factory.return_value.__enter__.return_value = mock_cert_manager
    return factory


@pytest.fixture
def app(get_cert_manager: MagicMock) -> typer.Typer:
    """Create a test app with certificate commands."""
    app = typer.Typer()
    register_certs_commands(app, get_cert_manager)
    return app
