"""Shared fixtures for certificate service tests."""

from __future__ import annotations

import threading
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from cluster_certs.integrations.kubernetes.client import KubernetesClient


class FakeSecretStore:
    """In-memory stand-in for SecretStore.

    ``failures`` maps a secret name to errors raised, in order, by the next
    writes of that secret.
    ``on_write`` is called with the secret name before each write.
    """

    def __init__(self, namespace: str = "kube-system") -> None:
        self.namespace = namespace
        self.secrets: dict[str, dict[str, str]] = {}
        self.config_maps: dict[str, dict[str, str]] = {}
        self.failures: dict[str, list[Exception]] = {}
        self.writes: list[str] = []
        self.request_timeouts: list[float | None] = []
        self.on_write: Callable[[str], None] | None = None
        self._lock = threading.Lock()

    def get_secret_data(self, name: str) -> dict[str, str] | None:
        data = self.secrets.get(name)
        return dict(data) if data is not None else None

    def put_secret_data(
        self, name: str, data: dict[str, str], request_timeout: float | None = None
    ) -> None:
        if self.on_write is not None:
            self.on_write(name)
        with self._lock:
            self.writes.append(name)
            self.request_timeouts.append(request_timeout)
            pending = self.failures.get(name)
            if pending:
                raise pending.pop(0)
            self.secrets[name] = dict(data)

    def get_config_map_data(self, name: str) -> dict[str, str] | None:
        data = self.config_maps.get(name)
        return dict(data) if data is not None else None

    def write_count(self, name: str) -> int:
        return self.writes.count(name)


@pytest.fixture
def fake_store() -> FakeSecretStore:
    """Empty in-memory secret store for kube-system."""
    return FakeSecretStore()


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client that translates errors like the real one."""
    mock_client = MagicMock()
    mock_client.request_timeout = 30
    mock_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return mock_client
