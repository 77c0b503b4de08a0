"""Configuration models for certificate inspection and rotation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ManagementClusterConfig(BaseModel):
    """Where the Rancher management cluster keeps cluster records."""

    model_config = ConfigDict(extra="forbid")

    kubeconfig: str = Field(default="~/.kube/config", validate_default=True)
    context: str | None = None
    namespace: str = "cattle-system"
    cluster_secret_prefix: str = "c-"

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str) -> str:
        """Expand ~ in kubeconfig path."""
        return str(Path(v).expanduser())

    def cluster_secret_name(self, cluster_name: str) -> str:
        """Name of the cluster record secret for a downstream cluster."""
        return f"{self.cluster_secret_prefix}{cluster_name}"


class DownstreamClusterConfig(BaseModel):
    """Where RKE keeps state and certificates inside the downstream cluster."""

    model_config = ConfigDict(extra="forbid")

    namespace: str = "kube-system"
    state_config_map_name: str = "full-cluster-state"


class PersistenceConfig(BaseModel):
    """Retry window for per-certificate secret writes."""

    model_config = ConfigDict(extra="forbid")

    timeout: float = 5.0
    backoff: float = 5.0
    max_workers: int | None = None

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("backoff")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        """Validate backoff is non-negative."""
        if v < 0:
            raise ValueError("backoff must be non-negative")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int | None) -> int | None:
        """Validate max_workers is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("max_workers must be positive")
        return v


class EngineConfig(BaseModel):
    """Settings for the rke binary used to rotate certificates."""

    model_config = ConfigDict(extra="forbid")

    binary: str = "rke"
    work_dir: str = "."
    timeout: int = 3600

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("work_dir")
    @classmethod
    def validate_work_dir(cls, v: str) -> str:
        """Expand ~ in the work directory."""
        return str(Path(v).expanduser())


class CertsConfig(BaseModel):
    """Complete configuration for the certificate tooling."""

    model_config = ConfigDict(extra="forbid")

    management: ManagementClusterConfig = ManagementClusterConfig()
    downstream: DownstreamClusterConfig = DownstreamClusterConfig()
    persistence: PersistenceConfig = PersistenceConfig()
    engine: EngineConfig = EngineConfig()
    request_timeout: int = 30

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: int) -> int:
        """Validate request_timeout is positive."""
        if v <= 0:
            raise ValueError("request_timeout must be positive")
        return v

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> CertsConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            KUBECONFIG: Management cluster kubeconfig path
            CLUSTER_CERTS_CONTEXT: Management cluster kubeconfig context
            CLUSTER_CERTS_MANAGEMENT_NAMESPACE: Namespace of cluster record secrets
            CLUSTER_CERTS_DOWNSTREAM_NAMESPACE: Namespace of RKE state and certificates
            CLUSTER_CERTS_PERSIST_TIMEOUT: Per-certificate write window in seconds
            CLUSTER_CERTS_PERSIST_BACKOFF: Delay between write attempts in seconds
            CLUSTER_CERTS_RKE_BINARY: Path or name of the rke binary
            CLUSTER_CERTS_WORK_DIR: Directory for generated cluster.yml files
        """
        config_dict = {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in (base_config or {}).items()
        }
        for section in ("management", "downstream", "persistence", "engine"):
            config_dict.setdefault(section, {})

        if kubeconfig := os.environ.get("KUBECONFIG"):
            # Only the first entry of a path list is honoured
            config_dict["management"]["kubeconfig"] = kubeconfig.split(os.pathsep)[0]

        if context := os.environ.get("CLUSTER_CERTS_CONTEXT"):
            config_dict["management"]["context"] = context

        if namespace := os.environ.get("CLUSTER_CERTS_MANAGEMENT_NAMESPACE"):
            config_dict["management"]["namespace"] = namespace

        if namespace := os.environ.get("CLUSTER_CERTS_DOWNSTREAM_NAMESPACE"):
            config_dict["downstream"]["namespace"] = namespace

        if timeout := os.environ.get("CLUSTER_CERTS_PERSIST_TIMEOUT"):
            config_dict["persistence"]["timeout"] = float(timeout)

        if backoff := os.environ.get("CLUSTER_CERTS_PERSIST_BACKOFF"):
            config_dict["persistence"]["backoff"] = float(backoff)

        if binary := os.environ.get("CLUSTER_CERTS_RKE_BINARY"):
            config_dict["engine"]["binary"] = binary

        if work_dir := os.environ.get("CLUSTER_CERTS_WORK_DIR"):
            config_dict["engine"]["work_dir"] = work_dir

        return cls.model_validate(config_dict)
