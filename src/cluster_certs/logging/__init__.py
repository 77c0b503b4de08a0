"""Logging configuration for cluster_certs."""

from cluster_certs.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
