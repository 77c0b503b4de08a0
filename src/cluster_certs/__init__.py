"""Control-plane certificate tooling for RKE clusters managed by Rancher."""

__version__ = "0.1.0"
