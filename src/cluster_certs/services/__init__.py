"""Service layer for certificate inspection and rotation."""
