"""HTTP service for manifest publishing and distribution."""

from manifestsync.server.app import create_app

__all__ = ["create_app"]
