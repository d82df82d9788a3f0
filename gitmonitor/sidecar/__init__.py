"""HTTP sidecar exposing the monitored tree and its actions."""

from .server import create_app

__all__ = ["create_app"]
