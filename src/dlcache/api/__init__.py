"""HTTP surface for the download cache."""

from dlcache.api.server import create_app

__all__ = ["create_app"]
