"""HTTP API for ranking triggers and feed reads."""

from dropfeed.api.app import create_app


__all__ = ["create_app"]
