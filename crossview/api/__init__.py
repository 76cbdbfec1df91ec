"""REST API over the repository interface."""

from crossview.api.app import create_app

__all__ = ["create_app"]
