"""HTTP routing layer for tasksync."""

from .api import create_app

__all__ = ["create_app"]
