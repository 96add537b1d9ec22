"""Application assembly: factory, lifespan and background task tracking."""

from .factory import create_app

__all__ = ["create_app"]
