"""API routers"""

from prioritysync.api import sync

__all__ = ["sync"]
