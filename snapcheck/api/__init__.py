"""Manager HTTP API."""

from snapcheck.api.server import ManagerServices, create_app

__all__ = ["ManagerServices", "create_app"]
