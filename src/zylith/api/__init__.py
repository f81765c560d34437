"""HTTP API for Zylith pools."""

from zylith.api.routes import build_default_app, create_app

__all__ = ["build_default_app", "create_app"]
