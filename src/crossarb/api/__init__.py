"""HTTP API."""

from crossarb.api.server import build_service, create_app


__all__ = ["build_service", "create_app"]
