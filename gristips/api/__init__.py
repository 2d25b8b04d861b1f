"""HTTP API."""

from gristips.api.router import api_router

__all__ = ["api_router"]
