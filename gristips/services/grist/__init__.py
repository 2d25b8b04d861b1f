"""Grist integration: browse documents, tables and columns with a user's API key."""

from gristips.services.grist.client import GristApiClient
from gristips.services.grist.types import GristColumn, GristDocument, GristTable

__all__ = [
    "GristApiClient",
    "GristColumn",
    "GristDocument",
    "GristTable",
]
