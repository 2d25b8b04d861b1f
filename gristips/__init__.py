"""Gristips: Grist table-copy automations for public agents signing in with ProConnect."""

__version__ = "0.1.0"
