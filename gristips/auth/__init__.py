"""Authentication module."""

from gristips.auth.dependencies import get_current_agent, get_current_user, get_optional_user
from gristips.auth.models import ProConnectProfile
from gristips.auth.proconnect import (
    JwksCache,
    ProConnectClient,
    ProConnectTokenVerifier,
    parse_proconnect_profile,
)

__all__ = [
    "get_current_agent",
    "get_current_user",
    "get_optional_user",
    "JwksCache",
    "ProConnectClient",
    "ProConnectProfile",
    "ProConnectTokenVerifier",
    "parse_proconnect_profile",
]
