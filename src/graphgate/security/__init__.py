"""
Security module - bearer-token verification against a Keycloak realm.
"""

from __future__ import annotations

from .service import Principal, SecurityService, extract_bearer_token, principal_from_claims

__all__ = [
    "Principal",
    "SecurityService",
    "extract_bearer_token",
    "principal_from_claims",
]
