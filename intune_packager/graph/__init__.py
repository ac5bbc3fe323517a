"""Microsoft Graph collaborators"""

from .auth import (
    AuthProvider,
    BearerToken,
    CachedAuthProvider,
    ClientSecretAuthProvider,
    TokenCache,
)
from .catalog import CatalogClient
from .client import GraphCatalogClient, build_app_payload, build_assignment

__all__ = [
    "AuthProvider",
    "BearerToken",
    "CachedAuthProvider",
    "ClientSecretAuthProvider",
    "TokenCache",
    "CatalogClient",
    "GraphCatalogClient",
    "build_app_payload",
    "build_assignment",
]
