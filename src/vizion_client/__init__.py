from .client import (
    ApiClient,
    ApiError,
    AuthService,
    FileTokenStorage,
    InMemoryTokenStorage,
    SessionExpiredError,
    TokenStorage,
)
from .settings import ClientSettings

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthService",
    "ClientSettings",
    "FileTokenStorage",
    "InMemoryTokenStorage",
    "SessionExpiredError",
    "TokenStorage",
]
