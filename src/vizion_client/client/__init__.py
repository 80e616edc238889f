from .api import ApiClient, ApiRequest, BearerTokenAuth, unwrap_response
from .auth import AuthService
from .errors import ApiError, SessionExpiredError
from .refresh import RefreshCoordinator, RefreshState, RefreshStateError
from .token_storage import FileTokenStorage, InMemoryTokenStorage, TokenStorage, is_authenticated

__all__ = [
    "ApiClient",
    "ApiError",
    "ApiRequest",
    "AuthService",
    "BearerTokenAuth",
    "FileTokenStorage",
    "InMemoryTokenStorage",
    "RefreshCoordinator",
    "RefreshState",
    "RefreshStateError",
    "SessionExpiredError",
    "TokenStorage",
    "is_authenticated",
    "unwrap_response",
]
