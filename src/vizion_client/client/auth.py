"""
Authentication operations against the Vizion Academy API.
"""

import logging
from typing import Any

import httpx

from vizion_client.client.api import ApiClient
from vizion_client.client.errors import ApiError
from vizion_client.shared.auth import AuthResponse, RegisterData, TokenPair, User

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def register(self, data: RegisterData) -> AuthResponse:
        """Create an account and store the issued tokens."""
        body = await self.api.post(
            "/auth/register",
            json=data.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        return self._store_auth_response(body)

    async def login(self, email: str, password: str) -> AuthResponse:
        """Log in and store the issued tokens."""
        body = await self.api.post("/auth/login", json={"email": email, "password": password})
        return self._store_auth_response(body)

    async def logout(self, refresh_token: str | None = None) -> None:
        """
        Revoke the refresh token server side, then forget the local tokens.

        The local tokens are cleared even when the API call fails.
        """
        try:
            token = refresh_token or self.api.storage.get_refresh_token()
            if token:
                await self.api.post("/auth/logout", json={"refreshToken": token})
        except ApiError as e:
            logger.warning(f"Error during logout: {e.message}")
        finally:
            self.api.storage.clear_tokens()

    async def refresh_token(self, refresh_token: str | None = None) -> TokenPair:
        return await self.api.refresh_session(refresh_token)

    async def get_current_user(self) -> User:
        body = await self.api.get("/auth/me")
        return User.model_validate(_json_body(body)["user"])

    def _store_auth_response(self, body: Any) -> AuthResponse:
        auth_response = AuthResponse.model_validate(_json_body(body))
        self.api.storage.set_tokens(auth_response.access_token, auth_response.refresh_token)
        logger.debug(f"Authenticated as {auth_response.user.email}")
        return auth_response


def _json_body(body: Any) -> Any:
    # Bodies without a ``success`` envelope come back as the raw response
    if isinstance(body, httpx.Response):
        return body.json()
    return body
