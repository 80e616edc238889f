"""
Authenticated HTTP client for the Vizion Academy API.

Attaches the stored access token to every request, transparently refreshes it
when the API answers 401, and normalizes every failure into an ``ApiError``.
"""

import logging
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass, field
from typing import Any

import httpx

from vizion_client.client.errors import (
    ApiError,
    SessionExpiredError,
    error_from_response,
    error_from_transport,
    session_expired_from,
)
from vizion_client.client.refresh import RefreshCoordinator
from vizion_client.client.token_storage import InMemoryTokenStorage, TokenStorage
from vizion_client.settings import ClientSettings
from vizion_client.shared.auth import TokenPair

logger = logging.getLogger(__name__)

SessionExpiredHandler = Callable[[str], Awaitable[None]]


@dataclass
class ApiRequest:
    """Request descriptor; replayed as is after a token refresh."""

    method: str
    path: str
    params: Any = None
    json: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    already_retried: bool = False


class BearerTokenAuth(httpx.Auth):
    """Inject the stored access token, if any, as a Bearer Authorization header."""

    def __init__(self, storage: TokenStorage):
        self.storage = storage

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self.storage.get_access_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


def unwrap_response(response: Any) -> Any:
    """
    Return the JSON body when it is an API envelope (an object with a
    ``success`` key), the response itself otherwise.

    Values that were already unwrapped are returned unchanged.
    """
    if not isinstance(response, httpx.Response):
        return response
    try:
        body = response.json()
    except ValueError:
        return response
    if isinstance(body, dict) and "success" in body:
        return body
    return response


class ApiClient:
    """
    Request pipeline with single-flight token refresh.

    Concurrent requests failing with 401 trigger one refresh call; the others
    wait for it and are replayed with the new access token, or all fail with
    the same ``SessionExpiredError``.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        storage: TokenStorage | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        coordinator: RefreshCoordinator | None = None,
        session_expired_handler: SessionExpiredHandler | None = None,
    ):
        self.settings = settings or ClientSettings()
        self.storage: TokenStorage = storage if storage is not None else InMemoryTokenStorage()
        self.coordinator = coordinator or RefreshCoordinator()
        self.session_expired_handler = session_expired_handler
        self.http_client = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout,
            headers={"Content-Type": "application/json"},
            auth=BearerTokenAuth(self.storage),
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        descriptor = ApiRequest(method.upper(), path, params=params, json=json, headers=dict(headers or {}))
        return await self.send(descriptor)

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def send(self, descriptor: ApiRequest) -> Any:
        response = await self._transmit(descriptor)

        if response.is_success:
            return unwrap_response(response)

        if response.status_code == 401 and self._can_refresh(descriptor):
            return await self._recover(descriptor, response)

        raise self._error_for(descriptor, response)

    async def refresh_session(self, refresh_token: str | None = None) -> TokenPair:
        """
        Refresh the token pair explicitly.

        Joins the in-flight refresh if there is one. On failure the stored
        tokens are cleared and ``SessionExpiredError`` is raised.
        """
        if self.coordinator.is_refreshing:
            access_token = await self.coordinator.enqueue().wait()
            return TokenPair(access_token=access_token, refresh_token=self.storage.get_refresh_token())

        try:
            return await self.coordinator.run(lambda: self._exchange_refresh_token(refresh_token))
        except SessionExpiredError:
            await self._end_session()
            raise

    def _can_refresh(self, descriptor: ApiRequest) -> bool:
        return not descriptor.already_retried and not self.settings.is_auth_path(descriptor.path)

    async def _transmit(self, descriptor: ApiRequest) -> httpx.Response:
        request = self.http_client.build_request(
            descriptor.method,
            descriptor.path,
            params=descriptor.params,
            json=descriptor.json,
            headers=descriptor.headers,
        )
        try:
            return await self.http_client.send(request)
        except httpx.RequestError as exc:
            logger.debug(f"Transport error on {descriptor.method} {descriptor.path}: {exc!r}")
            raise error_from_transport(exc) from exc

    def _error_for(self, descriptor: ApiRequest, response: httpx.Response) -> ApiError:
        cause = httpx.HTTPStatusError(
            f"HTTP {response.status_code} for {descriptor.method} {descriptor.path}",
            request=response.request,
            response=response,
        )
        return error_from_response(
            response,
            auth_endpoint=self.settings.is_auth_path(descriptor.path),
            cause=cause,
        )

    async def _recover(self, descriptor: ApiRequest, response: httpx.Response) -> Any:
        if self.coordinator.is_refreshing:
            access_token = await self.coordinator.enqueue().wait()
            return await self._replay(descriptor, access_token)

        # A refresh may have completed while this request was in flight
        current_token = self.storage.get_access_token()
        if current_token and response.request.headers.get("Authorization") != f"Bearer {current_token}":
            logger.debug(f"Access token changed since {descriptor.method} {descriptor.path} was sent, replaying")
            return await self._replay(descriptor, current_token)

        descriptor.already_retried = True
        tokens = await self.refresh_session()
        return await self._replay(descriptor, tokens.access_token)

    async def _replay(self, descriptor: ApiRequest, access_token: str) -> Any:
        descriptor.headers["Authorization"] = f"Bearer {access_token}"
        descriptor.already_retried = True
        return await self.send(descriptor)

    async def _exchange_refresh_token(self, refresh_token: str | None = None) -> TokenPair:
        refresh_token = refresh_token or self.storage.get_refresh_token()
        if not refresh_token:
            logger.warning("Token refresh impossible: no refresh token available")
            raise SessionExpiredError()

        logger.debug("Refreshing access token")
        try:
            # Sent without the expired bearer token
            response = await self.http_client.post(
                self.settings.refresh_path,
                json={"refreshToken": refresh_token},
                auth=None,
            )
            response.raise_for_status()
            tokens = TokenPair.from_refresh_body(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Token refresh failed: {exc}")
            raise session_expired_from(exc) from exc

        if tokens.refresh_token is None and self.settings.reuse_refresh_token:
            tokens = tokens.model_copy(update={"refresh_token": refresh_token})

        self.storage.set_tokens(tokens.access_token, tokens.refresh_token)
        logger.debug("Token refresh successful")
        return tokens

    async def _end_session(self) -> None:
        self.storage.clear_tokens()
        if self.session_expired_handler is None:
            return
        try:
            await self.session_expired_handler(self.settings.login_url)
        except Exception:
            logger.exception("Session expired handler failed")
