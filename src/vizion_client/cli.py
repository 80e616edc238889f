"""
Command line access to the Vizion Academy API.

Usage:
    vizion-client login ecole@example.com
    vizion-client get /missions
"""

import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import anyio
import click
import httpx

from vizion_client.client.api import ApiClient
from vizion_client.client.auth import AuthService
from vizion_client.client.errors import ApiError
from vizion_client.client.token_storage import FileTokenStorage, TokenStorage
from vizion_client.settings import ClientSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _notify_session_expired(login_url: str) -> None:
    # No page to redirect to in a terminal
    click.echo("Session expired, run `vizion-client login` again.", err=True)


def _build_client(ctx: click.Context) -> ApiClient:
    settings: ClientSettings = ctx.obj["settings"]
    storage: TokenStorage = ctx.obj.get("storage") or FileTokenStorage(settings.token_file)
    return ApiClient(
        settings,
        storage,
        transport=ctx.obj.get("transport"),
        session_expired_handler=_notify_session_expired,
    )


def _run(ctx: click.Context, operation: Callable[[ApiClient], Awaitable[T]]) -> T:
    async def main() -> T:
        async with _build_client(ctx) as api:
            return await operation(api)

    try:
        return anyio.run(main)
    except ApiError as e:
        raise click.ClickException(e.message)


def _echo_body(body: Any) -> None:
    if isinstance(body, httpx.Response):
        click.echo(body.text)
    else:
        click.echo(json.dumps(body, indent=2, ensure_ascii=False))


@click.group()
@click.option("--base-url", default=None, help="API root, overrides VIZION_API_BASE_URL")
@click.option("--token-file", type=click.Path(dir_okay=False), default=None, help="Where tokens are kept")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, base_url: str | None, token_file: str | None, verbose: bool) -> None:
    """Vizion Academy API client."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    ctx.ensure_object(dict)
    overrides: dict[str, Any] = {}
    if base_url:
        overrides["base_url"] = base_url
    if token_file:
        overrides["token_file"] = token_file
    ctx.obj["settings"] = ClientSettings(**overrides)


@main.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
@click.pass_context
def login(ctx: click.Context, email: str, password: str) -> None:
    """Log in and store the session tokens."""
    result = _run(ctx, lambda api: AuthService(api).login(email, password))
    click.echo(f"Logged in as {result.user.email} ({result.user.role.value})")


@main.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Revoke the session and forget the stored tokens."""
    _run(ctx, lambda api: AuthService(api).logout())
    click.echo("Logged out")


@main.command()
@click.pass_context
def me(ctx: click.Context) -> None:
    """Show the logged in user."""
    user = _run(ctx, lambda api: AuthService(api).get_current_user())
    click.echo(user.model_dump_json(indent=2, exclude_none=True))


@main.command("get")
@click.argument("path")
@click.pass_context
def get(ctx: click.Context, path: str) -> None:
    """GET an API path, e.g. /missions."""
    body = _run(ctx, lambda api: api.get(path))
    _echo_body(body)


if __name__ == "__main__":
    main()
