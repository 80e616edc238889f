from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Settings for the Vizion Academy API client."""

    model_config = SettingsConfigDict(env_prefix="VIZION_API_")

    # Transport
    base_url: str = "http://localhost:3001/api/v1"
    timeout: float = 10.0

    # Endpoints
    refresh_path: str = "/auth/refresh"
    auth_paths: list[str] = Field(
        default_factory=lambda: ["/auth/login", "/auth/register"],
        description="Credential endpoints where a 401 means bad credentials, not a stale token",
    )
    login_url: str = "/login"

    # Refresh tokens are rotated by the API; only reuse one if the server allows it
    reuse_refresh_token: bool = False

    token_file: Path = Path.home() / ".vizion" / "tokens.json"

    def is_auth_path(self, path: str) -> bool:
        return any(auth_path in path for auth_path in self.auth_paths)
