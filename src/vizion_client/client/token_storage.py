import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "vizion_academy_access_token"
REFRESH_TOKEN_KEY = "vizion_academy_refresh_token"


class TokenStorage(Protocol):
    """Protocol for token storage implementations."""

    def get_access_token(self) -> str | None:
        """Get the stored access token."""
        ...

    def get_refresh_token(self) -> str | None:
        """Get the stored refresh token."""
        ...

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        """Store a token pair. A ``None`` refresh token removes the stored one."""
        ...

    def clear_tokens(self) -> None:
        """Forget both tokens."""
        ...


class InMemoryTokenStorage:
    """Process-local token storage."""

    def __init__(self, access_token: str | None = None, refresh_token: str | None = None):
        self._access_token = access_token
        self._refresh_token = refresh_token

    def get_access_token(self) -> str | None:
        return self._access_token

    def get_refresh_token(self) -> str | None:
        return self._refresh_token

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        self._access_token = access_token
        self._refresh_token = refresh_token

    def clear_tokens(self) -> None:
        self._access_token = None
        self._refresh_token = None


class StoredTokens(BaseModel):
    access_token: str | None = None
    refresh_token: str | None = None


class FileTokenStorage:
    """
    Token storage persisted as a JSON file.

    Keys mirror the ones the web front-ends keep in local storage so the file
    can be inspected side by side with a browser session.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _load(self) -> StoredTokens:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return StoredTokens()
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return StoredTokens()

        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed token file {self.path}")
            return StoredTokens()

        try:
            return StoredTokens(
                access_token=raw.get(ACCESS_TOKEN_KEY),
                refresh_token=raw.get(REFRESH_TOKEN_KEY),
            )
        except ValidationError as e:
            logger.warning(f"Ignoring malformed token file {self.path}: {e}")
            return StoredTokens()

    def _save(self, tokens: StoredTokens) -> None:
        payload = {}
        if tokens.access_token:
            payload[ACCESS_TOKEN_KEY] = tokens.access_token
        if tokens.refresh_token:
            payload[REFRESH_TOKEN_KEY] = tokens.refresh_token

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload), encoding="utf-8")
        tmp_path.replace(self.path)

    def get_access_token(self) -> str | None:
        return self._load().access_token

    def get_refresh_token(self) -> str | None:
        return self._load().refresh_token

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        self._save(StoredTokens(access_token=access_token, refresh_token=refresh_token))
        logger.debug(f"Stored tokens in {self.path}")

    def clear_tokens(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.debug(f"Cleared tokens in {self.path}")


def is_authenticated(storage: TokenStorage) -> bool:
    """Check whether an access token is stored."""
    return storage.get_access_token() is not None
