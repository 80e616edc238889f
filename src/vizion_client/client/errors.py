"""
Error normalization for the API client.

Every failed call surfaces as an ``ApiError`` carrying a ready-to-display
message, the HTTP status (if any), the raw response body (if any) and the
underlying cause.
"""

from typing import Any

import httpx

GENERIC_MESSAGE = "Une erreur est survenue"
INVALID_INPUT_MESSAGE = "Les données envoyées sont invalides. Veuillez vérifier vos informations."
INVALID_CREDENTIALS_MESSAGE = "Identifiants invalides"
SESSION_EXPIRED_MESSAGE = "Votre session a expiré. Veuillez vous reconnecter."
FORBIDDEN_MESSAGE = "Vous n'avez pas les permissions nécessaires pour effectuer cette action."
NOT_FOUND_MESSAGE = "La ressource demandée n'a pas été trouvée."
CONFLICT_MESSAGE = "Un conflit est survenu. Cette ressource existe déjà."
SERVER_ERROR_MESSAGE = "Une erreur serveur est survenue. Veuillez réessayer plus tard."
REFRESH_INTERRUPTED_MESSAGE = "Le rafraîchissement de la session a été interrompu."

# Statuses whose body message is ignored in favour of the fixed text
_FIXED_MESSAGES = {500: SERVER_ERROR_MESSAGE}

_DEFAULT_MESSAGES = {
    400: INVALID_INPUT_MESSAGE,
    403: FORBIDDEN_MESSAGE,
    404: NOT_FOUND_MESSAGE,
    409: CONFLICT_MESSAGE,
}


class ApiError(Exception):
    """Base class for all errors raised by the API client."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        data: Any = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status={self.status!r})"


class SessionExpiredError(ApiError):
    """Raised when the session cannot be refreshed and the user must log in again."""

    def __init__(
        self,
        message: str = SESSION_EXPIRED_MESSAGE,
        status: int | None = None,
        data: Any = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, status=status, data=data, cause=cause)


def _read_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _join_field_errors(errors: list[Any]) -> str:
    messages = []
    for error in errors:
        if isinstance(error, str):
            messages.append(error)
        elif isinstance(error, dict) and error.get("message"):
            messages.append(str(error["message"]))
        else:
            messages.append(str(error))
    return ", ".join(messages)


def error_message(status: int, data: Any, auth_endpoint: bool = False) -> str:
    """Pick the user-facing message for a failed response."""
    body_message = data.get("message") if isinstance(data, dict) else None

    if status == 401:
        if auth_endpoint:
            message = body_message or INVALID_CREDENTIALS_MESSAGE
        else:
            message = SESSION_EXPIRED_MESSAGE
    elif status in _FIXED_MESSAGES:
        message = _FIXED_MESSAGES[status]
    else:
        default = _DEFAULT_MESSAGES.get(status, f"Erreur {status}: Une erreur est survenue.")
        message = body_message or default

    if isinstance(data, dict):
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            message = _join_field_errors(errors)

    return message


def error_from_response(
    response: httpx.Response, auth_endpoint: bool = False, cause: BaseException | None = None
) -> ApiError:
    data = _read_body(response)
    return ApiError(
        error_message(response.status_code, data, auth_endpoint=auth_endpoint),
        status=response.status_code,
        data=data,
        cause=cause,
    )


def error_from_transport(exc: httpx.RequestError) -> ApiError:
    """Normalize a failure where no response was received (connect error, timeout...)."""
    return ApiError(str(exc) or GENERIC_MESSAGE, cause=exc)


def session_expired_from(exc: BaseException) -> SessionExpiredError:
    """Wrap any refresh failure into a ``SessionExpiredError``."""
    if isinstance(exc, SessionExpiredError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        return SessionExpiredError(
            status=exc.response.status_code,
            data=_read_body(exc.response),
            cause=exc,
        )
    if isinstance(exc, ApiError):
        return SessionExpiredError(status=exc.status, data=exc.data, cause=exc)
    return SessionExpiredError(cause=exc)
