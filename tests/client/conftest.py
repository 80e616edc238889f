"""
In-process fake of the Vizion Academy API, served to the client through
``httpx.ASGITransport``.
"""

import itertools

import anyio
import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from vizion_client.client.api import ApiClient
from vizion_client.client.token_storage import InMemoryTokenStorage
from vizion_client.settings import ClientSettings

BASE_URL = "http://testserver/api/v1"

ECOLE_USER = {
    "id": "user-1",
    "email": "ecole@example.com",
    "role": "ECOLE",
    "name": "Lycée Jean Moulin",
    "ecole": {"id": "ecole-1", "name": "Lycée Jean Moulin", "contactEmail": "contact@example.com"},
}


class FakeVizionApi:
    def __init__(self):
        self.access_tokens: set[str] = set()
        self.refresh_tokens: set[str] = set()
        self.accounts = {"ecole@example.com": ("secret", ECOLE_USER)}
        self._counter = itertools.count(1)

        # Knobs for the refresh endpoint
        self.refresh_delay = 0.05
        self.refresh_status: int | None = None
        self.nest_tokens = False
        self.omit_refresh_token = False

        # Protected endpoints reject every token when set
        self.always_unauthorized = False
        self.logout_status = 200

        # Observations
        self.refresh_calls = 0
        self.refresh_bodies: list[dict] = []
        self.refresh_authorizations: list[str | None] = []
        self.seen_authorizations: list[str | None] = []
        self.logged_out: list[str] = []

        # Gates for the /slow endpoint, created by the test inside the event loop
        self.slow_entered: anyio.Event | None = None
        self.slow_gate: anyio.Event | None = None

        self.app = Starlette(
            routes=[
                Mount(
                    "/api/v1",
                    routes=[
                        Route("/auth/login", self.login, methods=["POST"]),
                        Route("/auth/register", self.register, methods=["POST"]),
                        Route("/auth/refresh", self.refresh, methods=["POST"]),
                        Route("/auth/logout", self.logout, methods=["POST"]),
                        Route("/auth/me", self.me, methods=["GET"]),
                        Route("/health", self.health, methods=["GET"]),
                        Route("/schools/{school_id}", self.school, methods=["GET"]),
                        Route("/missions", self.create_mission, methods=["POST"]),
                        Route("/admin/users", self.admin_users, methods=["GET"]),
                        Route("/crash", self.crash, methods=["GET"]),
                        Route("/teapot", self.teapot, methods=["GET"]),
                        Route("/slow", self.slow, methods=["GET"]),
                    ],
                )
            ]
        )

    def transport(self) -> httpx.ASGITransport:
        return httpx.ASGITransport(app=self.app)

    def issue_tokens(self) -> tuple[str, str]:
        n = next(self._counter)
        access_token, refresh_token = f"access-{n}", f"refresh-{n}"
        self.access_tokens.add(access_token)
        self.refresh_tokens.add(refresh_token)
        return access_token, refresh_token

    def grant_refresh_token(self) -> str:
        """Issue a refresh token whose paired access token is already expired."""
        access_token, refresh_token = self.issue_tokens()
        self.access_tokens.discard(access_token)
        return refresh_token

    def _authorized(self, request: Request) -> bool:
        header = request.headers.get("authorization")
        self.seen_authorizations.append(header)
        if self.always_unauthorized or not header or not header.startswith("Bearer "):
            return False
        return header.removeprefix("Bearer ") in self.access_tokens

    @staticmethod
    def _unauthorized() -> JSONResponse:
        return JSONResponse({"success": False, "message": "Token invalide ou expiré."}, status_code=401)

    def _auth_payload(self, user: dict) -> dict:
        access_token, refresh_token = self.issue_tokens()
        return {
            "success": True,
            "user": user,
            "accessToken": access_token,
            "refreshToken": refresh_token,
            "expiresIn": "15m",
        }

    async def login(self, request: Request) -> JSONResponse:
        body = await request.json()
        account = self.accounts.get(body.get("email"))
        if account is None or account[0] != body.get("password"):
            return JSONResponse(
                {"success": False, "message": "Email ou mot de passe incorrect."},
                status_code=401,
            )
        return JSONResponse(self._auth_payload(account[1]))

    async def register(self, request: Request) -> JSONResponse:
        body = await request.json()
        if body["email"] in self.accounts:
            return JSONResponse(
                {"success": False, "message": "Un compte existe déjà avec cet email."},
                status_code=409,
            )
        user = {"id": f"user-{len(self.accounts) + 1}", "email": body["email"], "role": body["role"]}
        if body.get("name"):
            user["name"] = body["name"]
        self.accounts[body["email"]] = (body["password"], user)
        return JSONResponse(self._auth_payload(user), status_code=201)

    async def refresh(self, request: Request) -> JSONResponse:
        self.refresh_calls += 1
        body = await request.json()
        self.refresh_bodies.append(body)
        self.refresh_authorizations.append(request.headers.get("authorization"))

        await anyio.sleep(self.refresh_delay)

        if self.refresh_status is not None:
            return JSONResponse({"success": False, "message": "Erreur interne."}, status_code=self.refresh_status)

        refresh_token = body.get("refreshToken")
        if refresh_token not in self.refresh_tokens:
            return JSONResponse(
                {"success": False, "message": "Refresh token invalide ou expiré."},
                status_code=401,
            )

        if self.omit_refresh_token:
            access_token = f"access-{next(self._counter)}"
            self.access_tokens.add(access_token)
            payload = {"accessToken": access_token}
        else:
            # Rotation: the presented refresh token is single-use
            self.refresh_tokens.discard(refresh_token)
            access_token, new_refresh_token = self.issue_tokens()
            payload = {"accessToken": access_token, "refreshToken": new_refresh_token}

        if self.nest_tokens:
            return JSONResponse({"success": True, "data": payload})
        return JSONResponse({"success": True, **payload})

    async def logout(self, request: Request) -> JSONResponse:
        body = await request.json()
        if self.logout_status != 200:
            return JSONResponse({"success": False}, status_code=self.logout_status)
        self.logged_out.append(body["refreshToken"])
        self.refresh_tokens.discard(body["refreshToken"])
        return JSONResponse({"success": True, "message": "Déconnexion réussie."})

    async def me(self, request: Request) -> JSONResponse:
        if not self._authorized(request):
            return self._unauthorized()
        return JSONResponse({"success": True, "user": ECOLE_USER})

    async def health(self, request: Request) -> JSONResponse:
        self.seen_authorizations.append(request.headers.get("authorization"))
        return JSONResponse({"status": "ok"})

    async def school(self, request: Request) -> JSONResponse:
        if not self._authorized(request):
            return self._unauthorized()
        school_id = request.path_params["school_id"]
        if school_id == "missing":
            return JSONResponse({"message": "École non trouvée."}, status_code=404)
        return JSONResponse({"success": True, "data": {"id": school_id, "name": f"École {school_id}"}})

    async def create_mission(self, request: Request) -> JSONResponse:
        if not self._authorized(request):
            return self._unauthorized()
        body = await request.json()
        if not body.get("title"):
            return JSONResponse({"errors": [{"message": "A"}, {"message": "B"}]}, status_code=400)
        return JSONResponse({"success": True, "data": {"id": "mission-1", **body}}, status_code=201)

    async def admin_users(self, request: Request) -> JSONResponse:
        if not self._authorized(request):
            return self._unauthorized()
        return JSONResponse({}, status_code=403)

    async def crash(self, request: Request) -> JSONResponse:
        return JSONResponse({"message": "TypeError: cannot read property 'id' of null"}, status_code=500)

    async def teapot(self, request: Request) -> JSONResponse:
        return JSONResponse({"success": False}, status_code=418)

    async def slow(self, request: Request) -> JSONResponse:
        assert self.slow_entered is not None and self.slow_gate is not None
        self.slow_entered.set()
        await self.slow_gate.wait()
        if not self._authorized(request):
            return self._unauthorized()
        return JSONResponse({"success": True, "data": "slow"})


@pytest.fixture
def fake_api():
    return FakeVizionApi()


@pytest.fixture
def settings(tmp_path):
    return ClientSettings(base_url=BASE_URL, token_file=tmp_path / "tokens.json")


@pytest.fixture
def storage():
    return InMemoryTokenStorage()


@pytest.fixture
async def api(anyio_backend, fake_api, settings, storage):
    async with ApiClient(settings, storage, transport=fake_api.transport()) as client:
        yield client
