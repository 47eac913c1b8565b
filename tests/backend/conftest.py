import pytest
import pytest_asyncio
from fastapi import APIRouter, Request
from httpx import ASGITransport, AsyncClient

from gatehouse.config import Settings
from gatehouse.main import create_app


ALLOWED_ORIGIN = "https://app.example.com"
COOKIE_SECRET = "keyboard cat"
INDEX_HTML = b"<!doctype html><title>gatehouse</title>\n"
SECRET_TEXT = b"top secret, outside the static root\n"


def make_echo_router(hits: list) -> APIRouter:
    """
    Router exposing what the middleware chain attached to the request.
    Every handled request is appended to `hits`.
    """
    router = APIRouter()

    @router.api_route("/echo", methods=["GET", "POST", "PUT"])
    async def echo(request: Request):
        hits.append(request.url.path)
        return {
            "body": getattr(request.state, "body", None),
            "cookies": request.state.cookies,
            "signed": request.state.signed_cookies,
        }

    @router.post("/raw")
    async def raw(request: Request):
        hits.append(request.url.path)
        return {"raw": (await request.body()).decode()}

    return router


@pytest.fixture
def static_root(tmp_path):
    """
    Layout:
        tmp_path/secret.txt          (outside the root)
        tmp_path/public/index.html
        tmp_path/public/.env
        tmp_path/public/docs/index.html
    """
    (tmp_path / "secret.txt").write_bytes(SECRET_TEXT)
    public = tmp_path / "public"
    (public / "docs").mkdir(parents=True)
    (public / "index.html").write_bytes(INDEX_HTML)
    (public / ".env").write_text("PASSWORD=hunter2\n")
    (public / "docs" / "index.html").write_bytes(b"docs")
    return public


@pytest.fixture
def settings(static_root) -> Settings:
    return Settings(
        port=9000,
        cors_origins=[ALLOWED_ORIGIN],
        static_root=static_root,
        cookie_secret=COOKIE_SECRET,
        database_url="sqlite://:memory:",
    )


@pytest.fixture
def hits() -> list:
    return []


@pytest.fixture
def app(settings, hits):
    return create_app(settings, routers=[make_echo_router(hits)])


@pytest_asyncio.fixture
async def client(app):
    """
    Provide an HTTPX AsyncClient bound to the app (lifespan is not run).
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


@pytest.fixture
def asgi_get(app):
    """
    Issue a GET straight through the ASGI interface with an unnormalised path.
    HTTP clients collapse "..", so traversal attempts are sent this way.
    """

    async def _get(path: str) -> tuple[int, bytes]:
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"testserver")],
            "client": ("127.0.0.1", 12345),
            "server": ("testserver", 80),
        }
        messages = []

        async def receive():
            return {"type": "http.request", "body": b"", "more_body": False}

        async def send(message):
            messages.append(message)

        await app(scope, receive, send)
        status = next(m["status"] for m in messages if m["type"] == "http.response.start")
        body = b"".join(m.get("body", b"") for m in messages if m["type"] == "http.response.body")
        return status, body

    return _get
