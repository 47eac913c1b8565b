# gatehouse/middleware/cookies.py
"""
Cookie parsing stage.

Attaches request.state.cookies (and request.state.signed_cookies when a
secret is configured). Parsing never fails a request: malformed pairs are
skipped, undecodable JSON cookies stay strings and bad signatures map to
False.
"""
import base64
import hashlib
import hmac
import json
from typing import Any
from urllib.parse import unquote

from starlette.datastructures import Headers
from starlette.requests import cookie_parser
from starlette.types import ASGIApp, Receive, Scope, Send

SIGNED_PREFIX = "s:"
JSON_PREFIX = "j:"


def sign_cookie(value: str, secret: str) -> str:
    """Return the signed form ("s:<value>.<signature>") of a cookie value."""
    digest = hmac.new(secret.encode(), value.encode(), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode().rstrip("=")
    return f"{SIGNED_PREFIX}{value}.{signature}"


def unsign_cookie(signed: str, secret: str) -> str | bool:
    """
    Verify a signed cookie value.

    Args:
        signed: Cookie value with the "s:" prefix already removed
        secret: Secret the value was signed with

    Returns:
        The original value, or False if the signature does not match
    """
    value, sep, _ = signed.rpartition(".")
    if not sep:
        return False
    expected = sign_cookie(value, secret)[len(SIGNED_PREFIX):]
    if hmac.compare_digest(expected.encode(), signed.encode()):
        return value
    return False


def decode_json_cookie(value: Any) -> Any:
    if not isinstance(value, str) or not value.startswith(JSON_PREFIX):
        return value
    try:
        decoded = json.loads(value[len(JSON_PREFIX):])
    except ValueError:
        return value
    return decoded if isinstance(decoded, (dict, list)) else value


def parse_cookies(header: str, secret: str | None = None) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Split a Cookie header into plain and signed cookie mappings.

    Returns:
        tuple: (cookies, signed_cookies); signed_cookies is empty unless a
            secret is given
    """
    cookies: dict[str, Any] = {}
    if header:
        cookies = {name: unquote(value) for name, value in cookie_parser(header).items()}
    signed: dict[str, Any] = {}
    if secret:
        for name, value in list(cookies.items()):
            if value.startswith(SIGNED_PREFIX):
                signed[name] = unsign_cookie(value[len(SIGNED_PREFIX):], secret)
                del cookies[name]
    cookies = {name: decode_json_cookie(value) for name, value in cookies.items()}
    signed = {name: decode_json_cookie(value) for name, value in signed.items()}
    return cookies, signed


class CookieParserMiddleware:
    def __init__(self, app: ASGIApp, secret: str | None = None) -> None:
        self.app = app
        self.secret = secret

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] in ("http", "websocket"):
            state = scope.setdefault("state", {})
            cookies, signed = parse_cookies(Headers(scope=scope).get("cookie", ""), self.secret)
            state["cookies"] = cookies
            state["signed_cookies"] = signed
        await self.app(scope, receive, send)
