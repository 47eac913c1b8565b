# gatehouse/middleware/body.py
"""
Request body parsing stages.

Each stage is a pure ASGI middleware that claims requests by content type,
reads the body up to a byte limit, attaches the parsed value as
request.state.body and replays the raw bytes to whatever runs after it.
Requests without a body, with another content type, or already parsed by an
earlier stage pass through untouched.
"""
import json
import re
from typing import Any
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gatehouse.core.errors import (
    BadRequestBody,
    PayloadTooLarge,
    RequestBodyError,
    UnsupportedCharset,
)

MAX_DEPTH = 5
JSON_CHARSETS = ("utf-8", "utf-16", "utf-16le", "utf-16be", "utf-32", "utf-32le", "utf-32be")

_JSON_TYPE_RE = re.compile(r"^application/(?:[\w.+-]+\+)?json$")


def error_response(exc: RequestBodyError) -> JSONResponse:
    """Render a body error in the standard error envelope."""
    return JSONResponse(
        {"success": False, "error": {"code": exc.code, "message": exc.message}},
        status_code=exc.status_code,
    )


class BodyParserMiddleware:
    """
    Shared plumbing for the body parsing stages.

    Subclasses set media-type matching via `matches()` and convert the raw
    bytes via `parse()`.
    """

    def __init__(self, app: ASGIApp, limit: int) -> None:
        self.app = app
        self.limit = limit

    def matches(self, media_type: str) -> bool:
        raise NotImplementedError

    def parse(self, raw: bytes, charset: str) -> Any:
        raise NotImplementedError

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        state = scope.setdefault("state", {})
        media_type, charset = _content_type(headers.get("content-type", ""))
        if "body" in state or not _has_body(headers) or not self.matches(media_type):
            await self.app(scope, receive, send)
            return

        try:
            raw = await self._read_body(headers, receive)
            state["body"] = self.parse(raw, charset)
        except RequestBodyError as exc:
            await error_response(exc)(scope, receive, send)
            return

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": raw, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    async def _read_body(self, headers: Headers, receive: Receive) -> bytes:
        declared = headers.get("content-length")
        if declared is not None:
            try:
                length = int(declared)
            except ValueError:
                raise BadRequestBody("invalid content-length header")
            if length > self.limit:
                raise PayloadTooLarge(f"request entity too large (limit {self.limit} bytes)")

        chunks = []
        received = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise BadRequestBody("client disconnected before the body was read")
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.limit:
                raise PayloadTooLarge(f"request entity too large (limit {self.limit} bytes)")
            chunks.append(chunk)
            if not message.get("more_body", False):
                break
        return b"".join(chunks)


class JSONBodyMiddleware(BodyParserMiddleware):
    """
    Parses application/json (and application/*+json) bodies.

    Only objects and arrays are accepted at the top level; an empty body
    parses to {}.
    """

    def matches(self, media_type: str) -> bool:
        return bool(_JSON_TYPE_RE.match(media_type))

    def parse(self, raw: bytes, charset: str) -> Any:
        if not raw:
            return {}
        if charset not in JSON_CHARSETS:
            raise UnsupportedCharset(f"unsupported charset {charset.upper()!r}")
        try:
            text = raw.decode(charset)
        except UnicodeDecodeError as exc:
            raise BadRequestBody(f"cannot decode JSON body: {exc}")
        if text.lstrip(" \t\n\r")[:1] not in ("{", "["):
            raise BadRequestBody("JSON body must be an object or an array")
        try:
            return json.loads(text, parse_constant=_reject_constant)
        except ValueError as exc:
            raise BadRequestBody(f"malformed JSON body: {exc}")
        except RecursionError:
            raise BadRequestBody("JSON body is nested too deeply")


def _reject_constant(name: str) -> Any:
    # NaN, Infinity and -Infinity are not JSON
    raise BadRequestBody(f"invalid JSON token {name!r}")


class URLEncodedBodyMiddleware(BodyParserMiddleware):
    """Parses application/x-www-form-urlencoded bodies with bracket nesting."""

    def __init__(self, app: ASGIApp, limit: int, parameter_limit: int = 1000) -> None:
        super().__init__(app, limit)
        self.parameter_limit = parameter_limit

    def matches(self, media_type: str) -> bool:
        return media_type == "application/x-www-form-urlencoded"

    def parse(self, raw: bytes, charset: str) -> Any:
        try:
            text = raw.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise BadRequestBody(f"malformed urlencoded body: {exc}")
        if text and text.count("&") + 1 > self.parameter_limit:
            raise PayloadTooLarge("too many parameters")
        return parse_urlencoded(text)


def parse_urlencoded(text: str) -> dict:
    """
    Parse a url-encoded string, expanding bracket syntax into nested values.

    Examples:
        "a=1&b=2"            -> {"a": "1", "b": "2"}
        "user[name]=x"       -> {"user": {"name": "x"}}
        "tag[]=a&tag[]=b"    -> {"tag": ["a", "b"]}
        "n=1&n=2"            -> {"n": ["1", "2"]}
    """
    root: dict = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        _assign(root, _split_key(key), value)
    return {key: _compact(value) for key, value in root.items()}


def _split_key(key: str) -> list[str]:
    # "a[b][c]" -> ["a", "b", "c"]; anything past MAX_DEPTH stays literal
    head, sep, rest = key.partition("[")
    if not sep or not head:
        return [key]
    parts = [head]
    remainder = "[" + rest
    while remainder.startswith("[") and "]" in remainder:
        if len(parts) > MAX_DEPTH:
            parts.append(remainder)
            return parts
        segment, _, remainder = remainder[1:].partition("]")
        parts.append(segment)
    if remainder:
        parts.append(remainder)
    return parts


def _assign(node: dict, parts: list[str], value: str) -> None:
    for part in parts[:-1]:
        if part == "":
            part = str(len(node))
        child = node.get(part)
        if isinstance(child, list):
            child = {str(i): item for i, item in enumerate(child)}
            node[part] = child
        elif not isinstance(child, dict):
            child = {} if child is None else {"0": child}
            node[part] = child
        node = child

    last = parts[-1]
    if last == "":
        last = str(len(node))
    existing = node.get(last)
    if existing is None:
        node[last] = value
    elif isinstance(existing, list):
        existing.append(value)
    elif isinstance(existing, dict):
        existing[str(len(existing))] = value
    else:
        node[last] = [existing, value]


def _compact(node: Any) -> Any:
    if isinstance(node, list):
        return [_compact(item) for item in node]
    if not isinstance(node, dict):
        return node
    items = {key: _compact(value) for key, value in node.items()}
    if items and all(key.isdigit() for key in items):
        return [items[key] for key in sorted(items, key=int)]
    return items


def _content_type(header: str) -> tuple[str, str]:
    media_type, _, params = header.partition(";")
    charset = "utf-8"
    for param in params.split(";"):
        name, _, value = param.strip().partition("=")
        if name.lower() == "charset" and value:
            charset = value.strip('"').lower()
    return media_type.strip().lower(), charset


def _has_body(headers: Headers) -> bool:
    return "transfer-encoding" in headers or "content-length" in headers
