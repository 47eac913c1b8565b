# gatehouse/middleware/static.py
"""
Static file stage.

Serves GET/HEAD requests whose path names a file under the static root and
lets every other request continue down the chain. Paths that would leave
the root are answered with 404 without touching the filesystem outside it.
"""
import logging
import os
from pathlib import Path, PurePosixPath

from starlette.responses import FileResponse, PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("uvicorn.error")

INDEX_FILE = "index.html"


class PathOutsideRoot(Exception):
    """A request path resolved to a location outside the static root."""


class StaticFilesMiddleware:
    def __init__(self, app: ASGIApp, directory: str | os.PathLike) -> None:
        self.app = app
        self.directory = Path(directory)
        if not self.directory.is_dir():
            logger.warning("[static] directory %s does not exist, no files will be served", self.directory)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in ("GET", "HEAD"):
            await self.app(scope, receive, send)
            return

        try:
            path = self.lookup(scope["path"])
        except PathOutsideRoot:
            await PlainTextResponse("Not Found", status_code=404)(scope, receive, send)
            return

        if path is None:
            await self.app(scope, receive, send)
            return
        await FileResponse(path)(scope, receive, send)

    def lookup(self, request_path: str) -> Path | None:
        """
        Resolve a URL path to a servable file.

        Args:
            request_path: Decoded URL path, e.g. "/css/site.css"

        Returns:
            Path of the file to serve, or None when nothing matches
            (missing file, dotfile, directory without index)

        Raises:
            PathOutsideRoot: If the path escapes the static root
        """
        parts = PurePosixPath("/" + request_path.replace("\\", "/")).parts[1:]
        depth = 0
        for part in parts:
            depth += -1 if part == ".." else 1
            if depth < 0:
                raise PathOutsideRoot(request_path)
        parts = [part for part in parts if part not in ("", ".")]
        if any(part.startswith(".") and part != ".." for part in parts):
            return None

        try:
            root = self.directory.resolve()
            candidate = root.joinpath(*parts).resolve()
            if candidate != root and root not in candidate.parents:
                raise PathOutsideRoot(request_path)
            if candidate.is_dir():
                candidate = candidate / INDEX_FILE
            if candidate.is_file():
                return candidate
        except (OSError, ValueError):
            # name too long, embedded null byte, permission denied
            return None
        return None
