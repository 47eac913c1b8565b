# gatehouse/core/startup.py
"""
Startup sequencing.

Brings the process up in a fixed order: connect to storage once, and only
when that succeeds bind the listening socket and serve. A failed connection
ends in the `failed` state with no socket ever bound.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import uvicorn
from fastapi import FastAPI

from gatehouse.config import Settings

logger = logging.getLogger("uvicorn.error")


class StartupState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING_STORAGE = "connecting_storage"
    LISTENING = "listening"
    FAILED = "failed"


@dataclass(frozen=True)
class StartupOutcome:
    """Result of the storage connection attempt: success, or failure with a cause."""
    ok: bool
    cause: BaseException | None = None

    @classmethod
    def success(cls) -> "StartupOutcome":
        return cls(ok=True)

    @classmethod
    def failure(cls, cause: BaseException) -> "StartupOutcome":
        return cls(ok=False, cause=cause)


class Listener(Protocol):
    def bind(self) -> int: ...

    async def serve(self) -> None: ...


class UvicornListener:
    """
    Binds the configured host/port once and serves the app with uvicorn.

    The socket is opened by `bind()` so the bound port is known (and
    reported) before the server loop starts.
    """

    def __init__(self, app: FastAPI, settings: Settings) -> None:
        self.config = uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level,
            log_config=None,
        )
        self.server = uvicorn.Server(self.config)
        self.socket = None

    def bind(self) -> int:
        self.socket = self.config.bind_socket()
        return self.socket.getsockname()[1]

    async def serve(self) -> None:
        await self.server.serve(sockets=[self.socket])


class StartupSequencer:
    """
    Orders process bring-up: idle -> connecting_storage -> listening | failed.

    Args:
        app: Application handle with the middleware pipeline installed
        settings: Process settings
        connect: Storage collaborator, awaited exactly once
        listener_factory: Builds the listener; only called after a
            successful connection
    """

    def __init__(
        self,
        app: FastAPI,
        settings: Settings,
        connect: Callable[[Settings], Awaitable[StartupOutcome]],
        listener_factory: Callable[[FastAPI, Settings], Listener] = UvicornListener,
    ):
        self.app = app
        self.settings = settings
        self.connect = connect
        self.listener_factory = listener_factory
        self.state = StartupState.IDLE
        self.bound_port: int | None = None

    async def run(self) -> StartupOutcome:
        if self.state is not StartupState.IDLE:
            raise RuntimeError(f"startup already ran (state={self.state.value})")

        self.state = StartupState.CONNECTING_STORAGE
        outcome = await self.connect(self.settings)
        if not outcome.ok:
            self.state = StartupState.FAILED
            logger.error(
                "[startup] Database connection failed, not accepting connections: %s",
                outcome.cause,
                exc_info=outcome.cause,
            )
            return outcome

        listener = self.listener_factory(self.app, self.settings)
        try:
            self.bound_port = listener.bind()
        except OSError as exc:
            self.state = StartupState.FAILED
            logger.error(
                "[startup] Could not bind %s:%d: %s",
                self.settings.host,
                self.settings.port,
                exc,
                exc_info=exc,
            )
            return StartupOutcome.failure(exc)

        self.state = StartupState.LISTENING
        logger.info("[startup] Server is running at port %d", self.bound_port)
        await listener.serve()
        return outcome
