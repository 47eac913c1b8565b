# gatehouse/core/pipeline.py
"""
Middleware pipeline construction.

Builds the FastAPI application with the fixed request pre-processing chain.
Stages are listed outermost first, so a request passes CORS, JSON body,
url-encoded body, static files and cookie parsing in that order before any
route handler sees it.
"""
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware

from gatehouse.config import Settings
from gatehouse.core.errors import ConfigurationError
from gatehouse.middleware import (
    CookieParserMiddleware,
    JSONBodyMiddleware,
    StaticFilesMiddleware,
    URLEncodedBodyMiddleware,
)

CORS_METHODS = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]


def _validate(settings: Settings) -> None:
    if not isinstance(settings.body_limit, int) or settings.body_limit < 0:
        raise ConfigurationError(f"invalid body limit: {settings.body_limit!r}")
    if not isinstance(settings.parameter_limit, int) or settings.parameter_limit < 0:
        raise ConfigurationError(f"invalid parameter limit: {settings.parameter_limit!r}")
    if not settings.static_root:
        raise ConfigurationError("static root must be set")


def pipeline_stages(settings: Settings) -> list[Middleware]:
    """
    Return the request pre-processing stages for `settings`, outermost first.

    Raises:
        ConfigurationError: If the settings cannot produce a valid chain
    """
    _validate(settings)
    return [
        # CORS (with Cookie)
        Middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_origin_regex=settings.cors_origin_regex,
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
        ),
        Middleware(JSONBodyMiddleware, limit=settings.body_limit),
        Middleware(
            URLEncodedBodyMiddleware,
            limit=settings.body_limit,
            parameter_limit=settings.parameter_limit,
        ),
        Middleware(StaticFilesMiddleware, directory=settings.static_root),
        Middleware(CookieParserMiddleware, secret=settings.cookie_secret),
    ]


def build_pipeline(settings: Settings, **app_kwargs: Any) -> FastAPI:
    """
    Create the application handle with the middleware chain installed.

    Route modules register their endpoints on the returned app; no
    module-level app instance exists.

    Args:
        settings: Validated process settings
        **app_kwargs: Extra FastAPI arguments (e.g. lifespan)

    Returns:
        FastAPI: The application handle
    """
    stages = pipeline_stages(settings)
    return FastAPI(title=settings.APP_NAME, middleware=stages, **app_kwargs)
