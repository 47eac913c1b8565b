# gatehouse/middleware/__init__.py
"""
Request pre-processing stages, applied in this order:
- CORS policy (Starlette CORSMiddleware)
- body: JSON and url-encoded body parsing with a size limit
- static: static file serving from the configured root
- cookies: Cookie header parsing
"""
from .body import JSONBodyMiddleware, URLEncodedBodyMiddleware
from .cookies import CookieParserMiddleware
from .static import StaticFilesMiddleware
