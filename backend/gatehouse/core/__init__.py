# gatehouse/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- db: Database configuration and connection management
- errors: Startup and request body error types
- pipeline: Middleware chain construction
- startup: Startup sequencing (storage first, then socket bind)
"""
