"""
Top-level package for the Home Services marketplace API.

All functionality lives in submodules under ``app``; import the ASGI
application as ``home_services_api.app.main:app``.
"""

__all__ = []
