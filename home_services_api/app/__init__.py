"""
Application package initializer.

Each marketplace domain (users, services, providers, bookings,
reviews, payments, notifications, admin) exposes a router in
``api/v1/endpoints`` backed by a service class in ``services`` and
pydantic models in ``schemas``.
"""

from .main import app  # noqa: F401
