"""
Service layer.

Each service encapsulates the business rules for a domain and talks to
SQLite directly.  Services raise the exceptions in
``core.exceptions``; the HTTP layer turns them into status codes.
"""
