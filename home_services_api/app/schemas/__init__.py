"""
Pydantic schema definitions for API payloads.

Schemas are kept separate from the SQLite rows so the API
representation can evolve independently of the table layout.
"""
