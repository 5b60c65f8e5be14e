"""Entry point for the Home Services API.

This script serves the FastAPI application with Uvicorn.  It is
intended to be executed from the project root, for example under
Docker, where you only specify a single Python file to run.

Configuration such as the database path, secrets and the Razorpay,
SMTP and Twilio credentials is read from environment variables; see
``home_services_api/app/core/config.py`` for the supported names.

Usage:
    python run.py
"""
import asyncio
import logging
import os

from uvicorn import Config, Server

from home_services_api.app.main import app


async def run_api() -> None:
    """Start the API using Uvicorn.

    Host and port are read from environment variables `HOST` and
    `PORT`. Defaults are `0.0.0.0` and `8000`.
    """
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    log_level = os.getenv("LOG_LEVEL", "info").lower()
    config = Config(app=app, host=host, port=port, reload=False, log_level=log_level)
    server = Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(run_api())
    except (KeyboardInterrupt, SystemExit):
        logging.getLogger(__name__).info("Server stopped")
