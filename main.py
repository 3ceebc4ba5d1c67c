# -*- coding: utf-8 -*-

# ChatRelay Gateway
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
ChatRelay Gateway - entry point.

Usage:
    python main.py                    # host/port from env or defaults
    python main.py --port 9000
    python main.py -H 127.0.0.1 -p 9000
"""

import argparse
import sys
from contextlib import asynccontextmanager
from typing import Optional, Tuple

import uvicorn
from fastapi import FastAPI
from loguru import logger

from chatrelay.config import (
    APP_DESCRIPTION,
    APP_TITLE,
    APP_VERSION,
    DEFAULT_PROXY_API_KEY,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    LOG_LEVEL,
    PROXY_API_KEY,
    SERVER_HOST,
    SERVER_PORT,
    UPSTREAM_API_KEY,
    UPSTREAM_BASE_URL,
)
from chatrelay.http_client import UpstreamHttpClient
from chatrelay.model_capabilities import ModelCapabilityTable
from chatrelay.rate_limit import RateLimiter
from chatrelay.routes_openai import router


# --- Loguru Configuration ---
logger.remove()
logger.add(
    sys.stderr,
    level=LOG_LEVEL,
    colorize=True,
    format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
)


def validate_configuration() -> None:
    """
    Refuse to start with an insecure or incomplete configuration.

    Exits with code 1 if PROXY_API_KEY is the published default.
    Missing UPSTREAM_API_KEY only produces a warning (some upstreams are
    reached through an authenticating sidecar).
    """
    if PROXY_API_KEY == DEFAULT_PROXY_API_KEY:
        logger.error(
            "PROXY_API_KEY is set to the default value. "
            "Set a unique PROXY_API_KEY in your environment or .env file."
        )
        sys.exit(1)

    if not UPSTREAM_API_KEY:
        logger.warning(
            "UPSTREAM_API_KEY is empty; requests to {} are sent without Authorization",
            UPSTREAM_BASE_URL,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared, read-only state on startup and release the connection pool on shutdown."""
    logger.info("Starting application... Creating state managers.")

    app.state.capability_table = ModelCapabilityTable()
    app.state.http_client = UpstreamHttpClient()
    app.state.rate_limiter = RateLimiter()

    logger.info(
        f"Upstream: {UPSTREAM_BASE_URL} "
        f"({len(app.state.capability_table.model_ids)} models with known context windows)"
    )

    yield

    logger.info("Shutting down application...")
    await app.state.http_client.close()


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    application = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        lifespan=lifespan,
    )
    application.include_router(router)
    return application


app = create_app()


def parse_cli_args() -> argparse.Namespace:
    """
    Parse command-line arguments.

    Host and port default to None, meaning "use env or default".
    """
    parser = argparse.ArgumentParser(
        description=f"{APP_TITLE} - {APP_DESCRIPTION}",
    )
    parser.add_argument(
        "-H",
        "--host",
        type=str,
        default=None,
        help=f"Server host address (default: {DEFAULT_SERVER_HOST}, env: SERVER_HOST)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help=f"Server port (default: {DEFAULT_SERVER_PORT}, env: SERVER_PORT)",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )
    return parser.parse_args()


def resolve_server_config(args: argparse.Namespace) -> Tuple[str, int]:
    """
    Resolve host and port. Priority: CLI args > environment > defaults.
    """
    host: Optional[str] = args.host if args.host is not None else SERVER_HOST
    port: Optional[int] = args.port if args.port is not None else SERVER_PORT
    return host or DEFAULT_SERVER_HOST, port or DEFAULT_SERVER_PORT


def print_startup_banner(host: str, port: int) -> None:
    """Print the server URLs."""
    display_host = "localhost" if host == "0.0.0.0" else host
    base_url = f"http://{display_host}:{port}"
    print()
    print(f"  {APP_TITLE} v{APP_VERSION}")
    print()
    print(f"  Server running at: {base_url}")
    print(f"  API docs:          {base_url}/docs")
    print(f"  Health check:      {base_url}/health")
    print()


if __name__ == "__main__":
    cli_args = parse_cli_args()
    validate_configuration()
    server_host, server_port = resolve_server_config(cli_args)
    print_startup_banner(server_host, server_port)
    uvicorn.run(app, host=server_host, port=server_port, log_level=LOG_LEVEL.lower())
