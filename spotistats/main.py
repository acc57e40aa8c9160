"""
Main entry point for spotistats.

Initializes all components and starts the server.
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import List, Optional

import httpx
import uvicorn
from dotenv import load_dotenv

from .aggregator import Aggregator
from .auth import SpotifyTokenSource
from .cache import SnapshotCache
from .client import SpotifyClient
from .config import ConfigManager, StatsConfig, load_config
from .errors import ConfigurationError, SpotifyStatsError, UnauthorizedError
from .web.server import create_app

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


class StatsServer:
    """Main server class that wires all components together."""

    def __init__(
        self,
        config: StatsConfig,
        token_source: Optional[SpotifyTokenSource] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize all components.

        Args:
            config: Runtime configuration
            token_source: Bearer token source (built from config if None)
            http_client: Shared AsyncClient for Spotify calls (created if None)
        """
        logger.info("Initializing spotistats server...")
        self.config = config

        self.token_source = token_source or SpotifyTokenSource.from_config(config)
        self.client = SpotifyClient(config, self.token_source, http_client=http_client)
        logger.info("Spotify client created")

        self.aggregator = Aggregator(self.client, failure_policy=config.failure_policy)
        self.snapshot_cache = SnapshotCache(self.aggregator, ttl_seconds=config.cache_ttl_seconds)

        self.web_app = create_app(self.snapshot_cache, config, lifespan=self._lifespan)

        self.uvicorn_server = None
        logger.info("spotistats server initialized")

    @asynccontextmanager
    async def _lifespan(self, app):
        yield
        await self.client.aclose()

    async def check_refresh_token(self, client: Optional[SpotifyClient] = None) -> None:
        """
        Make one request to verify the refresh token still works.

        Args:
            client: Client to probe with (defaults to the server's client)

        Raises:
            UnauthorizedError: the token is invalid or expired
        """
        client = client or self.client
        try:
            await asyncio.wait_for(
                client.fetch_currently_playing(),
                timeout=self.config.request_timeout_seconds,
            )
        except UnauthorizedError:
            raise
        except (SpotifyStatsError, asyncio.TimeoutError) as e:
            logger.warning("Error checking token validity: %s", str(e) or type(e).__name__)

    async def _probe_refresh_token(self) -> None:
        # Pooled connections belong to the loop that opened them
        probe = SpotifyClient(self.config, self.token_source)
        try:
            await self.check_refresh_token(probe)
        finally:
            await probe.aclose()

    def run(self, check_token: bool = True) -> int:
        """Start the server. Returns a process exit code."""
        if check_token:
            try:
                asyncio.run(self._probe_refresh_token())
            except UnauthorizedError as e:
                logger.error("Refresh token is invalid or expired: %s", e)
                logger.error("Re-run the authorization flow to obtain a new SPOTIFY_REFRESH_TOKEN")
                return 1

        logger.info("Starting server on %s:%d", self.config.host, self.config.port)
        uvicorn_config = uvicorn.Config(
            self.web_app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
        self.uvicorn_server = uvicorn.Server(uvicorn_config)
        self.uvicorn_server.run()
        return 0

    def stop(self):
        """Ask uvicorn to exit."""
        logger.info("Stopping spotistats server...")
        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="spotistats - Spotify listening stats API")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    parser.add_argument("--host", help="override HOST")
    parser.add_argument("--port", type=int, help="override PORT")
    parser.add_argument(
        "--skip-token-check",
        action="store_true",
        help="do not verify the refresh token before serving",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Values already in the environment win over the file
    env_loaded = load_dotenv(args.env_file)

    config_manager = ConfigManager()
    logging.basicConfig(level=config_manager.get("LOG_LEVEL").upper(), format=LOG_FORMAT)
    if env_loaded:
        logger.info("Loaded environment from %s", args.env_file)

    try:
        config = load_config(config_manager)
    except ConfigurationError as e:
        logger.error("Environment validation failed: %s", e)
        return 2

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if overrides:
        config = replace(config, **overrides)

    server = StatsServer(config)
    try:
        return server.run(check_token=not args.skip_token_check)
    except KeyboardInterrupt:
        return 0
    finally:
        server.stop()


if __name__ == "__main__":
    sys.exit(main())
