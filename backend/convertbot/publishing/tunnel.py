"""Ngrok tunnel discovery for exposing converted files to Twilio.

Twilio fetches outbound media itself, so ``/files/...`` must be reachable
from the internet. When no public base URL is configured, the bot asks a
local ngrok agent for its tunnel URL.

Features:
    - Public URL discovery via the ngrok agent API (prefers https tunnels)
    - Optional ngrok process launch on startup, stopped on shutdown
    - ``NullTunnelResolver`` for environments without ngrok

Usage:
    from convertbot.publishing.tunnel import NgrokTunnelResolver

    tunnel = NgrokTunnelResolver()
    url = await tunnel.discover()   # None if ngrok isn't running
"""
import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_AGENT_API = "http://127.0.0.1:4040/api/tunnels"


class TunnelResolver(ABC):
    """Best-effort source of a public base URL."""

    @abstractmethod
    async def discover(self) -> Optional[str]:
        """Return the public base URL without trailing slash, or None."""


class NullTunnelResolver(TunnelResolver):
    """Resolver for deployments without a tunnel."""

    async def discover(self) -> Optional[str]:
        return None


class NgrokTunnelResolver(TunnelResolver):
    """Reads (and optionally starts) a local ngrok agent.

    Args:
        api_url: ngrok agent API endpoint listing tunnels.
        http_client: Optional ``httpx.AsyncClient`` (tests inject a mock transport).
    """

    def __init__(
        self,
        api_url: str = DEFAULT_AGENT_API,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_url = api_url
        self._http = http_client
        self._process: Optional[subprocess.Popen] = None

    async def discover(self) -> Optional[str]:
        """Get the public URL from ngrok's local API."""
        try:
            if self._http is not None:
                response = await self._http.get(self._api_url, timeout=2.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self._api_url, timeout=2.0)
            if response.status_code != 200:
                return None
            tunnels = response.json().get("tunnels", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"ngrok agent API unavailable: {e}")
            return None

        # Find HTTPS tunnel
        for tunnel in tunnels:
            url = tunnel.get("public_url") or ""
            if url.startswith("https://"):
                logger.info(f"Detected ngrok public URL from local API: {url}")
                return url.rstrip("/")
        return None

    async def launch(
        self,
        port: int,
        authtoken: Optional[str] = None,
        region: str = "us",
    ) -> Optional[str]:
        """Start an ngrok tunnel for *port* and return its public URL.

        Returns:
            The public HTTPS URL if successful, None otherwise.
        """
        existing_url = await self.discover()
        if existing_url:
            logger.info(f"Ngrok already running: {existing_url}")
            return existing_url

        if authtoken:
            try:
                subprocess.run(
                    ["ngrok", "config", "add-authtoken", authtoken],
                    check=True,
                    capture_output=True,
                )
                logger.info("Ngrok authtoken configured")
            except subprocess.CalledProcessError as e:
                logger.warning(f"Failed to set ngrok authtoken: {e}")
            except FileNotFoundError:
                logger.error("Ngrok not found. Please install ngrok first.")
                return None

        try:
            self._process = subprocess.Popen(
                ["ngrok", "http", str(port), "--region", region],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error("Ngrok not found. Please install ngrok: https://ngrok.com/download")
            return None
        except OSError as e:
            logger.error(f"Failed to start ngrok: {e}")
            return None

        logger.info(f"Starting ngrok tunnel on port {port}...")
        for _ in range(10):
            await asyncio.sleep(1)
            url = await self.discover()
            if url:
                logger.info(f"Ngrok tunnel established: {url}")
                return url

        logger.error("Ngrok started but could not get public URL")
        return None

    def stop(self) -> None:
        """Stop the ngrok process if this resolver started one."""
        if self._process:
            self._process.terminate()
            self._process = None
            logger.info("Ngrok tunnel stopped")
