"""Public URL resolution for converted files.

Base address resolution order:
    1. ``server.public_base_url`` from configuration
    2. tunnel discovery (ngrok), best effort
    3. the inbound request's own host, which Twilio usually cannot reach
       when the bot runs on localhost, so it is logged as unreliable
"""
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from .tunnel import NullTunnelResolver, TunnelResolver

logger = logging.getLogger(__name__)

FILES_ROUTE = "/files"


class PublicUrlResolver:
    """Builds the public URL Twilio will fetch a converted file from."""

    def __init__(
        self,
        configured_base_url: Optional[str] = None,
        tunnel: Optional[TunnelResolver] = None,
    ) -> None:
        self._configured = configured_base_url.rstrip("/") if configured_base_url else None
        self._tunnel = tunnel or NullTunnelResolver()

    async def discover_base_url(self) -> Optional[str]:
        """Configured or tunnel base URL, without the request-host fallback."""
        if self._configured:
            return self._configured
        discovered = await self._tunnel.discover()
        return discovered.rstrip("/") if discovered else None

    async def resolve_base_url(self, request_base_url: str) -> str:
        base = await self.discover_base_url()
        if base:
            return base
        fallback = request_base_url.rstrip("/")
        logger.warning(
            f"No public base URL configured or discovered; falling back to request "
            f"host {fallback}. Twilio may not be able to fetch media from it."
        )
        return fallback

    async def public_url_for(self, path: Path, request_base_url: str) -> str:
        """``<base>/files/<quoted filename>`` for a file in the public directory."""
        base = await self.resolve_base_url(request_base_url)
        url = f"{base}{FILES_ROUTE}/{quote(Path(path).name)}"
        logger.info(f"Public URL for Twilio: {url}")
        return url
