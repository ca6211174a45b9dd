"""Tests for public URL resolution and ngrok discovery."""
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from convertbot.publishing.publisher import PublicUrlResolver
from convertbot.publishing.tunnel import (
    NgrokTunnelResolver,
    NullTunnelResolver,
    TunnelResolver,
)


class StaticTunnel(TunnelResolver):
    def __init__(self, url):
        self.url = url
        self.calls = 0

    async def discover(self):
        self.calls += 1
        return self.url


def _ngrok(handler) -> NgrokTunnelResolver:
    return NgrokTunnelResolver(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


class TestPublicUrlResolver:
    @pytest.mark.asyncio
    async def test_configured_url_wins(self):
        tunnel = StaticTunnel("https://tunnel.ngrok.app")
        resolver = PublicUrlResolver("https://files.example.com/", tunnel)
        assert await resolver.resolve_base_url("http://localhost:8085/") == "https://files.example.com"
        assert tunnel.calls == 0

    @pytest.mark.asyncio
    async def test_tunnel_before_request_host(self):
        resolver = PublicUrlResolver(None, StaticTunnel("https://abc.ngrok.app/"))
        assert await resolver.resolve_base_url("http://localhost:8085/") == "https://abc.ngrok.app"

    @pytest.mark.asyncio
    async def test_request_host_fallback(self, caplog):
        resolver = PublicUrlResolver(None, NullTunnelResolver())
        with caplog.at_level("WARNING"):
            base = await resolver.resolve_base_url("http://localhost:8085/")
        assert base == "http://localhost:8085"
        assert "falling back to request host" in caplog.text

    @pytest.mark.asyncio
    async def test_public_url_for_quotes_name(self):
        resolver = PublicUrlResolver("https://files.example.com")
        url = await resolver.public_url_for(Path("/srv/public/converted_1 a.png"), "http://x/")
        assert url == "https://files.example.com/files/converted_1%20a.png"

    @pytest.mark.asyncio
    async def test_discover_base_url_without_fallback(self):
        assert await PublicUrlResolver(None).discover_base_url() is None


class TestNgrokTunnelResolver:
    @pytest.mark.asyncio
    async def test_prefers_https_tunnel(self):
        def handler(request):
            assert request.url.path == "/api/tunnels"
            return httpx.Response(200, json={"tunnels": [
                {"proto": "http", "public_url": "http://abc.ngrok.app"},
                {"proto": "https", "public_url": "https://abc.ngrok.app/"},
            ]})

        assert await _ngrok(handler).discover() == "https://abc.ngrok.app"

    @pytest.mark.asyncio
    async def test_no_https_tunnel(self):
        def handler(request):
            return httpx.Response(200, json={"tunnels": [
                {"proto": "http", "public_url": "http://abc.ngrok.app"},
            ]})

        assert await _ngrok(handler).discover() is None

    @pytest.mark.asyncio
    async def test_agent_not_running(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        assert await _ngrok(handler).discover() is None

    @pytest.mark.asyncio
    async def test_bad_status(self):
        assert await _ngrok(lambda r: httpx.Response(502)).discover() is None

    @pytest.mark.asyncio
    async def test_launch_reuses_running_agent(self):
        def handler(request):
            return httpx.Response(200, json={"tunnels": [
                {"proto": "https", "public_url": "https://abc.ngrok.app"},
            ]})

        tunnel = _ngrok(handler)
        with patch("convertbot.publishing.tunnel.subprocess.Popen") as popen:
            assert await tunnel.launch(port=8085) == "https://abc.ngrok.app"
            popen.assert_not_called()

    @pytest.mark.asyncio
    async def test_launch_without_ngrok_binary(self):
        tunnel = _ngrok(lambda r: httpx.Response(502))
        with patch(
            "convertbot.publishing.tunnel.subprocess.Popen",
            side_effect=FileNotFoundError("ngrok"),
        ):
            assert await tunnel.launch(port=8085) is None

    def test_stop_terminates_process(self):
        tunnel = NgrokTunnelResolver()
        process = MagicMock()
        tunnel._process = process
        tunnel.stop()
        process.terminate.assert_called_once()
        tunnel.stop()  # second stop is a no-op
        process.terminate.assert_called_once()
