"""Smart Converter bot application.

This is the main entry point for the WhatsApp file-conversion bot. Users
send a file, pick a target format from a numbered menu, and get the
converted file back as a media message.

Modules:
    - webhook: Twilio webhook and conversation state machine
    - sessions: per-sender session store and background sweeps
    - transport: Twilio media download and outbound messages
    - conversion: placeholder converter
    - publishing: public base URL resolution (config, ngrok, request host)
    - files: public retrieval of converted files
"""
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from convertbot import __version__
from convertbot.config import AppSettings, ConfigurationError, get_config
from convertbot.conversion.service import CONVERTED_PREFIX, CopyConverter
from convertbot.files.router import router as files_router, set_public_dir
from convertbot.publishing.publisher import PublicUrlResolver
from convertbot.publishing.tunnel import NgrokTunnelResolver, NullTunnelResolver, TunnelResolver
from convertbot.sessions.janitor import Janitor, SweepTarget
from convertbot.sessions.store import InMemorySessionStore
from convertbot.transport.twilio_client import DOWNLOAD_PREFIX, TwilioClient
from convertbot.webhook.orchestrator import ConversationOrchestrator
from convertbot.webhook.router import get_orchestrator, router as webhook_router, set_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every connection, including each Twilio retry
for _noisy in ("httpx", "httpcore", "httpcore.http11", "httpcore.connection"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Drained on shutdown; deliveries are never cancelled
SHUTDOWN_DRAIN_SECONDS = 30.0


def _apply_log_level(config: AppSettings) -> None:
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())


def build_tunnel(config: AppSettings) -> TunnelResolver:
    if config.tunnel.discover or config.tunnel.launch:
        return NgrokTunnelResolver(api_url=config.tunnel.api_url)
    return NullTunnelResolver()


def build_orchestrator(
    config: AppSettings,
    transport: TwilioClient,
    tunnel: TunnelResolver,
) -> ConversationOrchestrator:
    """Wire the session store, converter and publisher from settings."""
    return ConversationOrchestrator(
        store=InMemorySessionStore(),
        transport=transport,
        converter=CopyConverter(Path(config.storage.public_dir)),
        publisher=PublicUrlResolver(config.server.public_base_url, tunnel),
        upload_dir=Path(config.storage.upload_dir),
    )


def build_transport(config: AppSettings) -> TwilioClient:
    twilio = config.secrets.twilio
    limits = config.limits
    return TwilioClient(
        account_sid=twilio.account_sid or "",
        auth_token=twilio.auth_token or "",
        from_number=twilio.whatsapp_number or "",
        max_file_size_bytes=limits.max_file_size_bytes,
        download_timeout=limits.download_timeout_seconds,
        download_retries=limits.download_retries,
        send_attempts=limits.send_attempts,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()
    _apply_log_level(config)
    config.require_credentials()

    public_dir = Path(config.storage.public_dir)
    upload_dir = Path(config.storage.upload_dir)
    set_public_dir(public_dir)

    tunnel = build_tunnel(config)
    if config.tunnel.launch and isinstance(tunnel, NgrokTunnelResolver):
        logger.info("Ngrok launch is enabled in config, starting tunnel...")
        url = await tunnel.launch(
            port=config.server.port,
            authtoken=config.secrets.ngrok.authtoken,
            region=config.tunnel.region,
        )
        if not url:
            logger.warning("Failed to start ngrok tunnel; continuing without it")

    transport = build_transport(config)
    orchestrator = build_orchestrator(config, transport, tunnel)
    set_orchestrator(orchestrator)

    limits = config.limits
    janitor = Janitor(
        store=orchestrator.store,
        targets=[
            SweepTarget(public_dir, CONVERTED_PREFIX),
            SweepTarget(upload_dir, DOWNLOAD_PREFIX),
        ],
        session_timeout_seconds=limits.session_timeout_seconds,
        session_sweep_interval=limits.session_sweep_interval_seconds,
        artifact_max_age_seconds=limits.artifact_max_age_seconds,
        artifact_sweep_interval=limits.artifact_sweep_interval_seconds,
    )
    await janitor.start()

    logger.info("Listening on port %s", config.server.port)
    if config.server.public_base_url:
        logger.info("Using PUBLIC_BASE_URL from config: %s", config.server.public_base_url)
    else:
        logger.info("PUBLIC_BASE_URL not set; will attempt to auto-detect ngrok or use request host.")

    yield  # Application runs here

    # Shutdown
    await janitor.stop()
    await orchestrator.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await transport.aclose()
    if isinstance(tunnel, NgrokTunnelResolver):
        tunnel.stop()
    set_orchestrator(None)
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Smart Converter API",
    description="WhatsApp bot that converts uploaded files and sends them back",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(webhook_router)
app.include_router(files_router)


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    """Liveness check."""
    return "Smart Converter WhatsApp bot running!"


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object with the number of active sessions.
    """
    orchestrator = get_orchestrator()
    sessions = len(orchestrator.store) if orchestrator else 0
    return {"status": "ok", "sessions": sessions}


@app.get("/public-url")
async def public_url() -> dict:
    """Get the configured or discovered public base URL.

    Returns:
        dict: Object with public_url field (null if not available).
    """
    orchestrator = get_orchestrator()
    if orchestrator is None:
        return {"public_url": None}
    return {"public_url": await orchestrator.publisher.discover_base_url()}


def run() -> None:
    """Validate configuration and serve the app with uvicorn."""
    import uvicorn

    try:
        config = get_config()
        config.require_credentials()
    except (ConfigurationError, ValidationError) as e:
        logger.error("ERROR: %s", e)
        sys.exit(1)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
