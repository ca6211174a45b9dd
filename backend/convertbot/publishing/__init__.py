"""Public hosting of converted files.

Resolves the base URL Twilio fetches media from: configuration first,
then a discovered ngrok tunnel, then the inbound request host.
"""
from .publisher import FILES_ROUTE, PublicUrlResolver
from .tunnel import NgrokTunnelResolver, NullTunnelResolver, TunnelResolver

__all__ = [
    "FILES_ROUTE",
    "PublicUrlResolver",
    "NgrokTunnelResolver",
    "NullTunnelResolver",
    "TunnelResolver",
]
