"""Smart Converter WhatsApp bot.

A webhook-driven chat bot: users send a file over WhatsApp, pick a target
format from a numbered menu, and receive the converted file back as a media
message hosted under ``/files``.

Modules:
    - formats: magic-byte format detection with content-type/extension fallback
    - sessions: per-sender conversation state, idle expiry and file sweeps
    - transport: Twilio media download, outbound messages and TwiML replies
    - conversion: placeholder converter (byte copy into the public directory)
    - publishing: public base URL resolution (config, ngrok, request host)
    - files: static retrieval of converted files
    - webhook: inbound webhook router and the conversation state machine
"""

__version__ = "0.1.0"
