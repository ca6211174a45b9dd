"""Inbound WhatsApp webhook and the conversation state machine.

Each sender moves from AWAITING_FILE to AWAITING_FORMAT_CHOICE; choosing a
format launches a detached conversion and delivery.
"""
