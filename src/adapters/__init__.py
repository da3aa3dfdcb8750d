"""Adapters package for the Jarvis WhatsApp assistant.

Adapters turn transport-specific webhook payloads into :class:`InboundMessage`
objects the dispatcher understands.
"""

from src.adapters.evolution import InvalidPayloadError, normalize

__all__ = [
    "InvalidPayloadError",
    "normalize",
]
