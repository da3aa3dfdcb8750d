"""Agents package for the Jarvis WhatsApp assistant."""

from src.agents.natural_language_router import NaturalLanguageRouter

__all__ = [
    "NaturalLanguageRouter",
]
