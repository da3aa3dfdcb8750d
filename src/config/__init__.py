"""Configuration package for the Jarvis WhatsApp assistant."""

from src.config.interaction import InteractionConfig, load_interaction_config
from src.config.jarvis import JarvisConfig, load_jarvis_config

__all__ = [
    "InteractionConfig",
    "JarvisConfig",
    "load_interaction_config",
    "load_jarvis_config",
]
