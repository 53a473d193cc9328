"""Configuration system."""

from signal_desk.config.loader import load_config
from signal_desk.config.schema import AppConfig

__all__ = ["AppConfig", "load_config"]
