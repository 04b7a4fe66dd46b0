"""Configuration package for the hierarchy sync engine."""

from .hierarchy_config import AppConfig, get_config, load_default_views

__all__ = ["AppConfig", "get_config", "load_default_views"]
