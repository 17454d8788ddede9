"""Configuration module for the directory."""
from .settings import AppConfig, load_settings, create_engine_from_settings

__all__ = ["AppConfig", "load_settings", "create_engine_from_settings"]
