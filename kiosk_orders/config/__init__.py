"""Configuration package for the kiosk order backend."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
