"""Configuration, logging and metrics shared by every service."""

from .config import Settings, SSHSettings, settings
from .logging import LoggerAdapter, get_logger, setup_logging

__all__ = ["Settings", "SSHSettings", "LoggerAdapter", "get_logger", "settings", "setup_logging"]
