"""Configuration package for the feed relay."""

from .monitor_config import MonitorConfig

__all__ = ["MonitorConfig"]
