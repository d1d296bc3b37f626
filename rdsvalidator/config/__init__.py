"""
Configuration management for rdsvalidator.

Settings are read once from the environment using Pydantic; per-run intent
lives in :class:`rdsvalidator.orchestration.plan.RunConfig`.
"""

from .settings import AppSettings, get_settings, reload_settings

__all__ = ["get_settings", "reload_settings", "AppSettings"]
