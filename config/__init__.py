"""Configuration module for TickerLens.

This module provides centralized configuration management using pydantic-settings,
with every heuristic threshold of the pipeline overridable from the environment.
"""

from config.settings import GlobalConfig, get_config

__all__ = ["GlobalConfig", "get_config"]
