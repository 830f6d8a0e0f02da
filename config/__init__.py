"""
Configuration module for the Migration Flow Asymmetry research project.
"""

from .settings import get_config, config, reload_config

__all__ = ["get_config", "config", "reload_config"]
