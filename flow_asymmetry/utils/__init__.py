"""
Utility functions for the flow-asymmetry engine.
"""

from .helpers import format_share, write_json

__all__ = ["format_share", "write_json"]
