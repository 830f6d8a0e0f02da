"""
Error taxonomy for the flow-asymmetry engine.

Only ConfigurationError and IngestionError are fatal. The other errors are
raised at the row, anchor or group level and recovered by the component that
owns that level, which tallies them in the run manifest.
"""

from __future__ import annotations

from typing import Optional


class FlowAsymmetryError(Exception):
    """Base class for all engine errors."""


class TransientSourceError(FlowAsymmetryError):
    """Network or rate-limit failure while querying the flow source."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedRecordError(FlowAsymmetryError):
    """A response row that cannot be turned into a raw edge."""


class InsufficientSampleError(FlowAsymmetryError):
    """An origin group that fails the eligibility thresholds."""

    def __init__(self, origin_id: str, reason: str):
        super().__init__(f"{origin_id}: {reason}")
        self.origin_id = origin_id
        self.reason = reason


class ConfigurationError(FlowAsymmetryError):
    """Invalid threshold or setting detected at startup."""


class IngestionError(FlowAsymmetryError):
    """No anchor produced usable flow data."""

    def __init__(self, message: str, manifest=None):
        super().__init__(message)
        self.manifest = manifest
