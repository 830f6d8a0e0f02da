"""
Migration Flow Asymmetry

Measures how unevenly origins spread their out-migration across
destinations, using county-to-county flow data from the Census Bureau
migration flows API.

Modules:
    - data: Identifier normalization, ingestion and flow table assembly
    - analysis: Asymmetry statistics, ranking and regional comparison
    - utils: Utility functions
"""

__version__ = "1.0.0"

from .exceptions import (
    ConfigurationError,
    FlowAsymmetryError,
    IngestionError,
    InsufficientSampleError,
    MalformedRecordError,
    TransientSourceError,
)

__all__ = [
    "__version__",
    "ConfigurationError",
    "FlowAsymmetryError",
    "IngestionError",
    "InsufficientSampleError",
    "MalformedRecordError",
    "TransientSourceError",
]
