"""
Test suite for the flow-asymmetry engine.

This package contains unit tests and integration tests for:
- Identifier normalization
- Concurrent ingestion and the Census client
- Flow table assembly and reconciliation
- Concentration statistics, ranking and regional comparison
- The end-to-end analyzer and CLI
"""
