"""
cadence-engine: recovery cadence planning and scheduling.

File: src/cadence_engine/__init__.py

Purpose
- Package root. Defines package-level metadata and the small public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
