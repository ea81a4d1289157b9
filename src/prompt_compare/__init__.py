"""Multi-provider prompt comparison: concurrent dispatch and normalization."""

__version__ = "0.1.0"
