"""
Data Ingestion Module
"""
from .upstream_client import DisplayForceClient, UpstreamConfigError, UpstreamError

__all__ = [
    "DisplayForceClient",
    "UpstreamConfigError",
    "UpstreamError",
]
