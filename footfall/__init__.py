"""
Footfall Rollup Service

Cached daily/hourly visitor rollups over the DisplayForce analytics API.
"""

__version__ = "1.0.0"
