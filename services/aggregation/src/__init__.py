"""
Site-Year Weather Aggregation Service

Computes bucketed (monthly by default) weather features from the unified
daily dataset and writes a wide one-row-per-site-year feature table.
"""

__version__ = "0.1.0"
