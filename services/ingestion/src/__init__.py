"""
Site-Year Weather Ingestion Service

Fetches one year of daily Daymet weather per roster site-year and
stages the unified daily dataset for aggregation.
"""

__version__ = "0.1.0"
