"""
Configuration management for the aggregation service.
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


DEFAULT_FEATURES_PATH = Path(__file__).resolve().parents[3] / "config" / "features.yaml"


class AggregationConfig(BaseSettings):
    """Configuration for aggregation service."""

    # Spark configuration
    spark_app_name: str = "SiteWeather-Aggregation"
    spark_master: str = "local[*]"
    shuffle_partitions: int = 8

    # Feature configuration (variable -> statistics, rounding, bucket size)
    features_path: Optional[Path] = None

    # I/O
    input_format: str = "parquet"
    output_format: str = "csv"

    class Config:
        env_file = ".env"
        env_prefix = "AGG_"
