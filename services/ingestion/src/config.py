"""Configuration management for ingestion service."""
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Tuple


def _last_complete_year() -> int:
    return date.today().year - 1


@dataclass
class DaymetConfig:
    """Daymet single-pixel API configuration."""
    base_url: str = "https://daymet.ornl.gov/single-pixel/api/data"
    variables: Tuple[str, ...] = ("dayl", "prcp", "srad", "swe", "tmax", "tmin", "vp")
    timeout: int = 60
    max_retries: int = 3
    retry_delay: int = 2
    # Daymet v4 North America grid extent
    min_lat: float = 14.0
    max_lat: float = 83.0
    min_lon: float = -179.0
    max_lon: float = -52.0
    min_year: int = 1980
    max_year: int = field(default_factory=_last_complete_year)
    # "standard" expects 366 days in leap years, "noleap" is Daymet's native 365-day year
    calendar: str = "standard"

    @classmethod
    def from_env(cls) -> "DaymetConfig":
        """Load Daymet config from environment variables."""
        config = cls(
            base_url=os.getenv("DAYMET_BASE_URL", cls.base_url),
            timeout=int(os.getenv("DAYMET_TIMEOUT", str(cls.timeout))),
            max_retries=int(os.getenv("DAYMET_MAX_RETRIES", str(cls.max_retries))),
            calendar=os.getenv("DAYMET_CALENDAR", cls.calendar),
        )
        variables = os.getenv("DAYMET_VARIABLES")
        if variables:
            config.variables = tuple(v.strip() for v in variables.split(",") if v.strip())
        max_year = os.getenv("DAYMET_MAX_YEAR")
        if max_year:
            config.max_year = int(max_year)
        return config


@dataclass
class FetchConfig:
    """Batch fetch configuration."""
    max_workers: int = 4
    max_attempts: int = 3
    backoff_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "FetchConfig":
        """Load fetch config from environment variables."""
        return cls(
            max_workers=int(os.getenv("FETCH_MAX_WORKERS", "4")),
            max_attempts=int(os.getenv("FETCH_MAX_ATTEMPTS", "3")),
            backoff_seconds=float(os.getenv("FETCH_BACKOFF_SECONDS", "5")),
        )


@dataclass
class IngestionConfig:
    """Main ingestion configuration."""
    daymet: DaymetConfig
    fetch: FetchConfig
    output_format: str = "parquet"
    spark_master: Optional[str] = None

    @classmethod
    def from_env(cls) -> "IngestionConfig":
        """Load full configuration from environment."""
        return cls(
            daymet=DaymetConfig.from_env(),
            fetch=FetchConfig.from_env(),
            output_format=os.getenv("DAILY_OUTPUT_FORMAT", "parquet"),
            spark_master=os.getenv("SPARK_MASTER"),
        )
