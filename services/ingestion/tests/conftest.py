"""Test configuration for pytest."""
import calendar

import pytest
from pyspark.sql import SparkSession

from ingestion.src.config import DaymetConfig, FetchConfig


def build_payload(year, n_days=None, tmax=10.0, prcp=1.0, drop=()):
    """Daymet-style JSON payload with native column names."""
    if n_days is None:
        n_days = 366 if calendar.isleap(year) else 365
    ydays = list(range(1, n_days + 1))
    data = {
        "year": [float(year)] * n_days,
        "yday": [float(d) for d in ydays],
        "dayl (s)": [36000.0] * n_days,
        "prcp (mm/day)": [prcp] * n_days,
        "srad (W/m^2)": [250.0] * n_days,
        "swe (kg/m^2)": [0.0] * n_days,
        "tmax (deg c)": [tmax] * n_days,
        "tmin (deg c)": [tmax - 10.0] * n_days,
        "vp (Pa)": [800.0] * n_days,
    }
    for column in drop:
        data.pop(column)
    return {"geometry": {"type": "Point", "coordinates": [-99.33, 34.64]}, "data": data}


@pytest.fixture
def payload_factory():
    return build_payload


@pytest.fixture
def daymet_config():
    """Daymet configuration with a fixed archive range."""
    return DaymetConfig(max_retries=0, retry_delay=0, max_year=2023)


@pytest.fixture
def fetch_config():
    return FetchConfig(max_workers=1, max_attempts=2, backoff_seconds=0)


@pytest.fixture(scope="session")
def spark():
    """Create Spark session for tests"""
    spark = (
        SparkSession.builder
        .appName("SiteWeather-Ingestion-Tests")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.sql.session.timeZone", "UTC")
        .getOrCreate()
    )

    yield spark

    spark.stop()
