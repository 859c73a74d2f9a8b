"""
Pytest configuration and fixtures for aggregation service tests.
"""
import calendar
from datetime import date, timedelta

import pytest
from pyspark.sql import SparkSession
from pyspark.sql.types import (
    DateType,
    DoubleType,
    IntegerType,
    StringType,
    StructField,
    StructType,
)


VARIABLES = ("dayl", "prcp", "srad", "swe", "tmax", "tmin", "vp")

DAILY_SCHEMA = StructType(
    [
        StructField("site", StringType(), True),
        StructField("year", IntegerType(), True),
        StructField("lat", DoubleType(), True),
        StructField("lon", DoubleType(), True),
        StructField("strength", DoubleType(), True),
        StructField("yday", IntegerType(), True),
        StructField("date", DateType(), True),
    ]
    + [StructField(v, DoubleType(), True) for v in VARIABLES]
)


def tmax_for(yday):
    return 10.0 + (yday % 7) * 0.3


def prcp_for(yday):
    return (yday % 5) * 0.7


def daily_rows(site, year, lat=34.64, lon=-99.33, strength=28.1, skip_months=(), ydays=None):
    """One row per day with deterministic weather values."""
    if ydays is None:
        ydays = range(1, (366 if calendar.isleap(year) else 365) + 1)
    rows = []
    for yday in ydays:
        day = date(year, 1, 1) + timedelta(days=yday - 1)
        if day.month in skip_months:
            continue
        tmax = tmax_for(yday)
        rows.append(
            (
                site, year, lat, lon, strength, yday, day,
                36000.0 + yday,      # dayl
                prcp_for(yday),      # prcp
                250.0,               # srad
                0.0,                 # swe
                tmax,                # tmax
                tmax - 12.0,         # tmin
                800.0,               # vp
            )
        )
    return rows


@pytest.fixture(scope="session")
def spark():
    """Create a Spark session for testing."""
    spark = (
        SparkSession.builder
        .appName("SiteWeather-Aggregation-Tests")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.sql.session.timeZone", "UTC")
        .getOrCreate()
    )

    yield spark

    spark.stop()


@pytest.fixture
def make_daily(spark):
    """Build a daily DataFrame from row tuples."""
    def _make(rows):
        return spark.createDataFrame(rows, DAILY_SCHEMA)
    return _make


@pytest.fixture
def sample_daily_data(make_daily):
    """Two full site-years: one leap, one non-leap."""
    rows = daily_rows("Altus, OK", 1980) + daily_rows("Lubbock, TX", 1981, lat=33.6, lon=-101.8, strength=30.2)
    return make_daily(rows)


@pytest.fixture
def rows_factory():
    return daily_rows


@pytest.fixture
def weather_values():
    """Functions generating tmax and prcp for a day of year."""
    return {"tmax": tmax_for, "prcp": prcp_for}
