"""
Pytest fixtures for end-to-end tests.

Provides fixtures for:
- A local Spark session shared by both stages
- A Daymet client whose HTTP session is replaced by a deterministic stub
- Roster CSV generation
"""
from unittest.mock import Mock

import pytest
import requests
from pyspark.sql import SparkSession

from ingestion.src.config import DaymetConfig, FetchConfig, IngestionConfig
from ingestion.src.daymet_client import DaymetClient


def tmax_for(yday):
    return 10.0 + (yday % 7) * 0.3


def prcp_for(yday):
    return (yday % 5) * 0.7


def daymet_payload(year):
    """
    Full-year Daymet JSON body with native column names and varying values.

    Daymet always returns yday 1..365; leap years drop Dec 31.
    """
    n_days = 365
    ydays = list(range(1, n_days + 1))
    return {
        "data": {
            "year": [float(year)] * n_days,
            "yday": [float(d) for d in ydays],
            "dayl (s)": [36000.0 + d for d in ydays],
            "prcp (mm/day)": [prcp_for(d) for d in ydays],
            "srad (W/m^2)": [250.0] * n_days,
            "swe (kg/m^2)": [0.0] * n_days,
            "tmax (deg c)": [tmax_for(d) for d in ydays],
            "tmin (deg c)": [tmax_for(d) - 12.0 for d in ydays],
            "vp (Pa)": [800.0] * n_days,
        }
    }


@pytest.fixture(scope="session")
def spark():
    """Local Spark session for pipeline runs."""
    spark = (
        SparkSession.builder
        .appName("SiteWeather-E2E-Tests")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "4")
        .config("spark.sql.session.timeZone", "UTC")
        .getOrCreate()
    )

    yield spark

    spark.stop()


@pytest.fixture
def ingestion_config():
    return IngestionConfig(
        daymet=DaymetConfig(max_retries=0, retry_delay=0, max_year=2023),
        fetch=FetchConfig(max_workers=4, max_attempts=2, backoff_seconds=0),
    )


@pytest.fixture
def stub_client(ingestion_config):
    """
    Daymet client answering from daymet_payload().

    Requests whose latitude appears in ``stub_client.failing_lats`` get an HTTP 500.
    """
    client = DaymetClient(ingestion_config.daymet)
    client.failing_lats = set()

    def get(url, params=None, timeout=None):
        response = Mock()
        if params["lat"] in client.failing_lats:
            response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        else:
            response.raise_for_status.return_value = None
            response.json.return_value = daymet_payload(int(params["years"]))
        return response

    session = Mock()
    session.get = Mock(side_effect=get)
    # Worker threads each ask for a session; hand them all the stub
    client._create_session = lambda: session
    yield client
    client.close()


@pytest.fixture
def write_roster(tmp_path):
    """Write roster rows (year, site, lat, lon, strength) to a CSV and return its path."""
    def _write(rows, name="roster.csv"):
        path = tmp_path / name
        lines = ["year,site,lat,lon,strength"]
        for year, site, lat, lon, strength in rows:
            lines.append(f'{year},"{site}",{lat},{lon},{strength}')
        path.write_text("\n".join(lines) + "\n")
        return path
    return _write


@pytest.fixture
def weather_values():
    """Functions generating tmax and prcp for a day of year."""
    return {"tmax": tmax_for, "prcp": prcp_for}
