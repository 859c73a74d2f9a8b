"""Daymet single-pixel client for fetching one year of daily weather at a point."""
import calendar
import logging
import math
import threading
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DaymetConfig

logger = logging.getLogger(__name__)

MISSING_SENTINEL = -9999.0


class DaymetError(Exception):
    """Base class for Daymet fetch errors."""


class InvalidCoordinatesError(DaymetError, ValueError):
    """Coordinates fall outside the API's spatial coverage."""


class InvalidYearError(DaymetError, ValueError):
    """Year falls outside the API's temporal coverage."""


class MalformedResponseError(DaymetError):
    """Response is missing columns or has an unexpected shape."""


class IncompleteYearError(DaymetError):
    """Response parsed but does not cover every day of the year."""


def days_in_year(year: int, calendar_name: str = "standard") -> int:
    """Expected number of daily records for a year under a calendar convention."""
    if calendar_name == "noleap":
        return 365
    if calendar_name != "standard":
        raise ValueError(f"Unknown calendar: {calendar_name}")
    return 366 if calendar.isleap(year) else 365


def date_from_yday(year: int, yday: int) -> date:
    """Calendar date for a 1-based day of year."""
    return date(year, 1, 1) + timedelta(days=yday - 1)


class DaymetClient:
    """Client for the Daymet single-pixel extraction API."""

    # Native response column -> normalized variable name
    VARIABLE_MAPPING = {
        "dayl (s)": "dayl",
        "prcp (mm/day)": "prcp",
        "srad (W/m^2)": "srad",
        "swe (kg/m^2)": "swe",
        "tmax (deg c)": "tmax",
        "tmin (deg c)": "tmin",
        "vp (Pa)": "vp",
    }

    def __init__(self, config: DaymetConfig):
        """Initialize Daymet client.

        Args:
            config: Daymet configuration
        """
        self.config = config
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """HTTP session owned by the calling thread."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._create_session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _create_session(self) -> requests.Session:
        """Create requests session with retry logic."""
        session = requests.Session()
        retry_strategy = Retry(
            total=self.config.max_retries,
            backoff_factor=self.config.retry_delay,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def validate_request(self, lat: float, lon: float, year: int) -> None:
        """Check a point and year against the API's coverage.

        Raises:
            InvalidCoordinatesError: If the point is outside the grid extent
            InvalidYearError: If the year is outside the archive
        """
        cfg = self.config
        if not (cfg.min_lat <= lat <= cfg.max_lat and cfg.min_lon <= lon <= cfg.max_lon):
            raise InvalidCoordinatesError(
                f"({lat}, {lon}) is outside coverage "
                f"lat [{cfg.min_lat}, {cfg.max_lat}], lon [{cfg.min_lon}, {cfg.max_lon}]"
            )
        if not cfg.min_year <= year <= cfg.max_year:
            raise InvalidYearError(
                f"Year {year} is outside coverage [{cfg.min_year}, {cfg.max_year}]"
            )

    def fetch_year(self, lat: float, lon: float, year: int) -> List[Dict[str, Any]]:
        """Fetch one calendar year of daily observations for a point.

        Args:
            lat: Latitude in decimal degrees
            lon: Longitude in decimal degrees
            year: Calendar year

        Returns:
            One dict per day with year, yday, date and each configured variable

        Raises:
            InvalidCoordinatesError, InvalidYearError: On invalid input
            MalformedResponseError: If the payload cannot be normalized
            IncompleteYearError: If the year is short or long
            requests.RequestException: If the request fails
        """
        self.validate_request(lat, lon, year)

        params = {
            "lat": lat,
            "lon": lon,
            "vars": ",".join(self.config.variables),
            "years": year,
            "format": "json",
        }

        logger.debug(f"Requesting Daymet data for ({lat}, {lon}) {year}")

        try:
            response = self.session.get(
                self.config.base_url, params=params, timeout=self.config.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Daymet request failed for ({lat}, {lon}) {year}: {e}")
            raise

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response is not valid JSON: {e}") from e

        return self.normalize_response(payload, year)

    def normalize_response(self, payload: Dict[str, Any], year: int) -> List[Dict[str, Any]]:
        """Restructure the API's column-oriented payload into per-day records.

        Args:
            payload: Decoded JSON response
            year: Year that was requested

        Returns:
            List of per-day dicts ordered by day of year
        """
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise MalformedResponseError("Response has no 'data' object")

        columns = {}
        for native_name, values in data.items():
            name = self.VARIABLE_MAPPING.get(native_name, native_name)
            columns[name] = values

        required = ["year", "yday"] + list(self.config.variables)
        missing = [c for c in required if c not in columns]
        if missing:
            raise MalformedResponseError(f"Response is missing columns: {missing}")

        lengths = {len(columns[c]) for c in required}
        if len(lengths) != 1:
            raise MalformedResponseError(f"Response columns have unequal lengths: {sorted(lengths)}")

        n_days = lengths.pop()
        expected_days = days_in_year(year, self.config.calendar)
        max_yday = 366 if calendar.isleap(year) else 365

        records = []
        seen_ydays = set()
        for i in range(n_days):
            try:
                row_year = int(columns["year"][i])
                yday = int(columns["yday"][i])
            except (TypeError, ValueError):
                raise MalformedResponseError(f"Unparseable year/yday at row {i}")

            if row_year != year:
                raise MalformedResponseError(f"Row {i} has year {row_year}, expected {year}")
            if not 1 <= yday <= max_yday:
                raise MalformedResponseError(f"Day of year {yday} out of range for {year}")
            if yday in seen_ydays:
                raise MalformedResponseError(f"Duplicate day of year {yday}")
            seen_ydays.add(yday)

            record = {
                "year": year,
                "yday": yday,
                "date": date_from_yday(year, yday),
            }
            for variable in self.config.variables:
                record[variable] = self._clean_value(columns[variable][i])
            records.append(record)

        if (
            n_days == 365
            and expected_days == 366
            and seen_ydays == set(range(1, 366))
        ):
            # Daymet drops Dec 31 in leap years
            records.append(self._missing_day(year, 366))
            n_days += 1

        if n_days != expected_days:
            raise IncompleteYearError(
                f"Expected {expected_days} days for {year}, got {n_days}"
            )

        records.sort(key=lambda r: r["yday"])
        return records

    def _missing_day(self, year: int, yday: int) -> Dict[str, Any]:
        record = {"year": year, "yday": yday, "date": date_from_yday(year, yday)}
        record.update({variable: None for variable in self.config.variables})
        return record

    @staticmethod
    def _clean_value(value: Any) -> Optional[float]:
        """Convert a raw value to float, mapping sentinels and non-finite values to None."""
        if value is None:
            return None
        try:
            value = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(value) or value == MISSING_SENTINEL:
            return None
        return value

    def close(self):
        """Close every HTTP session opened by this client."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()
