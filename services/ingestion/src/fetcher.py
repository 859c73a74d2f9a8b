"""
Batch site-year fetcher

Fetches every roster site-year independently, isolates failures per
site-year and concatenates successful days in a stable (site, year) order.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from .config import FetchConfig
from .daymet_client import (
    DaymetClient,
    IncompleteYearError,
    MalformedResponseError,
)
from .roster import RejectedRow, SiteYearRecord

logger = logging.getLogger(__name__)


@dataclass
class FetchFailure:
    """A site-year that contributed no rows, and why."""
    site: str
    year: int
    kind: str
    message: str
    attempts: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "site": self.site,
            "year": self.year,
            "kind": self.kind,
            "message": self.message,
            "attempts": self.attempts,
        }


@dataclass
class SiteYearResult:
    record: SiteYearRecord
    rows: List[Dict[str, Any]] = field(default_factory=list)
    failure: Optional[FetchFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class FetchReport:
    """Outcome of a batch fetch."""
    rows: List[Dict[str, Any]]
    succeeded: List[Tuple[str, int]]
    failures: List[FetchFailure]
    rejected: List[RejectedRow] = field(default_factory=list)

    @property
    def total_site_years(self) -> int:
        return len(self.succeeded) + len(self.failures)

    @property
    def status(self) -> str:
        if not self.succeeded:
            return "failed"
        if self.failures or self.rejected:
            return "partial"
        return "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "site_years_requested": self.total_site_years,
            "site_years_succeeded": len(self.succeeded),
            "site_years_failed": len(self.failures),
            "rows": len(self.rows),
            "failures": [f.to_dict() for f in self.failures],
            "rejected_roster_rows": [r.to_dict() for r in self.rejected],
        }


class SiteYearFetcher:
    """Fetch daily weather for a roster of site-years."""

    def __init__(self, client: DaymetClient, config: FetchConfig):
        """
        Initialize fetcher

        Args:
            client: Daymet client
            config: Batch fetch configuration
        """
        self.client = client
        self.config = config

    def fetch_one(self, record: SiteYearRecord) -> SiteYearResult:
        """
        Fetch a single site-year

        Input validation errors are not retried. Transport errors and
        malformed payloads are retried up to max_attempts with linear
        backoff. An incomplete year is reported immediately.
        """
        try:
            self.client.validate_request(record.lat, record.lon, record.year)
        except ValueError as e:
            logger.error(f"Invalid site-year {record.site} {record.year}: {e}")
            return SiteYearResult(
                record, failure=FetchFailure(record.site, record.year, "invalid_input", str(e), 0)
            )

        max_attempts = max(1, self.config.max_attempts)
        last_error = None
        kind = "api_error"

        for attempt in range(1, max_attempts + 1):
            try:
                days = self.client.fetch_year(record.lat, record.lon, record.year)
            except IncompleteYearError as e:
                logger.error(f"Incomplete year for {record.site} {record.year}: {e}")
                return SiteYearResult(
                    record,
                    failure=FetchFailure(record.site, record.year, "incomplete_year", str(e), attempt),
                )
            except MalformedResponseError as e:
                last_error, kind = e, "malformed_response"
            except requests.RequestException as e:
                last_error, kind = e, "api_error"
            else:
                return SiteYearResult(record, rows=[self._attach_identifiers(record, d) for d in days])

            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed for "
                f"{record.site} {record.year}: {last_error}"
            )
            if attempt < max_attempts and self.config.backoff_seconds > 0:
                time.sleep(self.config.backoff_seconds * attempt)

        logger.error(f"Giving up on {record.site} {record.year} after {max_attempts} attempts")
        return SiteYearResult(
            record,
            failure=FetchFailure(record.site, record.year, kind, str(last_error), max_attempts),
        )

    @staticmethod
    def _attach_identifiers(record: SiteYearRecord, day: Dict[str, Any]) -> Dict[str, Any]:
        row = {
            "site": record.site,
            "year": record.year,
            "lat": record.lat,
            "lon": record.lon,
        }
        row.update(record.responses)
        row.update(day)
        return row

    def fetch_all(
        self,
        records: Iterable[SiteYearRecord],
        rejected: Optional[List[RejectedRow]] = None,
    ) -> FetchReport:
        """
        Fetch every site-year in the roster

        Args:
            records: Validated roster records
            rejected: Roster rows rejected at load time, carried into the report

        Returns:
            FetchReport with rows ordered by site, year, day of year
        """
        records = list(records)
        workers = max(1, min(self.config.max_workers, len(records) or 1))
        logger.info(f"Fetching {len(records)} site-years with {workers} worker(s)")

        results: List[SiteYearResult] = []
        if workers == 1:
            for i, record in enumerate(records, start=1):
                results.append(self.fetch_one(record))
                if i % 50 == 0:
                    logger.info(f"Fetched {i}/{len(records)} site-years")
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(self.fetch_one, r): r for r in records}
                for i, future in enumerate(as_completed(futures), start=1):
                    results.append(future.result())
                    if i % 50 == 0:
                        logger.info(f"Fetched {i}/{len(records)} site-years")

        results.sort(key=lambda r: r.record.key)

        rows: List[Dict[str, Any]] = []
        succeeded: List[Tuple[str, int]] = []
        failures: List[FetchFailure] = []
        for result in results:
            if result.ok:
                rows.extend(result.rows)
                succeeded.append(result.record.key)
            else:
                failures.append(result.failure)

        report = FetchReport(rows, succeeded, failures, list(rejected or []))
        logger.info(
            f"Fetch complete: {len(succeeded)} succeeded, {len(failures)} failed, "
            f"{len(rows)} daily rows"
        )
        return report
