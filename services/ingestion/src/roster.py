"""
Site-year roster loading

Reads the input roster CSV (one row per site-year), validates each row
and carries extra columns through as response variables.
"""
import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = ("year", "site", "lat", "lon")


@dataclass(frozen=True)
class SiteYearRecord:
    """One roster row: a site observed during one calendar year."""
    site: str
    year: int
    lat: float
    lon: float
    responses: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, int]:
        return (self.site, self.year)


@dataclass
class RejectedRow:
    """A roster row that failed validation."""
    line_number: int
    row: Dict[str, str]
    reason: str

    def to_dict(self) -> Dict[str, object]:
        return {"line_number": self.line_number, "row": self.row, "reason": self.reason}


@dataclass
class RosterLoadResult:
    """Validated records plus the rows that were rejected."""
    records: List[SiteYearRecord]
    rejected: List[RejectedRow]
    response_columns: List[str]


class RosterValidationError(ValueError):
    """Raised when a single roster row is malformed."""


def parse_row(row: Dict[str, str], response_columns: List[str]) -> SiteYearRecord:
    """
    Validate and convert one raw roster row

    Args:
        row: Raw CSV row keyed by column name
        response_columns: Extra columns to carry through

    Returns:
        SiteYearRecord

    Raises:
        RosterValidationError: If a required field is missing or out of range
    """
    values = {}
    for column in REQUIRED_COLUMNS:
        value = (row.get(column) or "").strip()
        if not value:
            raise RosterValidationError(f"missing {column}")
        values[column] = value

    try:
        year = int(values["year"])
    except ValueError:
        raise RosterValidationError(f"year is not an integer: {values['year']!r}")

    try:
        lat = float(values["lat"])
        lon = float(values["lon"])
    except ValueError:
        raise RosterValidationError(
            f"non-numeric coordinates: lat={values['lat']!r}, lon={values['lon']!r}"
        )

    if not -90.0 <= lat <= 90.0:
        raise RosterValidationError(f"lat out of range: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise RosterValidationError(f"lon out of range: {lon}")

    responses = {}
    for column in response_columns:
        value = row.get(column)
        value = value.strip() if value is not None else None
        responses[column] = value or None

    return SiteYearRecord(
        site=values["site"],
        year=year,
        lat=lat,
        lon=lon,
        responses=responses,
    )


def load_roster(path: Path) -> RosterLoadResult:
    """
    Load and validate a site-year roster

    Invalid rows are rejected with a reason; remaining rows are kept.
    Duplicate (site, year) pairs keep the first occurrence.

    Args:
        path: Path to roster CSV

    Returns:
        RosterLoadResult

    Raises:
        ValueError: If a required column is absent from the header
    """
    path = Path(path)
    logger.info(f"Loading roster from {path}")

    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        header = [c.strip() for c in (reader.fieldnames or [])]
        reader.fieldnames = header

        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            raise ValueError(f"Roster {path} is missing required columns: {missing}")

        response_columns = [c for c in header if c not in REQUIRED_COLUMNS]

        records: List[SiteYearRecord] = []
        rejected: List[RejectedRow] = []
        seen = set()

        # Header is line 1
        for line_number, row in enumerate(reader, start=2):
            try:
                record = parse_row(row, response_columns)
            except RosterValidationError as e:
                logger.warning(f"Rejected roster line {line_number}: {e}")
                rejected.append(RejectedRow(line_number, dict(row), str(e)))
                continue

            if record.key in seen:
                reason = f"duplicate site-year {record.site!r} {record.year}"
                logger.warning(f"Rejected roster line {line_number}: {reason}")
                rejected.append(RejectedRow(line_number, dict(row), reason))
                continue

            seen.add(record.key)
            records.append(record)

    logger.info(
        f"Roster loaded: {len(records)} site-years accepted, "
        f"{len(rejected)} rejected"
    )
    return RosterLoadResult(records, rejected, response_columns)


def response_column_types(result: RosterLoadResult) -> Dict[str, str]:
    """
    Infer a type for each carried response column

    A column is "double" when every non-blank value parses as a float,
    otherwise "string".
    """
    types = {}
    for column in result.response_columns:
        column_type = "double"
        for record in result.records:
            value = record.responses.get(column)
            if value is None:
                continue
            try:
                float(value)
            except ValueError:
                column_type = "string"
                break
        types[column] = column_type
    return types
