"""
Feature schema for bucketed weather aggregates.

Holds the declared {variable -> statistics} table and builds the explicit
mapping from (variable, statistic, bucket) to wide-table column names.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import yaml


SUPPORTED_STATISTICS = ("mean", "sum", "min", "max", "stddev", "median")

BUCKET_LABELS = {
    "month": {
        1: "Jan", 2: "Feb", 3: "Mar", 4: "Apr", 5: "May", 6: "Jun",
        7: "Jul", 8: "Aug", 9: "Sep", 10: "Oct", 11: "Nov", 12: "Dec",
    },
    "quarter": {1: "Q1", 2: "Q2", 3: "Q3", 4: "Q4"},
}

DEFAULT_WEATHER_COLUMNS = ("dayl", "prcp", "srad", "swe", "tmax", "tmin", "vp")

REFERENCE_AGGREGATIONS = {
    "dayl": ("mean",),
    "prcp": ("sum",),
    "srad": ("mean",),
    "tmax": ("mean",),
    "tmin": ("mean",),
    "vp": ("mean",),
}


@dataclass(frozen=True)
class FeatureColumn:
    """One derived wide-table column."""
    variable: str
    statistic: str
    bucket: int
    name: str

    @property
    def bucket_column(self) -> str:
        """Column holding this (statistic, variable) in the bucket-level table."""
        return f"{self.statistic}_{self.variable}"


@dataclass(frozen=True)
class FeatureSpec:
    """
    Declared aggregation configuration.

    Attributes:
        aggregations: variable -> statistics applied per bucket
        bucket: 'month' or 'quarter'
        decimal_places: rounding applied to every derived feature
        column_template: format string with {statistic}, {variable}, {bucket}
        weather_columns: daily weather columns (never treated as identifiers)
    """
    aggregations: Mapping[str, Tuple[str, ...]]
    bucket: str = "month"
    decimal_places: int = 1
    column_template: str = "{statistic}_{variable}_{bucket}"
    weather_columns: Tuple[str, ...] = field(default=DEFAULT_WEATHER_COLUMNS)

    def __post_init__(self):
        if not self.aggregations:
            raise ValueError("At least one variable must be aggregated")
        for variable, statistics in self.aggregations.items():
            if not statistics:
                raise ValueError(f"No statistics configured for {variable}")
            unknown = [s for s in statistics if s not in SUPPORTED_STATISTICS]
            if unknown:
                raise ValueError(
                    f"Unsupported statistics for {variable}: {unknown}. "
                    f"Must be one of {list(SUPPORTED_STATISTICS)}"
                )
        if self.bucket not in BUCKET_LABELS:
            raise ValueError(
                f"Unknown bucket: {self.bucket}. Must be one of {list(BUCKET_LABELS)}"
            )
        if self.decimal_places < 0:
            raise ValueError("decimal_places must be >= 0")
        for key in ("{statistic}", "{variable}", "{bucket}"):
            if key not in self.column_template:
                raise ValueError(f"column_template must contain {key}")

    @classmethod
    def reference(cls) -> "FeatureSpec":
        """Mean for intensity variables, sum for precipitation, monthly, one decimal."""
        return cls(aggregations=dict(REFERENCE_AGGREGATIONS))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeatureSpec":
        raw = data.get("aggregations")
        if not isinstance(raw, Mapping):
            raise ValueError("Feature config must have an 'aggregations' mapping")

        aggregations = {}
        for variable, statistics in raw.items():
            if isinstance(statistics, str):
                statistics = [statistics]
            aggregations[str(variable)] = tuple(str(s) for s in statistics or ())

        weather_columns = tuple(data.get("weather_columns") or DEFAULT_WEATHER_COLUMNS)
        return cls(
            aggregations=aggregations,
            bucket=str(data.get("bucket", "month")),
            decimal_places=int(data.get("decimal_places", 1)),
            column_template=str(data.get("column_template", "{statistic}_{variable}_{bucket}")),
            weather_columns=tuple(str(c) for c in weather_columns),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "FeatureSpec":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Feature config not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Expected YAML mapping at {path}")
        return cls.from_dict(data)

    @property
    def variables(self) -> List[str]:
        return list(self.aggregations)

    def as_table(self) -> Dict[str, Tuple[str, ...]]:
        """The {variable -> statistics} table, for inspection and reporting."""
        return {v: tuple(s) for v, s in self.aggregations.items()}

    def bucket_pairs(self) -> List[Tuple[str, str]]:
        """(variable, statistic) pairs in declaration order."""
        return [(v, s) for v, stats in self.aggregations.items() for s in stats]

    def bucket_label(self, bucket: int) -> str:
        labels = BUCKET_LABELS[self.bucket]
        if bucket not in labels:
            raise ValueError(f"Invalid {self.bucket} number: {bucket}")
        return labels[bucket]

    def column_name(self, variable: str, statistic: str, bucket: int) -> str:
        return self.column_template.format(
            statistic=statistic,
            variable=variable,
            bucket=self.bucket_label(bucket),
        )

    def feature_columns(self, buckets: Iterable[int]) -> List[FeatureColumn]:
        """
        Explicit wide schema for the buckets present in the data.

        Ordered by variable, then statistic, then bucket. Yields
        (number of variable/statistic pairs) x (number of buckets) columns.
        """
        buckets = sorted(set(int(b) for b in buckets))
        columns = [
            FeatureColumn(variable, statistic, bucket, self.column_name(variable, statistic, bucket))
            for variable, statistic in self.bucket_pairs()
            for bucket in buckets
        ]
        names = [c.name for c in columns]
        if len(set(names)) != len(names):
            raise ValueError("column_template produces duplicate feature column names")
        return columns

    def identifier_columns(self, columns: Sequence[str], derived: Iterable[str] = ()) -> List[str]:
        """Columns carried through unchanged: everything except weather, day and derived columns."""
        excluded = set(self.weather_columns) | set(self.aggregations) | {"yday"} | set(derived)
        return [c for c in columns if c not in excluded]
