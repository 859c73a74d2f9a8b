"""
Main aggregation logic for computing bucketed weather features from the
unified daily dataset.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F
from pyspark.sql.types import (
    DateType,
    DoubleType,
    IntegerType,
    StringType,
    StructField,
    StructType,
)

from .feature_calculators import (
    BUCKET_COLUMN,
    DERIVED_COLUMNS,
    KEY_COLUMNS,
    add_calendar_columns,
    calculate_bucket_aggregates,
    carry_identifiers,
    find_invalid_site_years,
    pivot_to_wide,
    round_features,
)
from .feature_schema import FeatureColumn, FeatureSpec


logger = logging.getLogger(__name__)

DAILY_COLUMN_TYPES = {
    "site": StringType(),
    "year": IntegerType(),
    "lat": DoubleType(),
    "lon": DoubleType(),
    "yday": IntegerType(),
    "date": DateType(),
}


def daily_csv_schema(columns: Sequence[str], variables: Sequence[str]) -> StructType:
    """
    Explicit schema for a daily dataset CSV with the given header.

    Weather variables are doubles; carried response columns stay strings.
    """
    fields = []
    for column in columns:
        if column in DAILY_COLUMN_TYPES:
            data_type = DAILY_COLUMN_TYPES[column]
        elif column in variables:
            data_type = DoubleType()
        else:
            data_type = StringType()
        fields.append(StructField(column, data_type, True))
    return StructType(fields)


@dataclass
class AggregationFailure:
    """A site-year excluded from the wide table."""
    site: str
    year: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"site": self.site, "year": self.year, "reason": self.reason}


@dataclass
class AggregationReport:
    site_years_in: int
    site_years_out: int
    feature_columns: int
    buckets: List[int]
    aggregations: Dict[str, List[str]]
    failures: List[AggregationFailure] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.site_years_out == 0:
            return "failed"
        return "partial" if self.failures else "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "site_years_in": self.site_years_in,
            "site_years_out": self.site_years_out,
            "feature_columns": self.feature_columns,
            "buckets": self.buckets,
            "aggregations": self.aggregations,
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class AggregationResult:
    features: DataFrame
    bucket_aggregates: DataFrame
    columns: List[FeatureColumn]
    report: AggregationReport


class MonthlyFeatureAggregator:
    """Aggregates daily site-year weather into a wide bucketed feature table."""

    def __init__(self, spec: FeatureSpec, spark: SparkSession):
        """
        Initialize aggregator.

        Args:
            spec: Declared feature configuration
            spark: Active SparkSession
        """
        self.spec = spec
        self.spark = spark

    def load_daily_dataset(self, path: str, input_format: str = "parquet") -> DataFrame:
        """
        Load the unified daily dataset written by the fetch stage.

        Args:
            path: Dataset directory
            input_format: 'parquet' or 'csv'
        """
        if input_format == "parquet":
            return self.spark.read.parquet(path)
        if input_format == "csv":
            header = self.spark.read.option("header", True).csv(path).columns
            variables = set(self.spec.weather_columns) | set(self.spec.variables)
            schema = daily_csv_schema(header, variables)
            return (
                self.spark.read
                .option("header", True)
                .option("dateFormat", "yyyy-MM-dd")
                .schema(schema)
                .csv(path)
            )
        raise ValueError(f"Unknown input format: {input_format}")

    def _check_columns(self, df: DataFrame):
        required = KEY_COLUMNS + ["yday"] + self.spec.variables
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValueError(f"Daily dataset is missing columns: {missing}")

    def aggregate(self, daily_df: DataFrame) -> AggregationResult:
        """
        Compute the wide feature table.

        Steps: derive calendar columns, exclude site-years that cannot be
        bucketed, aggregate per (site, year, bucket), carry identifiers,
        pivot through the explicit feature schema, round, order.

        Args:
            daily_df: Unified daily dataset

        Returns:
            AggregationResult with the wide table and a failure report

        Raises:
            ValueError: If configured variables are absent from the dataset
        """
        self._check_columns(daily_df)

        identifier_columns = self.spec.identifier_columns(daily_df.columns, derived=DERIVED_COLUMNS)
        df = add_calendar_columns(daily_df, self.spec.bucket)

        site_years_in = df.select(*KEY_COLUMNS).distinct().count()

        invalid = find_invalid_site_years(df).orderBy(*KEY_COLUMNS).collect()
        failures = [AggregationFailure(r["site"], r["year"], r["reason"]) for r in invalid]
        for failure in failures:
            logger.error(
                f"Excluding {failure.site} {failure.year} from features: {failure.reason}"
            )

        if failures:
            invalid_keys = self.spark.createDataFrame(
                [(f.site, f.year) for f in failures],
                df.select(*KEY_COLUMNS).schema,
            )
            df = df.join(invalid_keys, on=KEY_COLUMNS, how="left_anti")

        bucket_df = calculate_bucket_aggregates(df, self.spec)

        buckets = sorted(
            r[BUCKET_COLUMN]
            for r in bucket_df.select(BUCKET_COLUMN).distinct().collect()
            if r[BUCKET_COLUMN] is not None
        )
        columns = self.spec.feature_columns(buckets)
        logger.info(
            f"Building {len(columns)} feature columns from "
            f"{len(self.spec.bucket_pairs())} variable/statistic pairs x {len(buckets)} buckets"
        )

        carried_df = carry_identifiers(df, identifier_columns)
        wide = pivot_to_wide(bucket_df, carried_df, columns)
        wide = round_features(wide, columns, self.spec.decimal_places)
        wide = wide.select(
            *identifier_columns, *[c.name for c in columns]
        ).orderBy(*KEY_COLUMNS)

        site_years_out = wide.count()

        report = AggregationReport(
            site_years_in=site_years_in,
            site_years_out=site_years_out,
            feature_columns=len(columns),
            buckets=buckets,
            aggregations={v: list(s) for v, s in self.spec.as_table().items()},
            failures=failures,
        )

        logger.info(
            f"Aggregation produced {site_years_out}/{site_years_in} site-years, "
            f"{len(failures)} excluded"
        )

        return AggregationResult(
            features=wide,
            bucket_aggregates=bucket_df.orderBy(*KEY_COLUMNS, BUCKET_COLUMN),
            columns=columns,
            report=report,
        )

    def missing_feature_counts(self, result: AggregationResult) -> Dict[str, int]:
        """Null count per feature column, e.g. for buckets with no observations."""
        if not result.columns:
            return {}
        row = result.features.agg(
            *[F.sum(F.col(c.name).isNull().cast("int")).alias(c.name) for c in result.columns]
        ).collect()[0]
        return {c.name: int(row[c.name] or 0) for c in result.columns}
