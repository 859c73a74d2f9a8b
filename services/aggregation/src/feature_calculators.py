"""
Feature calculators for bucketed weather aggregations.

Each calculator is a pure PySpark transform over the unified daily
dataset (one row per site, year, day of year).
"""
from typing import Callable, Dict, List, Sequence

from pyspark.sql import Column, DataFrame
from pyspark.sql import functions as F

from .feature_schema import FeatureColumn, FeatureSpec


KEY_COLUMNS = ["site", "year"]
BUCKET_COLUMN = "bucket"
DERIVED_COLUMNS = ("date", BUCKET_COLUMN, "day_valid", "days_in_year")

# Statistic name -> Spark aggregate. All of these ignore nulls and return
# null when a bucket has no non-null values.
STATISTIC_FUNCTIONS: Dict[str, Callable[[str], Column]] = {
    "mean": F.mean,
    "sum": F.sum,
    "min": F.min,
    "max": F.max,
    "stddev": F.stddev,
    "median": lambda c: F.percentile_approx(c, 0.5),
}


def add_calendar_columns(df: DataFrame, bucket: str = "month") -> DataFrame:
    """
    Derive calendar date and bucket number from (year, yday).

    Adds:
    - days_in_year: 365 or 366
    - day_valid: 1 <= yday <= days_in_year
    - date: Jan 1 of year plus (yday - 1) days, null when day_valid is false
    - bucket: month (1-12) or quarter (1-4) of date
    """
    year_start = F.make_date(F.col("year"), F.lit(1), F.lit(1))
    df = df.withColumn(
        "days_in_year",
        F.dayofyear(F.make_date(F.col("year"), F.lit(12), F.lit(31))),
    )
    df = df.withColumn(
        "day_valid",
        F.col("yday").isNotNull()
        & (F.col("yday") >= 1)
        & (F.col("yday") <= F.col("days_in_year")),
    )
    df = df.withColumn(
        "date",
        F.when(F.col("day_valid"), F.date_add(year_start, (F.col("yday") - 1).cast("int"))),
    )

    if bucket == "month":
        bucket_expr = F.month("date")
    elif bucket == "quarter":
        bucket_expr = F.quarter("date")
    else:
        raise ValueError(f"Unknown bucket: {bucket}")

    return df.withColumn(BUCKET_COLUMN, bucket_expr)


def find_invalid_site_years(df: DataFrame) -> DataFrame:
    """
    Site-years whose daily rows cannot be bucketed.

    Expects the output of add_calendar_columns. Returns one row per failing
    (site, year) with a human-readable reason.
    """
    checks = df.groupBy(*KEY_COLUMNS).agg(
        F.sum(F.when(~F.coalesce(F.col("day_valid"), F.lit(False)), 1).otherwise(0)).alias("invalid_days"),
        F.count("*").alias("n_rows"),
        F.countDistinct("yday").alias("n_days"),
    )

    return checks.filter(
        (F.col("invalid_days") > 0) | (F.col("n_rows") != F.col("n_days"))
    ).select(
        *KEY_COLUMNS,
        F.when(
            F.col("invalid_days") > 0,
            F.concat(F.lit("invalid day of year on "), F.col("invalid_days").cast("string"), F.lit(" row(s)")),
        ).otherwise(
            F.concat(
                F.lit("duplicate day of year ("),
                F.col("n_rows").cast("string"),
                F.lit(" rows, "),
                F.col("n_days").cast("string"),
                F.lit(" distinct days)"),
            )
        ).alias("reason"),
    )


def calculate_bucket_aggregates(df: DataFrame, spec: FeatureSpec) -> DataFrame:
    """
    One row per (site, year, bucket) with each configured statistic.

    Output columns: site, year, bucket, then {statistic}_{variable} for each
    declared pair.
    """
    aggregates = [
        STATISTIC_FUNCTIONS[statistic](variable).alias(f"{statistic}_{variable}")
        for variable, statistic in spec.bucket_pairs()
    ]
    return df.groupBy(*KEY_COLUMNS, BUCKET_COLUMN).agg(*aggregates)


def carry_identifiers(df: DataFrame, identifier_columns: Sequence[str]) -> DataFrame:
    """One row per (site, year) with carried columns (lat, lon, responses)."""
    carried = [c for c in identifier_columns if c not in KEY_COLUMNS]
    return df.groupBy(*KEY_COLUMNS).agg(
        *[F.first(c, ignorenulls=True).alias(c) for c in carried]
    )


def pivot_to_wide(
    bucket_df: DataFrame,
    carried_df: DataFrame,
    columns: List[FeatureColumn],
) -> DataFrame:
    """
    Spread bucket aggregates into one row per (site, year).

    Each FeatureColumn becomes a conditional aggregate over its bucket, so
    a site-year with no data in a bucket gets nulls for that bucket.
    """
    wide = bucket_df.groupBy(*KEY_COLUMNS).agg(
        *[
            F.max(F.when(F.col(BUCKET_COLUMN) == c.bucket, F.col(c.bucket_column))).alias(c.name)
            for c in columns
        ]
    )
    return carried_df.join(wide, on=KEY_COLUMNS, how="left")


def round_features(df: DataFrame, columns: List[FeatureColumn], decimal_places: int) -> DataFrame:
    """Round derived feature columns only; identifier columns are untouched."""
    for c in columns:
        df = df.withColumn(c.name, F.round(F.col(c.name), decimal_places))
    return df
