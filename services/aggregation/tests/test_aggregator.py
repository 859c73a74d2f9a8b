"""
Tests for the monthly feature aggregator.
"""
import pytest

from pyspark.sql.types import DateType, DoubleType, IntegerType, StringType

from aggregation.src.aggregator import MonthlyFeatureAggregator, daily_csv_schema
from aggregation.src.feature_schema import FeatureSpec


@pytest.fixture
def aggregator(spark):
    return MonthlyFeatureAggregator(FeatureSpec.reference(), spark)


def test_altus_january_scenario(aggregator, make_daily, rows_factory, weather_values):
    """mean_tmax_Jan == round(T, 1) and sum_prcp_Jan == round(P, 1)"""
    daily = make_daily(rows_factory("Altus, OK", 1980, lat=34.64, lon=-99.33))
    t = sum(weather_values["tmax"](d) for d in range(1, 32)) / 31
    p = sum(weather_values["prcp"](d) for d in range(1, 32))

    result = aggregator.aggregate(daily)
    row = result.features.filter("site = 'Altus, OK' AND year = 1980").collect()[0]

    assert row["mean_tmax_Jan"] == round(t, 1)
    assert row["sum_prcp_Jan"] == round(p, 1)
    assert row["lat"] == 34.64
    assert row["lon"] == -99.33


def test_column_count_and_layout(aggregator, sample_daily_data):
    """6 variables x 12 months = 72 derived columns after identifiers"""
    result = aggregator.aggregate(sample_daily_data)

    columns = result.features.columns
    assert columns[:5] == ["site", "year", "lat", "lon", "strength"]
    assert len(columns) == 5 + 72
    assert result.report.feature_columns == 72
    assert result.report.buckets == list(range(1, 13))
    assert "swe" not in " ".join(columns)
    assert "date" not in columns


def test_one_row_per_site_year(aggregator, sample_daily_data):
    result = aggregator.aggregate(sample_daily_data)

    keys = [(r["site"], r["year"]) for r in result.features.select("site", "year").collect()]

    assert keys == [("Altus, OK", 1980), ("Lubbock, TX", 1981)]
    assert result.report.site_years_in == 2
    assert result.report.site_years_out == 2
    assert result.report.status == "success"


def test_bucket_aggregates_one_record_per_month(aggregator, sample_daily_data):
    result = aggregator.aggregate(sample_daily_data)

    assert result.bucket_aggregates.count() == 24
    assert result.bucket_aggregates.select("site", "year", "bucket").distinct().count() == 24


def test_missing_month_is_null_not_zero(aggregator, make_daily, rows_factory):
    rows = rows_factory("A", 1981) + rows_factory("B", 1981, skip_months=(6,))
    result = aggregator.aggregate(make_daily(rows))

    b = result.features.filter("site = 'B'").collect()[0]

    assert b["sum_prcp_Jun"] is None
    assert b["mean_tmax_Jun"] is None
    assert b["sum_prcp_Jul"] is not None
    counts = aggregator.missing_feature_counts(result)
    assert counts["sum_prcp_Jun"] == 1
    assert counts["sum_prcp_Jan"] == 0


def test_columns_follow_months_present(aggregator, make_daily, rows_factory):
    """V x M columns where M counts months present across the data"""
    rows = rows_factory("A", 1981, ydays=range(1, 60))  # Jan and Feb only
    result = aggregator.aggregate(make_daily(rows))

    assert result.report.buckets == [1, 2]
    assert result.report.feature_columns == 12
    assert len(result.features.columns) == 5 + 12


def test_idempotent(aggregator, sample_daily_data):
    first = aggregator.aggregate(sample_daily_data)
    second = aggregator.aggregate(sample_daily_data)

    assert first.features.schema == second.features.schema
    assert first.features.collect() == second.features.collect()


def test_invalid_site_year_excluded_and_reported(aggregator, make_daily, rows_factory):
    """A bad day of year fails that site-year only"""
    rows = rows_factory("good", 1981) + rows_factory("bad", 1981, ydays=[1, 2, 366])
    result = aggregator.aggregate(make_daily(rows))

    sites = [r["site"] for r in result.features.select("site").collect()]

    assert sites == ["good"]
    assert result.report.site_years_in == 2
    assert result.report.site_years_out == 1
    assert result.report.status == "partial"
    failure = result.report.failures[0]
    assert (failure.site, failure.year) == ("bad", 1981)
    assert result.report.to_dict()["failures"][0]["reason"] == failure.reason


def test_missing_variable_column_is_fatal(aggregator, sample_daily_data):
    with pytest.raises(ValueError, match="vp"):
        aggregator.aggregate(sample_daily_data.drop("vp"))


def test_custom_spec_quarterly(spark, sample_daily_data):
    spec = FeatureSpec(aggregations={"prcp": ("sum",), "tmax": ("max",)}, bucket="quarter", decimal_places=2)
    result = MonthlyFeatureAggregator(spec, spark).aggregate(sample_daily_data)

    assert result.report.feature_columns == 8
    assert "sum_prcp_Q1" in result.features.columns
    assert "max_tmax_Q4" in result.features.columns


def test_load_daily_dataset_parquet(aggregator, spark, sample_daily_data, tmp_path):
    """The persisted daily dataset round-trips"""
    path = str(tmp_path / "daily")
    sample_daily_data.coalesce(1).write.parquet(path)

    loaded = aggregator.load_daily_dataset(path, "parquet")

    assert loaded.schema == sample_daily_data.schema
    assert sorted(loaded.collect()) == sorted(sample_daily_data.collect())


def test_load_daily_dataset_unknown_format(aggregator):
    with pytest.raises(ValueError):
        aggregator.load_daily_dataset("somewhere", "xlsx")


def test_daily_csv_schema():
    schema = daily_csv_schema(
        ["site", "year", "lat", "lon", "strength", "yday", "date", "tmax", "prcp"],
        {"tmax", "prcp"},
    )
    types = {f.name: f.dataType for f in schema.fields}

    assert schema.fieldNames()[:4] == ["site", "year", "lat", "lon"]
    assert types["site"] == StringType()
    assert types["year"] == IntegerType()
    assert types["yday"] == IntegerType()
    assert types["date"] == DateType()
    assert types["tmax"] == DoubleType()
    assert types["strength"] == StringType()


def test_load_daily_dataset_csv_keeps_numeric_site_ids(aggregator, make_daily, rows_factory, tmp_path):
    """A numeric-looking site id survives a CSV daily dataset unchanged"""
    daily = make_daily(rows_factory("001", 1981) + rows_factory("1", 1981))
    path = str(tmp_path / "daily_csv")
    daily.coalesce(1).write.option("header", True).option("dateFormat", "yyyy-MM-dd").csv(path)

    loaded = aggregator.load_daily_dataset(path, "csv")
    types = dict(loaded.dtypes)

    assert types["site"] == "string"
    assert types["year"] == "int"
    assert types["yday"] == "int"
    assert types["date"] == "date"
    assert types["tmax"] == "double"

    rows = aggregator.aggregate(loaded).features.collect()

    assert [(r["site"], r["year"]) for r in rows] == [("001", 1981), ("1", 1981)]
