"""
Unified daily dataset writer

Builds a typed Spark DataFrame from fetched site-year rows and persists
it as the hand-off artifact for the aggregation stage.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

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

from .fetcher import FetchReport

logger = logging.getLogger(__name__)


SUPPORTED_FORMATS = ("parquet", "csv")


def build_daily_schema(
    variables: Sequence[str],
    response_types: Optional[Dict[str, str]] = None,
) -> StructType:
    """
    Schema for the unified daily dataset

    Args:
        variables: Weather variable columns, in order
        response_types: Carried response column -> "double" or "string"

    Returns:
        StructType with identifiers, responses, yday, date and variables
    """
    fields = [
        StructField("site", StringType(), True),
        StructField("year", IntegerType(), True),
        StructField("lat", DoubleType(), True),
        StructField("lon", DoubleType(), True),
    ]
    for column, column_type in (response_types or {}).items():
        spark_type = DoubleType() if column_type == "double" else StringType()
        fields.append(StructField(column, spark_type, True))
    fields.append(StructField("yday", IntegerType(), True))
    fields.append(StructField("date", DateType(), True))
    for variable in variables:
        fields.append(StructField(variable, DoubleType(), True))
    return StructType(fields)


def _coerce(value: Any, data_type) -> Any:
    if value is None:
        return None
    if isinstance(data_type, DoubleType):
        return float(value)
    if isinstance(data_type, IntegerType):
        return int(value)
    if isinstance(data_type, StringType):
        return str(value)
    return value


class DailyDatasetWriter:
    """Write the unified daily dataset to parquet or CSV"""

    def __init__(
        self,
        spark: SparkSession,
        output_path: str,
        output_format: str = "parquet",
    ):
        """
        Initialize daily dataset writer

        Args:
            spark: SparkSession instance
            output_path: Destination directory
            output_format: 'parquet' or 'csv'
        """
        if output_format not in SUPPORTED_FORMATS:
            raise ValueError(
                f"Unknown output format: {output_format}. "
                f"Must be one of {list(SUPPORTED_FORMATS)}"
            )
        self.spark = spark
        self.output_path = str(output_path).rstrip("/")
        self.output_format = output_format
        self.schema: Optional[StructType] = None

        logger.info(
            f"Initialized DailyDatasetWriter: format={output_format}, "
            f"path={self.output_path}"
        )

    def to_dataframe(self, rows: List[Dict[str, Any]], schema: StructType) -> DataFrame:
        """Create a DataFrame ordered by site, year and day of year"""
        data = [
            tuple(_coerce(row.get(f.name), f.dataType) for f in schema.fields)
            for row in rows
        ]
        df = self.spark.createDataFrame(data, schema)
        return df.orderBy("site", "year", "yday")

    def write(
        self,
        report: FetchReport,
        variables: Sequence[str],
        response_types: Optional[Dict[str, str]] = None,
        mode: str = "overwrite",
    ) -> Dict[str, Any]:
        """
        Write fetched rows

        Args:
            report: Fetch report holding ordered daily rows
            variables: Weather variable columns
            response_types: Carried response column types
            mode: Write mode ('overwrite', 'error')

        Returns:
            Dictionary with write statistics
        """
        schema = build_daily_schema(variables, response_types)
        self.schema = schema
        df = self.to_dataframe(report.rows, schema)

        logger.info(
            f"Writing {len(report.rows)} rows for {len(report.succeeded)} "
            f"site-years to {self.output_path}"
        )

        try:
            writer = df.coalesce(1).write.mode(mode)
            if self.output_format == "parquet":
                writer.parquet(self.output_path, compression="snappy")
            else:
                writer.option("header", True).option("dateFormat", "yyyy-MM-dd").csv(self.output_path)

            stats = {
                "output_path": self.output_path,
                "format": self.output_format,
                "rows_written": len(report.rows),
                "site_years": len(report.succeeded),
                "columns": [f.name for f in schema.fields],
                "mode": mode,
                "written_at": datetime.utcnow().isoformat(),
            }

            logger.info(f"Write complete: {stats['rows_written']} rows")
            return stats

        except Exception as e:
            logger.error(f"Failed to write daily dataset: {e}")
            raise

    def validate_output(self) -> Dict[str, Any]:
        """
        Validate written output

        Reads the dataset back and computes basic statistics.
        """
        logger.info(f"Validating output at {self.output_path}")

        if self.output_format == "parquet":
            df = self.spark.read.parquet(self.output_path)
        else:
            if self.schema is None:
                raise ValueError("CSV output can only be validated after write()")
            df = (
                self.spark.read
                .option("header", True)
                .option("dateFormat", "yyyy-MM-dd")
                .schema(self.schema)
                .csv(self.output_path)
            )

        metrics = {
            "output_path": self.output_path,
            "total_rows": df.count(),
            "distinct_site_years": df.select("site", "year").distinct().count(),
            "columns": df.columns,
        }

        if "date" in df.columns:
            date_range = df.agg(
                F.min("date").alias("min_date"),
                F.max("date").alias("max_date"),
            ).collect()[0]
            metrics["date_range"] = {
                "min": date_range["min_date"],
                "max": date_range["max_date"],
            }

        logger.info(
            f"Validation metrics: {metrics['total_rows']} rows, "
            f"{metrics['distinct_site_years']} site-years"
        )
        return metrics
