"""
Orchestration and CLI for bucketed feature aggregation.

This module coordinates the aggregation pipeline:
1. Create Spark session
2. Load the feature configuration (variable -> statistics)
3. Load the unified daily dataset
4. Compute the wide feature table
5. Write the table and the aggregation report
"""
import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from pyspark.sql import SparkSession

from .aggregator import MonthlyFeatureAggregator
from .config import DEFAULT_FEATURES_PATH, AggregationConfig
from .feature_schema import FeatureSpec
from .feature_writer import FeatureTableWriter


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


def load_feature_spec(
    path: Optional[Path] = None, default_path: Path = DEFAULT_FEATURES_PATH
) -> FeatureSpec:
    """
    Load the feature config.

    An explicit path must exist. Without one, the version-controlled default
    is used, or the reference configuration when that file is absent.

    Raises:
        FileNotFoundError: If an explicit path does not exist
    """
    if path is not None:
        logger.info(f"Loading feature config from {path}")
        return FeatureSpec.from_yaml(Path(path))
    if default_path.exists():
        logger.info(f"Loading feature config from {default_path}")
        return FeatureSpec.from_yaml(default_path)
    logger.warning(f"Feature config {default_path} not found, using reference configuration")
    return FeatureSpec.reference()


class AggregationOrchestrator:
    """Orchestrates daily dataset -> wide feature table."""

    def __init__(self, config: AggregationConfig, spec: Optional[FeatureSpec] = None):
        """
        Initialize orchestrator.

        Args:
            config: Configuration object
            spec: Feature configuration (default: loaded from config.features_path)
        """
        self.config = config
        self.spec = spec
        self.spark: SparkSession = None
        self.aggregator: MonthlyFeatureAggregator = None
        self.writer: FeatureTableWriter = None

    def setup_spark(self) -> SparkSession:
        """
        Create and configure a local Spark session.

        Returns:
            Configured SparkSession
        """
        logger.info("Initializing Spark session...")

        builder = SparkSession.builder.appName(self.config.spark_app_name)
        builder.config("spark.master", self.config.spark_master)
        builder.config("spark.sql.shuffle.partitions", self.config.shuffle_partitions)
        builder.config("spark.sql.session.timeZone", "UTC")

        spark = builder.getOrCreate()

        logger.info(f"Spark session created: {spark.version}")

        return spark

    def setup_components(self, spark: Optional[SparkSession] = None):
        """Initialize all pipeline components."""
        self.spark = spark or self.setup_spark()
        if self.spec is None:
            self.spec = load_feature_spec(self.config.features_path)
        logger.info(f"Aggregations: {self.spec.as_table()}")
        self.aggregator = MonthlyFeatureAggregator(self.spec, self.spark)
        self.writer = FeatureTableWriter(self.config.output_format)

    def run_aggregation(self, daily_path: str, output_path: str) -> Dict[str, Any]:
        """
        Run the complete aggregation stage.

        Args:
            daily_path: Unified daily dataset written by the fetch stage
            output_path: Destination for the wide feature table

        Returns:
            Dictionary with pipeline metrics and status
        """
        start_time = time.time()

        logger.info(f"Starting aggregation: {daily_path} -> {output_path}")

        metrics: Dict[str, Any] = {
            "daily_path": str(daily_path),
            "output_path": str(output_path),
            "bucket": self.spec.bucket,
            "status": "running",
            "start_time": datetime.utcnow().isoformat(),
        }

        try:
            daily_df = self.aggregator.load_daily_dataset(daily_path, self.config.input_format)

            result = self.aggregator.aggregate(daily_df)
            metrics.update(FeatureTableWriter.summary(result.report))

            written_count = self.writer.write(result.features, output_path)
            metrics["written_count"] = written_count

            report_path = self.writer.write_report(result.report, output_path)
            metrics["report_path"] = str(report_path)

            missing = self.aggregator.missing_feature_counts(result)
            metrics["missing_feature_values"] = sum(missing.values())

            elapsed_time = time.time() - start_time
            metrics["elapsed_seconds"] = round(elapsed_time, 2)
            metrics["status"] = result.report.status
            metrics["end_time"] = datetime.utcnow().isoformat()

            logger.info(
                f"Aggregation completed in {elapsed_time:.2f}s: "
                f"{written_count} rows, {result.report.feature_columns} feature columns"
            )

        except Exception as e:
            elapsed_time = time.time() - start_time
            metrics["elapsed_seconds"] = round(elapsed_time, 2)
            metrics["status"] = "failed"
            metrics["error"] = str(e)
            metrics["end_time"] = datetime.utcnow().isoformat()

            logger.error(f"Aggregation failed: {e}", exc_info=True)
            raise

        return metrics

    def cleanup(self):
        """Clean up resources."""
        if self.spark:
            logger.info("Stopping Spark session...")
            self.spark.stop()


def main():
    """CLI entry point for aggregation service."""
    parser = argparse.ArgumentParser(
        description="Aggregate daily site-year weather into a wide monthly feature table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Monthly features with the version-controlled config
  sitewx-aggregate data/daily data/features

  # Custom feature config, parquet output
  sitewx-aggregate data/daily data/features --features my_features.yaml --output-format parquet
        """
    )

    parser.add_argument("daily_path", help="Unified daily dataset from the fetch stage")
    parser.add_argument("output_path", help="Output path for the wide feature table")
    parser.add_argument(
        "--features",
        type=Path,
        default=None,
        help="Feature config YAML (default: config/features.yaml)"
    )
    parser.add_argument(
        "--input-format",
        choices=["parquet", "csv"],
        default=None,
        help="Format of the daily dataset (default: parquet)"
    )
    parser.add_argument(
        "--output-format",
        choices=["csv", "parquet"],
        default=None,
        help="Format of the feature table (default: csv)"
    )

    args = parser.parse_args()

    config = AggregationConfig()
    if args.features is not None:
        config.features_path = args.features
    if args.input_format is not None:
        config.input_format = args.input_format
    if args.output_format is not None:
        config.output_format = args.output_format

    orchestrator = AggregationOrchestrator(config)

    try:
        orchestrator.setup_components()

        metrics = orchestrator.run_aggregation(args.daily_path, args.output_path)

        print("\n" + "=" * 60)
        print("AGGREGATION SUMMARY")
        print("=" * 60)
        print(f"Bucket:            {metrics['bucket']}")
        print(f"Status:            {metrics['status']}")
        print(f"Site-years in:     {metrics.get('site_years_in', 'N/A')}")
        print(f"Site-years out:    {metrics.get('site_years_out', 'N/A')}")
        print(f"Feature columns:   {metrics.get('feature_columns', 'N/A')}")
        print(f"Failed site-years: {metrics.get('failed_site_years', 'N/A')}")
        print(f"Missing values:    {metrics.get('missing_feature_values', 'N/A')}")
        print(f"Report:            {metrics.get('report_path', 'N/A')}")
        print(f"Elapsed Time:      {metrics['elapsed_seconds']}s")
        print("=" * 60 + "\n")

        sys.exit(0 if metrics["status"] == "success" else 1)

    except Exception as e:
        logger.error(f"Aggregation failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        orchestrator.cleanup()


if __name__ == "__main__":
    main()
