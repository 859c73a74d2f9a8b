"""
Fetch orchestrator

Main entry point for the site-year weather fetch stage.
Coordinates roster loading, API fetching and dataset writing.
"""
import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from pyspark.sql import SparkSession

from .config import IngestionConfig
from .daymet_client import DaymetClient
from .fetcher import SiteYearFetcher
from .roster import load_roster, response_column_types
from .writer import DailyDatasetWriter

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def report_path_for(output_path: str) -> Path:
    """Location of the JSON fetch report written beside the dataset."""
    return Path(str(output_path).rstrip("/") + ".report.json")


class FetchOrchestrator:
    """Orchestrates roster -> API -> unified daily dataset"""

    def __init__(
        self,
        config: IngestionConfig,
        spark: SparkSession,
        client: Optional[DaymetClient] = None,
    ):
        """
        Initialize orchestrator

        Args:
            config: Ingestion configuration
            spark: SparkSession instance
            client: Optional pre-built Daymet client
        """
        self.config = config
        self.spark = spark
        self.client = client or DaymetClient(config.daymet)
        self.fetcher = SiteYearFetcher(self.client, config.fetch)
        logger.info("FetchOrchestrator initialized")

    def run(self, roster_path: str, output_path: str) -> Dict[str, Any]:
        """
        Run the fetch stage end-to-end

        Args:
            roster_path: Path to roster CSV
            output_path: Destination for the unified daily dataset

        Returns:
            Run metrics including status and failure counts
        """
        logger.info(f"Starting fetch: roster={roster_path}, output={output_path}")
        start_time = datetime.utcnow()

        metrics: Dict[str, Any] = {
            "roster_path": str(roster_path),
            "output_path": str(output_path),
            "status": "running",
            "started_at": start_time.isoformat(),
        }

        try:
            roster = load_roster(Path(roster_path))
            metrics["roster_rows_accepted"] = len(roster.records)
            metrics["roster_rows_rejected"] = len(roster.rejected)

            report = self.fetcher.fetch_all(roster.records, rejected=roster.rejected)
            metrics["site_years_succeeded"] = len(report.succeeded)
            metrics["site_years_failed"] = len(report.failures)

            report_path = report_path_for(output_path)
            report_path.parent.mkdir(parents=True, exist_ok=True)
            report_path.write_text(json.dumps(report.to_dict(), indent=2, default=str))
            metrics["report_path"] = str(report_path)
            logger.info(f"Fetch report written to {report_path}")

            if not report.rows:
                logger.error("No site-years fetched successfully; writing an empty dataset")

            # Written even when empty; no stale dataset may remain at output_path
            writer = DailyDatasetWriter(self.spark, output_path, self.config.output_format)
            write_stats = writer.write(
                report,
                variables=self.config.daymet.variables,
                response_types=response_column_types(roster),
            )
            metrics["rows_written"] = write_stats["rows_written"]

            metrics["status"] = report.status

        except Exception as e:
            metrics["status"] = "failed"
            metrics["error"] = str(e)
            logger.error(f"Fetch failed: {e}", exc_info=True)
            raise

        finally:
            end_time = datetime.utcnow()
            metrics["completed_at"] = end_time.isoformat()
            metrics["elapsed_seconds"] = round((end_time - start_time).total_seconds(), 2)

        logger.info(f"Fetch finished with status {metrics['status']}")
        return metrics

    def close(self):
        self.client.close()


def create_spark_session(app_name: str, master: Optional[str] = None) -> SparkSession:
    """
    Create and configure Spark session

    Args:
        app_name: Spark application name
        master: Spark master URL (None for local mode)

    Returns:
        Configured SparkSession
    """
    builder = SparkSession.builder.appName(app_name)
    builder = builder.master(master or "local[*]")
    builder = builder.config("spark.sql.session.timeZone", "UTC")
    builder = builder.config("spark.sql.adaptive.enabled", "true")

    spark = builder.getOrCreate()

    logger.info(f"Spark session created: {spark.version}")
    return spark


def main():
    """Main entry point for CLI"""
    parser = argparse.ArgumentParser(
        description="Fetch one year of daily Daymet weather per roster site-year"
    )
    parser.add_argument("roster", help="Path to roster CSV (year, site, lat, lon, ...)")
    parser.add_argument("output", help="Output path for the unified daily dataset")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Concurrent API requests (default: FETCH_MAX_WORKERS or 4)"
    )
    parser.add_argument(
        "--format",
        choices=["parquet", "csv"],
        default=None,
        help="Output format (default: parquet)"
    )
    parser.add_argument(
        "--spark-master",
        default=None,
        help="Spark master URL (default: local)"
    )

    args = parser.parse_args()

    config = IngestionConfig.from_env()
    if args.workers is not None:
        config.fetch.max_workers = args.workers
    if args.format is not None:
        config.output_format = args.format

    spark = create_spark_session("SiteWeather-Fetch", args.spark_master or config.spark_master)
    orchestrator = FetchOrchestrator(config, spark)

    try:
        metrics = orchestrator.run(args.roster, args.output)

        print("\n" + "=" * 60)
        print("FETCH SUMMARY")
        print("=" * 60)
        print(f"Status:             {metrics['status']}")
        print(f"Roster accepted:    {metrics.get('roster_rows_accepted', 'N/A')}")
        print(f"Roster rejected:    {metrics.get('roster_rows_rejected', 'N/A')}")
        print(f"Site-years fetched: {metrics.get('site_years_succeeded', 'N/A')}")
        print(f"Site-years failed:  {metrics.get('site_years_failed', 'N/A')}")
        print(f"Daily rows written: {metrics.get('rows_written', 'N/A')}")
        print(f"Report:             {metrics.get('report_path', 'N/A')}")
        print(f"Elapsed Time:       {metrics['elapsed_seconds']}s")
        print("=" * 60 + "\n")

        sys.exit(0 if metrics["status"] == "success" else 1)

    except Exception as e:
        logger.error(f"Fetch failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        orchestrator.close()
        spark.stop()


if __name__ == "__main__":
    main()
