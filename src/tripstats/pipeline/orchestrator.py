# ========================
# src/tripstats/pipeline/orchestrator.py
# ========================

"""
Pipeline Orchestrator Module

Runs load, clean, enrich, filter and aggregate in order and saves the
summary tables.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .ingestion import TripLoader, discover_trip_files
from .cleaning import TripCleaner
from .enrichment import TripEnricher
from .filtering import RideLengthFilter
from .transformation import TripAggregator
from .storage import DataSaver
from .errors import IngestError
from ..utils.performance_monitor import monitor_performance
from ..utils.config import Config

logger = logging.getLogger(__name__)


class TripPipeline:
    """
    Orchestrates the trip pipeline. Each stage consumes the full output of
    the previous one; nothing is written unless every stage succeeds.
    """

    def __init__(self,
                 input_dir: Optional[str] = None,
                 output_dir: Optional[str] = None,
                 config: Optional[Config] = None):
        """
        Initialize the trip pipeline.

        Args:
            input_dir (str): Directory of trip CSV files (defaults to config)
            output_dir (str): Directory for output files (defaults to config)
            config (Config): Configuration object
        """
        self.config = config or Config()
        self.input_dir = input_dir or self.config.INPUT_DIR
        self.output_dir = output_dir or self.config.OUTPUT_DIR

        self.loader = TripLoader(
            self.input_dir,
            pattern=self.config.FILE_PATTERN,
            chunk_size=self.config.CHUNK_SIZE
        )
        self.cleaner = TripCleaner()
        self.enricher = TripEnricher(timezone_name=self.config.TRIP_TIMEZONE or None)
        self.ride_filter = RideLengthFilter(max_minutes=self.config.MAX_RIDE_LENGTH_MINUTES)
        self.aggregator = TripAggregator(top_stations_limit=self.config.TOP_STATIONS_LIMIT)

        logger.info("TripPipeline initialized:")
        logger.info(f"  Input: {self.input_dir} ({self.config.FILE_PATTERN})")
        logger.info(f"  Output: {self.output_dir}")

    def run(self) -> Dict[str, Any]:
        """
        Execute the complete pipeline from start to finish.

        Returns:
            dict: Summary of processing results and saved files

        Raises:
            IngestError: If the input files are missing or malformed
        """
        logger.info(f"Starting trip pipeline for '{self.input_dir}'...")

        with monitor_performance("TripPipeline") as monitor:
            raw_rows = self.loader.load(monitor)
            monitor.add_checkpoint('load', self.loader.get_statistics())

            cleaned = self.cleaner.clean(raw_rows)
            del raw_rows
            monitor.add_checkpoint('clean', {'records': len(cleaned)})

            enriched = self.enricher.enrich(cleaned)
            del cleaned
            monitor.add_checkpoint('enrich', {'records': len(enriched)})

            trips = self.ride_filter.apply(enriched)
            del enriched
            monitor.add_checkpoint('filter', {'records': len(trips)})

            tables = self.aggregator.aggregate(trips)
            monitor.add_checkpoint('aggregate', self.aggregator.get_aggregation_summary())

            logger.info("Saving summary tables...")
            summary = self._get_processing_stats()
            saved_files = DataSaver(self.output_dir).save_all_data(tables, summary)
            monitor.add_checkpoint('save')

        results = {
            'pipeline_status': 'completed',
            'input_dir': str(self.input_dir),
            'output_directory': str(self.output_dir),
            'saved_files': saved_files,
            'processing_stats': summary,
            'data_quality_stats': self.cleaner.get_statistics(),
            'performance': monitor.summary,
        }

        logger.info("Pipeline finished successfully.")
        self._log_final_summary(results)
        return results

    def _get_processing_stats(self) -> Dict[str, Any]:
        """Counters from every stage, as written to pipeline_summary.json."""
        return {
            'loading': self.loader.get_statistics(),
            'cleaning': self.cleaner.get_statistics(),
            'enrichment': self.enricher.get_statistics(),
            'filtering': self.ride_filter.get_statistics(),
            'aggregation': self.aggregator.get_aggregation_summary(),
            'records_processed': self.aggregator.records_processed,
        }

    def _log_final_summary(self, results: Dict[str, Any]) -> None:
        logger.info("=" * 60)
        logger.info("PIPELINE EXECUTION SUMMARY")
        logger.info("=" * 60)

        stats = results['processing_stats']
        logger.info(f"Input directory: {results['input_dir']}")
        logger.info(f"Rows loaded: {stats['loading']['rows_loaded']:,}")
        logger.info(f"Rides aggregated: {stats['records_processed']:,}")
        logger.info(f"Malformed timestamps: {stats['enrichment']['malformed_timestamps']:,}")
        logger.info(f"Data quality rate: {results['data_quality_stats']['success_rate']:.1f}%")

        logger.info("Generated datasets:")
        for dataset_type, file_path in results['saved_files'].items():
            logger.info(f"  - {dataset_type}: {file_path}")

        logger.info("=" * 60)

    def validate_input(self) -> bool:
        """
        Check that the input directory holds at least one trip file.

        Returns:
            bool: True if input is valid
        """
        try:
            files = discover_trip_files(self.input_dir, self.config.FILE_PATTERN)
        except IngestError as e:
            logger.error(f"Input validation failed: {e}")
            return False

        logger.info(f"Input validation passed: {len(files)} files in {self.input_dir}")
        return True

    def estimate_processing_time(self) -> Dict[str, Any]:
        """
        Estimate processing time from the total size of the input files.

        Returns:
            dict: Processing time estimates, empty if the input is invalid
        """
        try:
            files = discover_trip_files(self.input_dir, self.config.FILE_PATTERN)
        except IngestError as e:
            logger.warning(f"Could not estimate processing time: {e}")
            return {}

        total_size = sum(Path(f).stat().st_size for f in files)
        # A Divvy row is roughly 180 bytes
        estimated_rows = total_size // 180
        # Conservative single-threaded rate
        estimated_seconds = estimated_rows / 100000

        return {
            'files': len(files),
            'total_size_mb': round(total_size / (1024 * 1024), 2),
            'estimated_rows': estimated_rows,
            'estimated_processing_time_seconds': round(estimated_seconds, 1),
        }
