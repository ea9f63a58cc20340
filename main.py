#!/usr/bin/env python3
# ========================
# main.py
# ========================

"""
Main Entry Point for the Bike-Share Trip Pipeline

Reads a directory of monthly trip exports and writes the summary tables.
Use --generate-sample to create a synthetic year of trips first.
"""

import sys
import logging
import argparse
from pathlib import Path

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from tripstats.pipeline import TripPipeline, PipelineError
from tripstats.utils import Config, setup_logging, TripDataGenerator

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize a year of bike-share trips")
    parser.add_argument("--config", metavar="FILE", help="JSON file of configuration overrides")
    parser.add_argument("--input-dir", help="Directory of *-divvy-tripdata.csv files")
    parser.add_argument("--output-dir", help="Directory for the summary tables")
    parser.add_argument("--generate-sample", type=int, nargs="?", const=0, metavar="N",
                        help="Write N synthetic rides into the input directory first "
                             "(SAMPLE_ROWS when N is omitted)")
    parser.add_argument("--seed", type=int, default=42, help="Seed for --generate-sample")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main execution function."""
    args = parse_args(argv)
    config = Config.load_from_file(args.config) if args.config else Config()
    if args.log_level:
        config.LOG_LEVEL = args.log_level

    invalid = [name for name, ok in config.validate_config().items() if not ok]
    if invalid:
        print(f"Invalid configuration: {', '.join(invalid)}", file=sys.stderr)
        return 1

    setup_logging(
        log_level=config.LOG_LEVEL,
        log_file="pipeline.log",
        log_dir=config.LOG_DIR
    )

    logger = logging.getLogger(__name__)
    logger.info("=" * 60)
    logger.info("BIKE-SHARE TRIP PIPELINE")
    logger.info("=" * 60)
    logger.debug(str(config))

    input_dir = args.input_dir or config.INPUT_DIR
    output_dir = args.output_dir or config.OUTPUT_DIR

    try:
        if args.generate_sample is not None:
            logger.info("Generating sample trip data...")
            generator = TripDataGenerator(seed=args.seed)
            generation_stats = generator.generate_dataset(
                output_dir=input_dir,
                num_rows=args.generate_sample or config.SAMPLE_ROWS,
                error_rate=config.SAMPLE_ERROR_RATE
            )
            logger.info(f"Sample data generated: {generation_stats['total_rows']:,} rows")

        pipeline = TripPipeline(input_dir=input_dir, output_dir=output_dir, config=config)

        estimates = pipeline.estimate_processing_time()
        if estimates:
            logger.info(f"Processing estimates: {estimates}")

        results = pipeline.run()
        _print_execution_summary(results)
        return 0

    except PipelineError as e:
        logger.error(f"Pipeline aborted: {e}")
        return 1
    except Exception as e:
        logger.error(f"Pipeline execution failed: {e}", exc_info=True)
        return 1


def _print_execution_summary(results: dict) -> None:
    """Print final execution summary."""
    stats = results['processing_stats']
    cleaning = stats['cleaning']

    print("\n" + "=" * 70)
    print("PIPELINE EXECUTION SUMMARY")
    print("=" * 70)
    print(f"Files loaded:            {stats['loading']['files_loaded']}")
    print(f"Rows loaded:             {stats['loading']['rows_loaded']:,}")
    print(f"Duplicates removed:      {cleaning['duplicates_removed']:,}")
    print(f"Incomplete rows removed: {cleaning['missing_removed'] + cleaning['invalid_member_type']:,}")
    print(f"Malformed timestamps:    {stats['enrichment']['malformed_timestamps']:,}")
    print(f"Non-positive rides:      {stats['filtering']['non_positive_removed']:,}")
    print(f"Rides over 24 hours:     {stats['filtering']['too_long_removed']:,}")
    print(f"Rides aggregated:        {stats['records_processed']:,}")

    print("\nGenerated outputs:")
    for name, file_path in results['saved_files'].items():
        print(f"  - {name}: {Path(file_path).name}")
    print("=" * 70)


if __name__ == '__main__':
    sys.exit(main())
