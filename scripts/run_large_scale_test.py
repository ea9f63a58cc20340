#!/usr/bin/env python3
# ========================
# scripts/run_large_scale_test.py
# ========================

"""
Script to test the pipeline with a large synthetic year of trips.
"""

import sys
import os
import time

# Add src to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

from tripstats.pipeline import TripPipeline
from tripstats.utils import Config, TripDataGenerator, setup_logging


def main():
    """Run a large-scale test of the trip pipeline."""
    if len(sys.argv) > 1:
        try:
            num_rows = int(sys.argv[1])
        except ValueError:
            print("Usage: python run_large_scale_test.py [num_rows]")
            print("Example: python run_large_scale_test.py 1000000")
            sys.exit(1)
    else:
        num_rows = 1_000_000

    input_dir = f'data/raw/large_{num_rows}'
    output_dir = f'data/processed/large_{num_rows}'
    config = Config({'CHUNK_SIZE': 50000})
    setup_logging(log_level=config.LOG_LEVEL, log_file="large_scale_test.log", log_dir=config.LOG_DIR)

    print("=" * 60)
    print("LARGE SCALE TRIP PIPELINE TEST")
    print("=" * 60)
    print(f"Rides: {num_rows:,}")
    print(f"Input: {input_dir}")
    print(f"Output: {output_dir}")

    start = time.perf_counter()
    TripDataGenerator(seed=7).generate_dataset(output_dir=input_dir, num_rows=num_rows, error_rate=0.05)
    print(f"Generated input in {time.perf_counter() - start:.1f}s")

    results = TripPipeline(input_dir=input_dir, output_dir=output_dir, config=config).run()

    performance = results['performance']
    print("\n" + "=" * 60)
    print(f"Rides aggregated: {results['processing_stats']['records_processed']:,}")
    print(f"Pipeline time: {performance['total_processing_time_seconds']:.1f}s")
    print(f"Peak memory: {performance['peak_memory_usage_mb']:.1f} MB")
    for stage, seconds in performance['stage_seconds'].items():
        print(f"  {stage:<10} {seconds:>8.2f}s")
    print("=" * 60)


if __name__ == '__main__':
    main()
