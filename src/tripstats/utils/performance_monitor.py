# ========================
# src/tripstats/utils/performance_monitor.py
# ========================

"""
Performance Monitoring Utilities

Tracks wall time, throughput and resident memory for a pipeline run, with a
checkpoint after each stage.
"""

import os
import time
import logging
from contextlib import contextmanager
from typing import Dict, Any, List, Optional

import psutil

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """
    Performance monitoring for one pipeline run.
    """

    def __init__(self, name: str = "TripPipeline", progress_interval: int = 100):
        """
        Initialize performance monitor.

        Args:
            name (str): Name for this monitoring session
            progress_interval (int): Log progress every N chunks
        """
        self.name = name
        self.progress_interval = progress_interval
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.peak_memory_mb = 0.0
        self.records_processed = 0
        self.chunks_processed = 0
        self.checkpoints: List[Dict[str, Any]] = []
        self.summary: Optional[Dict[str, Any]] = None
        self._process = psutil.Process(os.getpid())

    def start_monitoring(self) -> None:
        self.start_time = time.perf_counter()
        self.peak_memory_mb = self._get_memory_usage_mb()
        logger.info(f"{self.name} - monitoring started, memory {self.peak_memory_mb:.2f} MB")

    def update_progress(self, records_in_chunk: int) -> None:
        """
        Record a processed chunk.

        Args:
            records_in_chunk (int): Number of records in the chunk
        """
        self.records_processed += records_in_chunk
        self.chunks_processed += 1
        current_memory = self._get_memory_usage_mb()
        self.peak_memory_mb = max(self.peak_memory_mb, current_memory)

        if self.chunks_processed % self.progress_interval == 0:
            elapsed = time.perf_counter() - self.start_time if self.start_time else 0
            throughput = self.records_processed / elapsed if elapsed > 0 else 0
            logger.info(
                f"{self.name} - Progress: {self.chunks_processed} chunks, "
                f"{self.records_processed:,} records, "
                f"{throughput:.0f} records/sec, "
                f"Memory: {current_memory:.2f} MB"
            )

    def add_checkpoint(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Mark the end of a stage.

        Args:
            name (str): Stage name
            metadata (dict): Optional values to store with the checkpoint
        """
        now = time.perf_counter()
        previous = self.checkpoints[-1]['timestamp'] if self.checkpoints else self.start_time or now
        memory_mb = self._get_memory_usage_mb()
        self.peak_memory_mb = max(self.peak_memory_mb, memory_mb)

        checkpoint = {
            'name': name,
            'timestamp': now,
            'stage_seconds': now - previous,
            'memory_mb': memory_mb,
            'metadata': metadata or {}
        }
        self.checkpoints.append(checkpoint)
        logger.debug(f"Checkpoint '{name}': {checkpoint['stage_seconds']:.2f}s, {memory_mb:.2f} MB")

    def stop_monitoring(self) -> Dict[str, Any]:
        """
        Stop monitoring and return performance summary.

        Returns:
            dict: Performance statistics
        """
        self.end_time = time.perf_counter()
        total_time = self.end_time - self.start_time if self.start_time else 0
        throughput = self.records_processed / total_time if total_time > 0 else 0

        summary = {
            'name': self.name,
            'total_processing_time_seconds': round(total_time, 3),
            'records_processed': self.records_processed,
            'chunks_processed': self.chunks_processed,
            'average_throughput_records_per_second': round(throughput, 1),
            'peak_memory_usage_mb': round(self.peak_memory_mb, 2),
            'stage_seconds': {
                checkpoint['name']: round(checkpoint['stage_seconds'], 3)
                for checkpoint in self.checkpoints
            },
        }
        self._log_summary(summary)
        return summary

    def _log_summary(self, summary: Dict[str, Any]) -> None:
        logger.info(
            f"{summary['name']} - {summary['total_processing_time_seconds']:.2f}s, "
            f"{summary['records_processed']:,} records, "
            f"{summary['average_throughput_records_per_second']:.0f} records/sec, "
            f"peak memory {summary['peak_memory_usage_mb']:.2f} MB"
        )
        for stage, seconds in summary['stage_seconds'].items():
            logger.info(f"  {stage}: {seconds:.2f}s")

    def _get_memory_usage_mb(self) -> float:
        """Resident set size of this process in MB."""
        return self._process.memory_info().rss / (1024 * 1024)


@contextmanager
def monitor_performance(name: str = "TripPipeline"):
    """
    Context manager for easy performance monitoring.

    Args:
        name (str): Name for this monitoring session

    Yields:
        PerformanceMonitor: Monitor instance; its summary is on
            monitor.summary after the block exits
    """
    monitor = PerformanceMonitor(name)
    monitor.start_monitoring()
    try:
        yield monitor
    finally:
        monitor.summary = monitor.stop_monitoring()
