# ========================
# src/tripstats/pipeline/transformation.py
# ========================

"""
Data Transformation Module

Builds the grouped summary tables from the filtered, enriched trips.
Every table is an independent reduction: it owns its accumulator, folds
over the records once, then rounds, sorts and truncates.
"""

import logging
import math
import statistics
from collections import defaultdict
from typing import Any, Callable, Dict, List, Sequence

from .enrichment import DAY_OF_WEEK_LABELS, round_half_up

logger = logging.getLogger(__name__)

TABLE_COLUMNS = {
    'ride_length_stats': [
        'member_casual', 'mean_ride_length', 'median_ride_length',
        'min_ride_length', 'max_ride_length',
    ],
    'rides_by_weekday': ['member_casual', 'day_of_week', 'total_rides', 'average_ride_length'],
    'rides_by_month': ['member_casual', 'month', 'total_rides', 'average_ride_length'],
    'rides_by_hour': ['member_casual', 'hour_of_day', 'total_rides', 'average_ride_length'],
    'top_start_stations': ['member_casual', 'start_station_name', 'total_rides'],
}


class TripAggregator:
    """
    Computes the summary tables. The records passed in are only read.
    """

    def __init__(self, top_stations_limit: int = 10):
        """
        Initialize the trip aggregator.

        Args:
            top_stations_limit (int): Stations kept per rider type
        """
        self.top_stations_limit = top_stations_limit
        self.records_processed = 0
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        logger.info(f"TripAggregator initialized with top_stations_limit={top_stations_limit}")

    def aggregate(self, records: Sequence[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Compute every summary table.

        Args:
            records: Filtered, enriched trips

        Returns:
            dict: Table name to list of rows, in TABLE_COLUMNS order
        """
        self.records_processed = len(records)
        self.tables = {
            'ride_length_stats': self.ride_length_stats(records),
            'rides_by_weekday': self.rides_by_weekday(records),
            'rides_by_month': self.rides_by_month(records),
            'rides_by_hour': self.rides_by_hour(records),
            'top_start_stations': self.top_start_stations(records),
        }
        logger.info(f"Aggregation complete. Processed {self.records_processed:,} records")
        self._log_summary_statistics()
        return self.tables

    def ride_length_stats(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Mean, median, min and max ride length per rider type."""
        lengths = defaultdict(list)
        for record in records:
            lengths[record['member_casual']].append(record['ride_length'])

        rows = []
        for member_type in sorted(lengths):
            values = lengths[member_type]
            rows.append({
                'member_casual': member_type,
                'mean_ride_length': round_half_up(math.fsum(values) / len(values)),
                'median_ride_length': round_half_up(statistics.median(values)),
                'min_ride_length': round_half_up(min(values)),
                'max_ride_length': round_half_up(max(values)),
            })
        return rows

    def rides_by_weekday(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Ride count and mean length per rider type and weekday, Sunday first."""
        return self._count_and_mean(records, 'day_of_week', DAY_OF_WEEK_LABELS.index)

    def rides_by_month(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._count_and_mean(records, 'month', int)

    def rides_by_hour(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._count_and_mean(records, 'hour_of_day', int)

    def top_start_stations(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Most frequent starting stations per rider type, descending by count.

        Rides without a start station are skipped. Stations with equal counts
        keep the order in which they were first seen, so ties depend on the
        order of the input records.
        """
        counts: Dict[str, Dict[str, int]] = defaultdict(dict)
        for record in records:
            station = record.get('start_station_name')
            if not station:
                continue
            station_counts = counts[record['member_casual']]
            station_counts[station] = station_counts.get(station, 0) + 1

        rows = []
        for member_type in sorted(counts):
            # sorted() is stable, reverse=True included
            ranked = sorted(counts[member_type].items(), key=lambda item: item[1], reverse=True)
            for station, total in ranked[:self.top_stations_limit]:
                rows.append({
                    'member_casual': member_type,
                    'start_station_name': station,
                    'total_rides': total,
                })
        return rows

    def _count_and_mean(self,
                        records: Sequence[Dict[str, Any]],
                        field: str,
                        order: Callable[[Any], Any]) -> List[Dict[str, Any]]:
        """Group by (member_casual, field); report count and mean ride length."""
        groups = defaultdict(list)
        for record in records:
            groups[(record['member_casual'], record[field])].append(record['ride_length'])

        rows = []
        for member_type, value in sorted(groups, key=lambda key: (key[0], order(key[1]))):
            lengths = groups[(member_type, value)]
            rows.append({
                'member_casual': member_type,
                field: value,
                'total_rides': len(lengths),
                'average_ride_length': round_half_up(math.fsum(lengths) / len(lengths)),
            })
        return rows

    def _log_summary_statistics(self) -> None:
        for name, rows in self.tables.items():
            logger.info(f"  {name}: {len(rows)} rows")

        for row in self.tables.get('ride_length_stats', []):
            logger.info(
                f"  {row['member_casual']}: mean {row['mean_ride_length']} min, "
                f"median {row['median_ride_length']} min"
            )

    def get_aggregation_summary(self) -> Dict[str, Any]:
        """Get a summary of all aggregations."""
        summary = {'records_processed': self.records_processed}
        for name, rows in self.tables.items():
            summary[f'{name}_rows'] = len(rows)
        return summary
