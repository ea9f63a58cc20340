# ========================
# src/tripstats/utils/data_generator.py
# ========================

"""
Data Generation Utilities

Writes synthetic monthly trip exports in the Divvy schema, with seasonal
and hourly demand patterns and a controlled share of dirty rows.
"""

import csv
import random
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..pipeline.ingestion import EXPECTED_COLUMNS

logger = logging.getLogger(__name__)

STATIONS = [
    ("Streeter Dr & Grand Ave", "13022", 41.892278, -87.612043),
    ("DuSable Lake Shore Dr & Monroe St", "13300", 41.880958, -87.616743),
    ("Michigan Ave & Oak St", "13042", 41.900960, -87.623777),
    ("DuSable Lake Shore Dr & North Blvd", "LF-005", 41.911722, -87.626804),
    ("Millennium Park", "13008", 41.881032, -87.624084),
    ("Shedd Aquarium", "15544", 41.867226, -87.615355),
    ("Theater on the Lake", "TA1308000001", 41.926277, -87.630834),
    ("Kingsbury St & Kinzie St", "KA1503000043", 41.889177, -87.638506),
    ("Clark St & Elm St", "TA1307000039", 41.902973, -87.631280),
    ("Wells St & Concord Ln", "TA1308000050", 41.912133, -87.634656),
    ("Clinton St & Washington Blvd", "WL-012", 41.883380, -87.641170),
    ("Wells St & Elm St", "KA1504000135", 41.903222, -87.634324),
    ("University Ave & 57th St", "KA1503000071", 41.791478, -87.599861),
    ("Ellis Ave & 60th St", "KA1503000014", 41.785097, -87.601073),
    ("Loomis St & Lexington St", "13332", 41.872187, -87.661501),
]

RIDEABLE_TYPES = ["classic_bike", "electric_bike", "docked_bike"]

# Month -> relative ride volume; Chicago ridership peaks in summer
SEASONAL_WEIGHTS = {
    1: 0.3, 2: 0.3, 3: 0.5, 4: 0.8, 5: 1.1, 6: 1.4,
    7: 1.5, 8: 1.5, 9: 1.3, 10: 1.0, 11: 0.6, 12: 0.4,
}

# Hour -> relative ride volume, commute peaks at 8 and 17
HOURLY_WEIGHTS = [
    0.2, 0.1, 0.1, 0.05, 0.05, 0.2, 0.5, 1.0, 1.4, 0.9, 0.8, 0.9,
    1.0, 1.0, 1.0, 1.1, 1.4, 1.8, 1.5, 1.1, 0.8, 0.6, 0.5, 0.3,
]

ERROR_TYPES = [
    'duplicate_row', 'missing_member_type', 'missing_ride_id',
    'malformed_timestamp', 'negative_duration', 'overlong_duration',
]


class TripDataGenerator:
    """
    Generator for realistic trip datasets used by the demo, the large-scale
    script and the tests.
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize data generator.

        Args:
            seed (int): Random seed for reproducible data generation
        """
        self.random = random.Random(seed)
        logger.info(f"TripDataGenerator initialized with seed: {seed}")

    def generate_dataset(self,
                         output_dir: str,
                         num_rows: int,
                         error_rate: float = 0.1,
                         year: int = 2024,
                         missing_station_rate: float = 0.1) -> Dict[str, Any]:
        """
        Generate one year of monthly trip files.

        Args:
            output_dir (str): Directory for the YYYYMM-divvy-tripdata.csv files
            num_rows (int): Total number of rows across all months
            error_rate (float): Fraction of rows with an injected defect
            year (int): Calendar year of the rides
            missing_station_rate (float): Fraction of rows without a start station

        Returns:
            dict: Generation statistics
        """
        logger.info(f"Generating {num_rows:,} rides for {year} with {error_rate:.1%} error rate...")

        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)

        stats = {
            'total_rows': 0,
            'error_rate': error_rate,
            'year': year,
            'records_with_errors': 0,
            'error_types': {},
            'files': [],
        }

        for month, month_rows in self._rows_per_month(num_rows).items():
            file_path = directory / f"{year}{month:02d}-divvy-tripdata.csv"
            with open(file_path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(EXPECTED_COLUMNS)

                for _ in range(month_rows):
                    for row in self._generate_rows(year, month, error_rate, missing_station_rate, stats):
                        writer.writerow(row)
                        stats['total_rows'] += 1

            stats['files'].append(str(file_path))
            logger.debug(f"Wrote {month_rows:,} rides to {file_path.name}")

        stats['error_rate_actual'] = (
            stats['records_with_errors'] / stats['total_rows'] if stats['total_rows'] else 0.0
        )
        logger.info(f"Dataset generated in {directory}: {stats['total_rows']:,} rows")
        logger.info(f"Error breakdown: {stats['error_types']}")
        return stats

    def _rows_per_month(self, num_rows: int) -> Dict[int, int]:
        """Split num_rows across months by seasonal weight."""
        total_weight = sum(SEASONAL_WEIGHTS.values())
        counts = {
            month: int(num_rows * weight / total_weight)
            for month, weight in SEASONAL_WEIGHTS.items()
        }
        # Rounding remainder goes to the busiest month
        counts[7] += num_rows - sum(counts.values())
        return counts

    def _generate_rows(self,
                       year: int,
                       month: int,
                       error_rate: float,
                       missing_station_rate: float,
                       stats: Dict[str, Any]) -> List[List[Any]]:
        """Generate one ride; a duplicated ride comes back as two rows."""
        rng = self.random
        member_casual = "member" if rng.random() < 0.62 else "casual"

        day = rng.randint(1, 28)
        hour = rng.choices(range(24), weights=HOURLY_WEIGHTS)[0]
        started_at = datetime(year, month, day, hour, rng.randint(0, 59), rng.randint(0, 59))

        # Casual riders take longer, more leisurely rides
        median_minutes = 20 if member_casual == "casual" else 11
        minutes = min(rng.lognormvariate(0, 0.7) * median_minutes, 600)
        ended_at = started_at + timedelta(seconds=max(1, int(minutes * 60)))

        start = rng.choice(STATIONS)
        end = rng.choice(STATIONS)
        record = {
            'ride_id': "%016X" % rng.getrandbits(64),
            'rideable_type': rng.choice(RIDEABLE_TYPES),
            'started_at': started_at.strftime("%Y-%m-%d %H:%M:%S"),
            'ended_at': ended_at.strftime("%Y-%m-%d %H:%M:%S"),
            'start_station_name': start[0],
            'start_station_id': start[1],
            'end_station_name': end[0],
            'end_station_id': end[1],
            'start_lat': round(start[2] + rng.uniform(-0.0005, 0.0005), 6),
            'start_lng': round(start[3] + rng.uniform(-0.0005, 0.0005), 6),
            'end_lat': round(end[2] + rng.uniform(-0.0005, 0.0005), 6),
            'end_lng': round(end[3] + rng.uniform(-0.0005, 0.0005), 6),
            'member_casual': member_casual,
        }

        if rng.random() < missing_station_rate:
            record['start_station_name'] = ''
            record['start_station_id'] = ''

        copies = 1
        if rng.random() < error_rate:
            stats['records_with_errors'] += 1
            error_type = rng.choice(ERROR_TYPES)
            self._track_error_type(stats, error_type)
            copies = self._inject_error(record, error_type, started_at)

        row = [record[column] for column in EXPECTED_COLUMNS]
        if copies == 2:
            # Re-exported duplicate: only the bike type differs
            duplicate = dict(record, rideable_type=rng.choice(RIDEABLE_TYPES))
            return [row, [duplicate[column] for column in EXPECTED_COLUMNS]]
        return [row]

    def _inject_error(self, record: Dict[str, Any], error_type: str, started_at: datetime) -> int:
        """Apply a defect to the record; returns how many copies to write."""
        if error_type == 'duplicate_row':
            return 2
        if error_type == 'missing_member_type':
            record['member_casual'] = ''
        elif error_type == 'missing_ride_id':
            record['ride_id'] = ''
        elif error_type == 'malformed_timestamp':
            record['started_at'] = self.random.choice(["not a date", "2024-13-45 25:61:00", "??"])
        elif error_type == 'negative_duration':
            ended_at = started_at - timedelta(minutes=self.random.randint(0, 30))
            record['ended_at'] = ended_at.strftime("%Y-%m-%d %H:%M:%S")
        elif error_type == 'overlong_duration':
            ended_at = started_at + timedelta(hours=self.random.randint(25, 72))
            record['ended_at'] = ended_at.strftime("%Y-%m-%d %H:%M:%S")
        return 1

    def _track_error_type(self, stats: Dict[str, Any], error_type: str) -> None:
        stats['error_types'][error_type] = stats['error_types'].get(error_type, 0) + 1
