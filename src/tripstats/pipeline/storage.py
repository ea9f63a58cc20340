# ========================
# src/tripstats/pipeline/storage.py
# ========================

"""
Data Storage Module

Writes the summary tables, the run summary and the data dictionary.
Files are staged next to their destination and only renamed into place once
every file has been written, so a failed run never leaves a mix of old and
new tables behind.
"""

import csv
import os
import json
import logging
from typing import Any, Dict, List
from pathlib import Path

from .transformation import TABLE_COLUMNS

logger = logging.getLogger(__name__)

INT_COLUMNS = {'total_rides', 'month', 'hour_of_day'}
FLOAT_COLUMNS = {
    'mean_ride_length', 'median_ride_length', 'min_ride_length',
    'max_ride_length', 'average_ride_length',
}

SUMMARY_FILE = "pipeline_summary.json"
DATA_DICTIONARY_FILE = "DATA_DICTIONARY.md"


def table_file_name(table_name: str) -> str:
    return f"{table_name}.csv"


def load_table(file_path) -> List[Dict[str, Any]]:
    """
    Read a saved summary table back, converting numeric columns.

    Args:
        file_path (str): Path to a table CSV

    Returns:
        list[dict]: Rows keyed by column name
    """
    rows = []
    with open(file_path, 'r', newline='', encoding='utf-8') as f:
        for row in csv.DictReader(f):
            for column, value in row.items():
                if column in INT_COLUMNS:
                    row[column] = int(value)
                elif column in FLOAT_COLUMNS:
                    row[column] = float(value)
            rows.append(row)
    return rows


class DataSaver:
    """
    Saves the aggregated tables to CSV files in an output directory.
    """

    def __init__(self, output_dir: str = "data/processed"):
        """
        Initialize the data saver.

        Args:
            output_dir (str): Directory to save output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"DataSaver initialized with output directory: {self.output_dir}")

    def save_all_data(self,
                      tables: Dict[str, List[Dict[str, Any]]],
                      summary: Dict[str, Any]) -> Dict[str, str]:
        """
        Save every table plus the run summary and data dictionary.

        Args:
            tables (dict): Table name to rows, as produced by TripAggregator
            summary (dict): Run statistics for pipeline_summary.json

        Returns:
            dict: Mapping of output name to saved file path
        """
        staged: Dict[str, Path] = {}
        try:
            for table_name, rows in tables.items():
                staged[table_name] = self._write_csv(
                    self._staging_path(table_file_name(table_name)),
                    TABLE_COLUMNS[table_name],
                    rows
                )
            staged['summary'] = self._write_json(self._staging_path(SUMMARY_FILE), summary)
            staged['data_dictionary'] = self._write_text(
                self._staging_path(DATA_DICTIONARY_FILE), self.data_dictionary()
            )
        except Exception as e:
            logger.error(f"Error saving data, discarding {len(staged)} staged files: {e}")
            for path in staged.values():
                path.unlink(missing_ok=True)
            raise

        saved_files = {}
        for name, staging_path in staged.items():
            final_path = staging_path.with_suffix('')
            os.replace(staging_path, final_path)
            saved_files[name] = str(final_path)

        logger.info(f"All data saved successfully to {len(saved_files)} files")
        return saved_files

    def _staging_path(self, file_name: str) -> Path:
        return self.output_dir / f"{file_name}.tmp"

    def _write_csv(self, file_path: Path, headers: List[str], rows: List[Dict]) -> Path:
        """Write rows to a CSV file."""
        try:
            with open(file_path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=headers)
                writer.writeheader()
                writer.writerows(rows)

        except OSError as e:
            # The partially written file is not in staged yet
            file_path.unlink(missing_ok=True)
            logger.error(f"Error writing CSV file {file_path}: {e}")
            raise

        logger.info(f"Saved {len(rows)} rows to {file_path.with_suffix('').name}")
        return file_path

    def _write_json(self, file_path: Path, data: Dict[str, Any]) -> Path:
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        return file_path

    def _write_text(self, file_path: Path, content: str) -> Path:
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(content)
        return file_path

    @staticmethod
    def data_dictionary() -> str:
        """Describe every generated file."""
        return """# Data Dictionary

All tables are computed from rides that survived cleaning and the ride length
filter (0 < ride_length < 1440 minutes). Ride lengths are in minutes and
rounded half-up to 2 decimals when the table is written.

### 1. ride_length_stats.csv

| Column | Type | Description |
|--------|------|-------------|
| member_casual | string | Rider type (casual, member) |
| mean_ride_length | float | Mean ride length |
| median_ride_length | float | Median ride length |
| min_ride_length | float | Shortest ride |
| max_ride_length | float | Longest ride |

### 2. rides_by_weekday.csv

| Column | Type | Description |
|--------|------|-------------|
| member_casual | string | Rider type |
| day_of_week | string | Sun, Mon, ... Sat (from started_at) |
| total_rides | integer | Number of rides |
| average_ride_length | float | Mean ride length |

### 3. rides_by_month.csv

| Column | Type | Description |
|--------|------|-------------|
| member_casual | string | Rider type |
| month | integer | Calendar month 1-12 (from started_at) |
| total_rides | integer | Number of rides |
| average_ride_length | float | Mean ride length |

### 4. rides_by_hour.csv

| Column | Type | Description |
|--------|------|-------------|
| member_casual | string | Rider type |
| hour_of_day | integer | Hour 0-23 (from started_at) |
| total_rides | integer | Number of rides |
| average_ride_length | float | Mean ride length |

### 5. top_start_stations.csv

| Column | Type | Description |
|--------|------|-------------|
| member_casual | string | Rider type |
| start_station_name | string | Starting station |
| total_rides | integer | Rides started at the station |

Only the busiest stations per rider type are kept (TOP_STATIONS_LIMIT,
default 10), busiest first. Rides without a start station are not counted.
Stations with equal counts appear in the order they were first seen in the
input.

### 6. pipeline_summary.json

Record counts for every stage: rows loaded, duplicates and incomplete rows
removed, malformed timestamps, rides removed by the length filter, and
rows per table.
"""
