# ========================
# src/tripstats/pipeline/ingestion.py
# ========================

"""
Data Ingestion Module

Discovers monthly trip-record exports and reads them into one row collection.
Files are read in chunks so a full year of exports never needs more than one
open file at a time.
"""

import csv
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set

from .errors import IngestError

logger = logging.getLogger(__name__)

# Header of a Divvy-style monthly export
EXPECTED_COLUMNS = [
    'ride_id', 'rideable_type', 'started_at', 'ended_at',
    'start_station_name', 'start_station_id',
    'end_station_name', 'end_station_id',
    'start_lat', 'start_lng', 'end_lat', 'end_lng',
    'member_casual',
]

DEFAULT_FILE_PATTERN = "*-divvy-tripdata.csv"


def discover_trip_files(input_dir: str, pattern: str = DEFAULT_FILE_PATTERN) -> List[Path]:
    """
    Locate every trip-record file in a directory.

    Args:
        input_dir (str): Directory holding the monthly exports
        pattern (str): Glob pattern for the file-naming convention

    Returns:
        list[Path]: Matching files, sorted by name

    Raises:
        IngestError: If the directory is missing or nothing matches
    """
    directory = Path(input_dir)
    if not directory.is_dir():
        raise IngestError("Input directory does not exist", str(directory))

    files = sorted(p for p in directory.glob(pattern) if p.is_file())
    if not files:
        raise IngestError(f"No trip files matching '{pattern}'", str(directory))

    logger.info(f"Discovered {len(files)} trip files in {directory}")
    return files


class CSVReader:
    """
    A memory-efficient CSV reader that reads a file in chunks.
    """

    def __init__(self, file_path):
        """
        Initialize the CSV reader.

        Args:
            file_path (str): Path to the CSV file to read
        """
        self.file_path = str(file_path)
        self.header: Optional[List[str]] = None
        logger.debug(f"Initialized CSVReader for file: {file_path}")

    def read_in_chunks(self, chunk_size: int) -> Iterator[List[Dict[str, Any]]]:
        """
        A generator that yields a list of dictionaries for each chunk of data.

        Args:
            chunk_size (int): The number of rows to yield per chunk.

        Yields:
            list[dict]: A list of dictionaries representing a chunk of rows.
        """
        try:
            with open(self.file_path, 'r', newline='', encoding='utf-8-sig') as f:
                reader = csv.DictReader(f)
                self.header = reader.fieldnames
                logger.debug(f"CSV header: {self.header}")

                chunk = []
                row_count = 0

                for row in reader:
                    chunk.append(row)
                    row_count += 1

                    if len(chunk) == chunk_size:
                        yield chunk
                        chunk = []

                if chunk:
                    yield chunk

                logger.debug(f"Total rows read from {self.file_path}: {row_count}")

        except FileNotFoundError:
            logger.error(f"File '{self.file_path}' was not found")
            raise


class TripLoader:
    """
    Reads every trip file in a directory into a single list of raw rows.
    Each header is checked against EXPECTED_COLUMNS before any of its rows
    are accepted.
    """

    def __init__(self,
                 input_dir: str,
                 pattern: str = DEFAULT_FILE_PATTERN,
                 chunk_size: int = 10000):
        self.input_dir = input_dir
        self.pattern = pattern
        self.chunk_size = chunk_size
        self.files_loaded = 0
        self.rows_loaded = 0
        self.shared_ride_ids = 0
        logger.info(f"TripLoader initialized for {input_dir} (pattern={pattern})")

    def load(self, monitor=None) -> List[Dict[str, Any]]:
        """
        Load and concatenate all matching files.

        Args:
            monitor (PerformanceMonitor): Optional progress tracker

        Returns:
            list[dict]: Raw rows from every file

        Raises:
            IngestError: No files, a header that does not match the schema,
                or a file that cannot be decoded or parsed
        """
        files = discover_trip_files(self.input_dir, self.pattern)
        rows: List[Dict[str, Any]] = []
        first_file: Dict[str, str] = {}
        shared: Set[str] = set()

        for file_path in files:
            reader = CSVReader(file_path)
            file_rows = 0
            try:
                for chunk in reader.read_in_chunks(self.chunk_size):
                    if file_rows == 0:
                        self._validate_header(reader.header, file_path)
                    rows.extend(chunk)
                    file_rows += len(chunk)
                    for row in chunk:
                        ride_id = row.get('ride_id')
                        if ride_id:
                            seen_in = first_file.setdefault(ride_id, file_path.name)
                            if seen_in != file_path.name:
                                shared.add(ride_id)
                    if monitor is not None:
                        monitor.update_progress(len(chunk))
            except (UnicodeDecodeError, csv.Error) as e:
                raise IngestError(f"Unreadable trip file: {e}", str(file_path)) from e

            # A header-only file never yields a chunk
            if file_rows == 0:
                self._validate_header(reader.header, file_path)

            self.files_loaded += 1
            self.rows_loaded += file_rows
            logger.info(f"Loaded {file_rows:,} rows from {file_path.name}")

        self.shared_ride_ids = len(shared)
        if self.shared_ride_ids:
            logger.warning(
                f"{self.shared_ride_ids:,} ride_id values appear in more than one file; "
                f"rows identical after projection will be merged as duplicates"
            )

        logger.info(f"Loaded {self.rows_loaded:,} rows from {self.files_loaded} files")
        return rows

    def _validate_header(self, header: Optional[List[str]], file_path: Path) -> None:
        """Fail loudly on a schema mismatch rather than skipping the file."""
        if not header:
            raise IngestError("File has no header row", str(file_path))

        columns = list(header)
        missing = [name for name in EXPECTED_COLUMNS if name not in columns]
        if missing:
            raise IngestError(f"Header is missing expected columns {missing}", str(file_path))

        extra = [name for name in columns if name not in EXPECTED_COLUMNS]
        if extra:
            logger.warning(f"{file_path.name}: ignoring unexpected columns {extra}")

    def get_statistics(self) -> Dict[str, int]:
        """Get loading statistics."""
        return {
            'files_loaded': self.files_loaded,
            'rows_loaded': self.rows_loaded,
            'shared_ride_ids': self.shared_ride_ids,
        }
