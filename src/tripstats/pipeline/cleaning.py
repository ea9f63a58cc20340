# ========================
# src/tripstats/pipeline/cleaning.py
# ========================

"""
Data Cleaning Module

Projects raw trip rows onto the analysis schema and removes duplicate and
incomplete records.
"""

import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

# Columns kept after projection, in output order
RETAINED_COLUMNS = (
    'ride_id',
    'started_at',
    'ended_at',
    'member_casual',
    'start_station_name',
)

# A record missing any of these is dropped; start_station_name may be absent
REQUIRED_COLUMNS = ('ride_id', 'started_at', 'ended_at', 'member_casual')

MEMBER_TYPES = ('casual', 'member')


class TripCleaner:
    """
    Applies projection, duplicate removal and missing-value removal, in that
    order, to the full loaded collection. The input list is never modified.
    """

    def __init__(self):
        """Initialize the trip cleaner."""
        self.records_processed = 0
        self.duplicates_removed = 0
        self.missing_removed = 0
        self.invalid_member_type = 0
        logger.info("TripCleaner initialized")

    def clean(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Clean a collection of raw rows.

        Args:
            records (list[dict]): Raw rows as read by the loader

        Returns:
            list[dict]: Projected, de-duplicated, complete records
        """
        self.records_processed += len(records)

        projected = [self.project_record(record) for record in records]
        unique = self._drop_duplicates(projected)
        complete = self._drop_incomplete(unique)

        logger.info(
            f"Cleaning complete: {len(complete):,}/{len(records):,} records kept "
            f"({self.duplicates_removed:,} duplicates, {self.missing_removed:,} incomplete, "
            f"{self.invalid_member_type:,} invalid member type)"
        )
        return complete

    @staticmethod
    def project_record(record: Dict[str, Any]) -> Dict[str, Any]:
        """Keep only the retained columns, normalizing blank strings to None."""
        projected = {column: TripCleaner._normalize(record.get(column)) for column in RETAINED_COLUMNS}
        if isinstance(projected['member_casual'], str):
            projected['member_casual'] = projected['member_casual'].lower()
        return projected

    @staticmethod
    def _normalize(value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    def _drop_duplicates(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Remove records equal on every retained column, keeping the first."""
        seen = set()
        unique = []
        for record in records:
            key = tuple(record[column] for column in RETAINED_COLUMNS)
            if key in seen:
                self.duplicates_removed += 1
                continue
            seen.add(key)
            unique.append(record)

        if len(unique) < len(records):
            logger.warning(f"Duplicates removed: {len(records) - len(unique):,}")
        return unique

    def _drop_incomplete(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Remove records missing a required value or with an unknown rider type."""
        complete = []
        for record in records:
            if any(record[column] is None for column in REQUIRED_COLUMNS):
                self.missing_removed += 1
                logger.debug(f"Record dropped due to missing required fields: {record}")
                continue

            if record['member_casual'] not in MEMBER_TYPES:
                self.invalid_member_type += 1
                logger.debug(f"Record dropped due to unknown member type: {record}")
                continue

            complete.append(record)
        return complete

    def get_statistics(self) -> Dict[str, Any]:
        """Get cleaning statistics."""
        dropped = self.duplicates_removed + self.missing_removed + self.invalid_member_type
        cleaned = self.records_processed - dropped
        return {
            'records_processed': self.records_processed,
            'duplicates_removed': self.duplicates_removed,
            'missing_removed': self.missing_removed,
            'invalid_member_type': self.invalid_member_type,
            'records_cleaned': cleaned,
            'success_rate': cleaned / self.records_processed * 100 if self.records_processed > 0 else 0
        }
