# ========================
# src/tripstats/pipeline/enrichment.py
# ========================

"""
Data Enrichment Module

Derives calendar and duration fields from each trip's start and end
timestamps.
"""

import logging
from datetime import datetime, timezone, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from .errors import MalformedTimestampError

logger = logging.getLogger(__name__)

# Sunday first
DAY_OF_WEEK_LABELS = ('Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat')

TIMESTAMP_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
]

_CENTS = Decimal('0.01')
_MICROSECONDS_PER_MINUTE = Decimal(60 * 1000 * 1000)

# Divvy exports are in Chicago local time
DEFAULT_TIMEZONE = "America/Chicago"

# Number of malformed rows echoed to the log before going quiet
MALFORMED_LOG_LIMIT = 5


def round_half_up(value, places: int = 2) -> float:
    """Round half away from zero, which float round() does not guarantee."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def parse_timestamp(value: Any, field: str = None) -> datetime:
    """
    Parse a trip timestamp with at least minute resolution.

    Raises:
        MalformedTimestampError: If no known format matches
    """
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        raise MalformedTimestampError(value, field)

    text = value.strip()
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise MalformedTimestampError(value, field)


def compute_ride_length(started_at: datetime, ended_at: datetime,
                        tz: Optional[tzinfo] = None) -> float:
    """
    Ride length in minutes, rounded half-up to 2 decimals.

    Naive timestamps are wall-clock times. When tz is given they are placed
    in that zone and subtracted in UTC, so rides across a daylight-saving
    change get their real duration. An end time in the repeated fall-back
    hour is read as the later occurrence if the earlier one would put it
    at or before the start.
    """
    if tz is not None and started_at.tzinfo is None:
        start = started_at.replace(tzinfo=tz).astimezone(timezone.utc)
        end = ended_at.replace(tzinfo=tz).astimezone(timezone.utc)
        if end <= start:
            end = ended_at.replace(tzinfo=tz, fold=1).astimezone(timezone.utc)
        delta = end - start
    else:
        delta = ended_at - started_at
    microseconds = (delta.days * 86400 + delta.seconds) * 1000000 + delta.microseconds
    minutes = Decimal(microseconds) / _MICROSECONDS_PER_MINUTE
    return float(minutes.quantize(_CENTS, rounding=ROUND_HALF_UP))


def derive_fields(started_at: datetime, ended_at: datetime,
                  tz: Optional[tzinfo] = None) -> Dict[str, Any]:
    """Calendar fields come from started_at only."""
    return {
        'date': started_at.date().isoformat(),
        'month': started_at.month,
        'day': started_at.day,
        'year': started_at.year,
        'day_of_week': DAY_OF_WEEK_LABELS[(started_at.weekday() + 1) % 7],
        'hour_of_day': started_at.hour,
        'ride_length': compute_ride_length(started_at, ended_at, tz),
    }


class TripEnricher:
    """
    Adds derived fields to cleaned trip records. Records whose timestamps
    cannot be parsed are dropped and counted; they never abort the run.
    """

    def __init__(self, timezone_name: Optional[str] = DEFAULT_TIMEZONE):
        """
        Args:
            timezone_name (str): IANA zone of the exported wall-clock times,
                or None to subtract them as-is
        """
        self.tz = ZoneInfo(timezone_name) if timezone_name else None
        self.records_processed = 0
        self.malformed_timestamps = 0
        logger.info(f"TripEnricher initialized (timezone={timezone_name})")

    def enrich(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Enrich every record.

        Args:
            records (list[dict]): Cleaned records

        Returns:
            list[dict]: New records with parsed timestamps and derived fields
        """
        enriched = []
        for record in records:
            self.records_processed += 1
            try:
                enriched.append(self.enrich_record(record))
            except MalformedTimestampError as e:
                self.malformed_timestamps += 1
                if self.malformed_timestamps <= MALFORMED_LOG_LIMIT:
                    logger.warning(f"Dropping ride {record.get('ride_id')}: {e}")

        if self.malformed_timestamps:
            logger.warning(f"Records dropped for malformed timestamps: {self.malformed_timestamps:,}")
        logger.info(f"Enrichment complete: {len(enriched):,} records")
        return enriched

    def enrich_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of the record with derived fields added."""
        started_at = parse_timestamp(record.get('started_at'), 'started_at')
        ended_at = parse_timestamp(record.get('ended_at'), 'ended_at')

        enriched_record = record.copy()
        enriched_record['started_at'] = started_at
        enriched_record['ended_at'] = ended_at
        enriched_record.update(derive_fields(started_at, ended_at, self.tz))
        return enriched_record

    def get_statistics(self) -> Dict[str, int]:
        """Get enrichment statistics."""
        return {
            'records_processed': self.records_processed,
            'malformed_timestamps': self.malformed_timestamps,
            'records_enriched': self.records_processed - self.malformed_timestamps,
        }
