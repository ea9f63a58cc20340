# ========================
# src/tripstats/pipeline/filtering.py
# ========================

"""
Ride Length Filter

Discards rides whose duration is not strictly between zero and the cap.
"""

import logging
from typing import Any, Dict, Iterable, Tuple

logger = logging.getLogger(__name__)

# 24 hours; longer rentals are treated as abandoned or undocked bikes
DEFAULT_MAX_RIDE_MINUTES = 1440


class RideLengthFilter:
    """Keeps a record iff 0 < ride_length < max_minutes."""

    def __init__(self, max_minutes: float = DEFAULT_MAX_RIDE_MINUTES):
        self.max_minutes = max_minutes
        self.non_positive_removed = 0
        self.too_long_removed = 0

    def apply(self, records: Iterable[Dict[str, Any]]) -> Tuple[Dict[str, Any], ...]:
        """
        Filter enriched records.

        Returns:
            tuple[dict]: The surviving records; the tuple is what the
                aggregator reads, so it is never modified afterwards.
        """
        kept = []
        for record in records:
            ride_length = record['ride_length']
            if ride_length <= 0:
                self.non_positive_removed += 1
            elif ride_length >= self.max_minutes:
                self.too_long_removed += 1
            else:
                kept.append(record)

        logger.info(
            f"Ride length filter kept {len(kept):,} records "
            f"(removed {self.non_positive_removed:,} non-positive, "
            f"{self.too_long_removed:,} over {self.max_minutes} minutes)"
        )
        return tuple(kept)

    def get_statistics(self) -> Dict[str, int]:
        return {
            'non_positive_removed': self.non_positive_removed,
            'too_long_removed': self.too_long_removed,
        }
