# ========================
# tests/test_pipeline.py
# ========================

import unittest
import sys
import os
from datetime import datetime
from zoneinfo import ZoneInfo

# Add src to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

from tripstats.pipeline.cleaning import TripCleaner, RETAINED_COLUMNS
from tripstats.pipeline.enrichment import (
    TripEnricher, parse_timestamp, compute_ride_length, round_half_up, DEFAULT_TIMEZONE
)
from tripstats.pipeline.errors import MalformedTimestampError
from tripstats.pipeline.filtering import RideLengthFilter

CHICAGO = ZoneInfo(DEFAULT_TIMEZONE)


def raw_trip(ride_id='R1', started_at='2024-06-03 08:00:00', ended_at='2024-06-03 08:15:00',
             member_casual='member', station='Clark St & Elm St', rideable_type='classic_bike'):
    """A raw row as the loader returns it."""
    return {
        'ride_id': ride_id,
        'rideable_type': rideable_type,
        'started_at': started_at,
        'ended_at': ended_at,
        'start_station_name': station,
        'start_station_id': 'TA1307000039',
        'end_station_name': 'Wells St & Elm St',
        'end_station_id': 'KA1504000135',
        'start_lat': '41.902973',
        'start_lng': '-87.631280',
        'end_lat': '41.903222',
        'end_lng': '-87.634324',
        'member_casual': member_casual,
    }


def run_stages(rows):
    cleaned = TripCleaner().clean(rows)
    enriched = TripEnricher().enrich(cleaned)
    return RideLengthFilter().apply(enriched)


class TestTripCleaner(unittest.TestCase):

    def setUp(self):
        self.cleaner = TripCleaner()

    def test_projection_drops_unused_columns(self):
        cleaned = self.cleaner.clean([raw_trip()])

        self.assertEqual(len(cleaned), 1)
        self.assertEqual(tuple(cleaned[0].keys()), RETAINED_COLUMNS)
        self.assertNotIn('rideable_type', cleaned[0])
        self.assertNotIn('start_lat', cleaned[0])

    def test_rows_differing_only_in_dropped_column_are_duplicates(self):
        rows = [
            raw_trip(rideable_type='classic_bike'),
            raw_trip(rideable_type='electric_bike'),
        ]

        cleaned = self.cleaner.clean(rows)

        self.assertEqual(len(cleaned), 1)
        self.assertEqual(self.cleaner.duplicates_removed, 1)

    def test_distinct_rides_are_kept(self):
        cleaned = self.cleaner.clean([raw_trip('R1'), raw_trip('R2')])
        self.assertEqual([r['ride_id'] for r in cleaned], ['R1', 'R2'])

    def test_missing_required_fields_are_dropped(self):
        rows = [
            raw_trip('R1', member_casual=''),
            raw_trip('', started_at='2024-06-03 09:00:00'),
            raw_trip('R3', ended_at='   '),
            raw_trip('R4'),
        ]

        cleaned = self.cleaner.clean(rows)

        self.assertEqual([r['ride_id'] for r in cleaned], ['R4'])
        self.assertEqual(self.cleaner.missing_removed, 3)

    def test_missing_start_station_is_kept(self):
        cleaned = self.cleaner.clean([raw_trip(station='')])

        self.assertEqual(len(cleaned), 1)
        self.assertIsNone(cleaned[0]['start_station_name'])

    def test_duplicates_are_counted_before_missing_values(self):
        rows = [raw_trip('', member_casual='casual'), raw_trip('', member_casual='casual')]

        cleaned = self.cleaner.clean(rows)

        self.assertEqual(cleaned, [])
        self.assertEqual(self.cleaner.duplicates_removed, 1)
        self.assertEqual(self.cleaner.missing_removed, 1)

    def test_member_type_is_normalized_and_validated(self):
        rows = [
            raw_trip('R1', member_casual='Member'),
            raw_trip('R1', member_casual='member'),
            raw_trip('R2', member_casual='guest'),
        ]

        cleaned = self.cleaner.clean(rows)

        self.assertEqual(len(cleaned), 1)
        self.assertEqual(cleaned[0]['member_casual'], 'member')
        self.assertEqual(self.cleaner.invalid_member_type, 1)

    def test_cleaning_is_idempotent(self):
        rows = [
            raw_trip('R1'), raw_trip('R1', rideable_type='docked_bike'),
            raw_trip('R2', member_casual='Casual'), raw_trip('R2', member_casual='casual'),
            raw_trip('R3', station=''), raw_trip('R4', member_casual=''),
        ]

        once = self.cleaner.clean(rows)
        twice = TripCleaner().clean(once)

        self.assertEqual(once, twice)

    def test_input_is_not_modified(self):
        row = raw_trip(member_casual=' Member ')
        self.cleaner.clean([row])
        self.assertEqual(row['member_casual'], ' Member ')
        self.assertIn('rideable_type', row)

    def test_statistics(self):
        self.cleaner.clean([raw_trip('R1'), raw_trip('R1'), raw_trip('R2', member_casual='')])
        stats = self.cleaner.get_statistics()

        self.assertEqual(stats['records_processed'], 3)
        self.assertEqual(stats['records_cleaned'], 1)
        self.assertAlmostEqual(stats['success_rate'], 100 / 3)


class TestTripEnricher(unittest.TestCase):

    def setUp(self):
        self.enricher = TripEnricher()

    def test_derived_fields(self):
        record = TripCleaner().clean([raw_trip(started_at='2024-06-03 08:05:30',
                                               ended_at='2024-06-03 08:21:00')])[0]

        enriched = self.enricher.enrich_record(record)

        self.assertEqual(enriched['started_at'], datetime(2024, 6, 3, 8, 5, 30))
        self.assertEqual(enriched['date'], '2024-06-03')
        self.assertEqual(enriched['year'], 2024)
        self.assertEqual(enriched['month'], 6)
        self.assertEqual(enriched['day'], 3)
        self.assertEqual(enriched['day_of_week'], 'Mon')
        self.assertEqual(enriched['hour_of_day'], 8)
        self.assertEqual(enriched['ride_length'], 15.5)
        # The cleaned record keeps its string timestamps
        self.assertEqual(record['started_at'], '2024-06-03 08:05:30')

    def test_weekday_labels_start_on_sunday(self):
        cases = [('2024-06-02 12:00:00', 'Sun'), ('2024-06-08 12:00:00', 'Sat'),
                 ('2025-01-01 00:00:00', 'Wed')]
        for started_at, expected in cases:
            record = {'ride_id': 'R', 'started_at': started_at, 'ended_at': started_at,
                      'member_casual': 'casual', 'start_station_name': None}
            self.assertEqual(self.enricher.enrich_record(record)['day_of_week'], expected, started_at)

    def test_timestamp_formats(self):
        expected = datetime(2024, 6, 3, 8, 5)
        for value in ['2024-06-03 08:05', '2024-06-03 08:05:00', '2024-06-03T08:05:00',
                      '6/3/2024 8:05', '06/03/2024 08:05:00']:
            self.assertEqual(parse_timestamp(value), expected, value)

    def test_malformed_timestamp_raises(self):
        for value in ['not a date', '2024-13-45 25:61:00', '', None]:
            with self.assertRaises(MalformedTimestampError):
                parse_timestamp(value, 'started_at')

    def test_malformed_timestamps_are_dropped_and_counted(self):
        records = TripCleaner().clean([
            raw_trip('R1'),
            raw_trip('R2', started_at='??'),
            raw_trip('R3', ended_at='2024-02-30 10:00:00'),
        ])

        enriched = self.enricher.enrich(records)

        self.assertEqual([r['ride_id'] for r in enriched], ['R1'])
        self.assertEqual(self.enricher.malformed_timestamps, 2)
        self.assertEqual(self.enricher.get_statistics()['records_enriched'], 1)

    def test_ride_length_rounds_half_up(self):
        start = datetime(2024, 1, 1, 10, 0, 0)
        # 0.3 s is exactly 0.005 minutes, 0.9 s is exactly 0.015 minutes
        self.assertEqual(compute_ride_length(start, datetime(2024, 1, 1, 10, 0, 0, 300000)), 0.01)
        self.assertEqual(compute_ride_length(start, datetime(2024, 1, 1, 10, 0, 0, 900000)), 0.02)
        self.assertEqual(compute_ride_length(start, datetime(2024, 1, 1, 10, 0, 1)), 0.02)
        self.assertEqual(compute_ride_length(start, datetime(2024, 1, 1, 9, 59, 0)), -1.0)

    def test_ride_length_across_daylight_saving_changes(self):
        # Chicago springs forward at 02:00 on 2024-03-10 and falls back on 2024-11-03
        spring = self.enricher.enrich_record(
            TripCleaner().clean([raw_trip(started_at='2024-03-10 01:30:00',
                                          ended_at='2024-03-10 03:10:00')])[0])
        fall = self.enricher.enrich_record(
            TripCleaner().clean([raw_trip(started_at='2024-11-03 00:30:00',
                                          ended_at='2024-11-03 03:00:00')])[0])

        self.assertEqual(spring['ride_length'], 40.0)
        self.assertEqual(fall['ride_length'], 210.0)
        # Calendar fields stay on the wall clock
        self.assertEqual(fall['hour_of_day'], 0)

    def test_end_in_repeated_hour_is_read_as_later_occurrence(self):
        start = datetime(2024, 11, 3, 1, 50)
        end = datetime(2024, 11, 3, 1, 10)

        self.assertEqual(compute_ride_length(start, end, CHICAGO), 20.0)
        self.assertEqual(compute_ride_length(start, end), -40.0)

    def test_enricher_without_timezone_uses_wall_clock(self):
        record = TripCleaner().clean([raw_trip(started_at='2024-03-10 01:30:00',
                                               ended_at='2024-03-10 03:10:00')])[0]

        self.assertEqual(TripEnricher(timezone_name=None).enrich_record(record)['ride_length'], 100.0)

    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.675), 2.68)
        self.assertEqual(round_half_up(0.125), 0.13)
        self.assertEqual(round_half_up(10), 10.0)


class TestRideLengthFilter(unittest.TestCase):

    def test_zero_duration_is_dropped(self):
        trips = run_stages([raw_trip(started_at='2025-01-01T10:00:00', ended_at='2025-01-01T10:00:00')])
        self.assertEqual(trips, ())

    def test_just_over_a_day_is_dropped(self):
        trips = run_stages([raw_trip(started_at='2025-01-01T00:00:00', ended_at='2025-01-02T00:00:01')])
        self.assertEqual(trips, ())

    def test_boundaries_are_exclusive(self):
        ride_filter = RideLengthFilter()
        records = [{'ride_length': value} for value in (-3.0, 0.0, 0.01, 1439.99, 1440.0, 2000.0)]

        kept = ride_filter.apply(records)

        self.assertEqual([r['ride_length'] for r in kept], [0.01, 1439.99])
        self.assertEqual(ride_filter.non_positive_removed, 2)
        self.assertEqual(ride_filter.too_long_removed, 2)

    def test_surviving_rides_satisfy_invariants(self):
        rows = [
            raw_trip('R1', started_at='2024-03-10 01:30:00', ended_at='2024-03-10 03:10:00'),
            raw_trip('R2', started_at='2024-05-01 10:00:00', ended_at='2024-05-01 09:00:00'),
            raw_trip('R3', started_at='2024-05-01 10:00:00', ended_at='2024-05-03 10:00:00'),
            raw_trip('R4', started_at='2024-02-29 23:59:00', ended_at='2024-03-01 00:11:10'),
        ]

        trips = run_stages(rows)

        self.assertIsInstance(trips, tuple)
        self.assertEqual([t['ride_id'] for t in trips], ['R1', 'R4'])
        for trip in trips:
            self.assertTrue(0 < trip['ride_length'] < 1440)
            self.assertEqual(trip['ride_length'],
                             compute_ride_length(trip['started_at'], trip['ended_at'], CHICAGO))
        self.assertEqual(trips[1]['ride_length'], 12.17)
        self.assertEqual(trips[1]['date'], '2024-02-29')


if __name__ == '__main__':
    unittest.main()
