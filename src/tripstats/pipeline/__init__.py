# ========================
# src/tripstats/pipeline/__init__.py
# ========================

"""
Trip Pipeline Package

Core stages of the bike-share trip pipeline:
- ingestion: trip file discovery, schema check and chunked CSV reading
- cleaning: column projection, duplicate and missing-value removal
- enrichment: calendar and ride length fields
- filtering: ride length bounds
- transformation: grouped summary tables
- storage: output files
- orchestrator: pipeline coordination
"""

from .errors import PipelineError, IngestError, MalformedTimestampError
from .ingestion import CSVReader, TripLoader, discover_trip_files
from .cleaning import TripCleaner
from .enrichment import TripEnricher
from .filtering import RideLengthFilter
from .transformation import TripAggregator
from .storage import DataSaver, load_table
from .orchestrator import TripPipeline

__all__ = [
    'PipelineError',
    'IngestError',
    'MalformedTimestampError',
    'CSVReader',
    'TripLoader',
    'discover_trip_files',
    'TripCleaner',
    'TripEnricher',
    'RideLengthFilter',
    'TripAggregator',
    'DataSaver',
    'load_table',
    'TripPipeline'
]
