# ========================
# src/tripstats/utils/config.py
# ========================

"""
Configuration Management

Centralized configuration for the trip pipeline with environment support.
"""

import os
import json
from typing import Dict, Any, Optional


class Config:
    """
    Configuration class for the trip pipeline.
    Supports environment variables and default values.
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_dict (dict): Optional configuration overrides
        """
        # Input discovery
        self.INPUT_DIR = os.getenv('PIPELINE_INPUT_DIR', 'data/raw')
        self.FILE_PATTERN = os.getenv('TRIP_FILE_PATTERN', '*-divvy-tripdata.csv')
        self.CHUNK_SIZE = int(os.getenv('PIPELINE_CHUNK_SIZE', '10000'))

        # Output
        self.OUTPUT_DIR = os.getenv('PIPELINE_OUTPUT_DIR', 'data/processed')

        # Business rules
        self.MAX_RIDE_LENGTH_MINUTES = float(os.getenv('MAX_RIDE_LENGTH_MINUTES', '1440'))
        self.TOP_STATIONS_LIMIT = int(os.getenv('TOP_STATIONS_LIMIT', '10'))
        # Zone of the exported wall-clock timestamps; empty means subtract as-is
        self.TRIP_TIMEZONE = os.getenv('TRIP_TIMEZONE', 'America/Chicago')

        # Sample data generation
        self.SAMPLE_ROWS = int(os.getenv('SAMPLE_ROWS', '10000'))
        self.SAMPLE_ERROR_RATE = float(os.getenv('SAMPLE_ERROR_RATE', '0.1'))

        # Job API
        self.API_PORT = int(os.getenv('API_PORT', '8000'))
        self.JOBS_DIR = os.getenv('PIPELINE_JOBS_DIR', 'data/jobs')

        # Logging
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
        self.LOG_DIR = os.getenv('LOG_DIR', 'logs')

        if config_dict:
            self._update_from_dict(config_dict)

    def _update_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Update configuration from dictionary."""
        for key, value in config_dict.items():
            if hasattr(self, key.upper()):
                setattr(self, key.upper(), value)
    def validate_config(self) -> Dict[str, bool]:
        """
        Validate configuration values.

        Returns:
            dict: Validation results for each setting
        """
        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        return {
            'chunk_size': self.CHUNK_SIZE > 0,
            'max_ride_length': self.MAX_RIDE_LENGTH_MINUTES > 0,
            'top_stations_limit': self.TOP_STATIONS_LIMIT > 0,
            'sample_rows': self.SAMPLE_ROWS > 0,
            'sample_error_rate': 0.0 <= self.SAMPLE_ERROR_RATE <= 1.0,
            'api_port': 1000 <= self.API_PORT <= 65535,
            'log_level': self.LOG_LEVEL.upper() in valid_log_levels,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            attr: getattr(self, attr)
            for attr in dir(self)
            if not attr.startswith('_') and not callable(getattr(self, attr))
        }

    def save_to_file(self, file_path: str) -> None:
        """Save configuration to JSON file."""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_from_file(cls, file_path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(file_path, 'r') as f:
            config_dict = json.load(f)
        return cls(config_dict)

    def __str__(self) -> str:
        lines = ["Configuration Settings:"]
        for key, value in sorted(self.to_dict().items()):
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)
