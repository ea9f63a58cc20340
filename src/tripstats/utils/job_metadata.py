# ========================
# src/tripstats/utils/job_metadata.py
# ========================

"""
Job Metadata Management

Persists pipeline job records for the job API and rediscovers finished jobs
from their output directories after a restart.
"""

import json
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

from ..pipeline.storage import SUMMARY_FILE

logger = logging.getLogger(__name__)


class JobMetadataManager:
    """Manages persistent job metadata storage."""

    def __init__(self, metadata_file: str = "data/job_metadata.json", jobs_dir: str = "data/jobs"):
        self.metadata_file = Path(metadata_file)
        self.metadata_file.parent.mkdir(parents=True, exist_ok=True)
        self.jobs_dir = Path(jobs_dir)

    def save_job_metadata(self, job_status_dict: Dict[str, Dict[str, Any]]) -> None:
        """
        Save all job metadata to persistent storage.

        The caller passes a snapshot that no other thread mutates. The file
        is replaced in one step so a reader never sees a partial write.
        """
        payload = json.dumps(job_status_dict, indent=2, default=str)
        tmp_path = self.metadata_file.with_name(self.metadata_file.name + '.tmp')
        try:
            with open(tmp_path, 'w') as f:
                f.write(payload)
            os.replace(tmp_path, self.metadata_file)
            logger.debug(f"Saved job metadata for {len(job_status_dict)} jobs")
        except OSError as e:
            logger.error(f"Failed to save job metadata: {e}")
            tmp_path.unlink(missing_ok=True)

    def load_job_metadata(self) -> Dict[str, Dict[str, Any]]:
        """Load job metadata from persistent storage."""
        if not self.metadata_file.exists():
            return {}
        try:
            with open(self.metadata_file, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load job metadata: {e}")
            return {}
        logger.info(f"Loaded metadata for {len(data)} persisted jobs")
        return data

    def discover_existing_jobs(self) -> Dict[str, Dict[str, Any]]:
        """Rebuild records for job directories that have a finished run summary."""
        discovered_jobs = {}
        if not self.jobs_dir.exists():
            return discovered_jobs

        for job_dir in self.jobs_dir.iterdir():
            if not job_dir.is_dir() or not self._is_valid_uuid(job_dir.name):
                continue

            summary_file = job_dir / "output" / SUMMARY_FILE
            if not summary_file.exists():
                continue

            completed_at = datetime.fromtimestamp(summary_file.stat().st_mtime).isoformat()
            job = {
                'job_id': job_dir.name,
                'status': 'completed',
                'created_at': completed_at,
                'completed_at': completed_at,
                'input_dir': str(job_dir / "input"),
                'output_dir': str(job_dir / "output"),
                'type': 'discovered',
            }
            try:
                with open(summary_file, 'r') as f:
                    job['results'] = {'summary': json.load(f)}
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not read summary for job {job_dir.name}: {e}")

            discovered_jobs[job_dir.name] = job

        if discovered_jobs:
            logger.info(f"Discovered {len(discovered_jobs)} existing jobs in {self.jobs_dir}")
        return discovered_jobs

    @staticmethod
    def _is_valid_uuid(value: str) -> bool:
        try:
            uuid.UUID(value)
            return True
        except ValueError:
            return False
